from typing import AsyncIterator, Optional

from fastapi import Request
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from inex_auth.config import settings


def make_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine. SQLite connections are never pooled across event loops."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo, future=True, poolclass=NullPool)
    return create_async_engine(database_url, echo=echo, future=True, pool_pre_ping=True)


def make_session_factory(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


# Create Async Engine
engine = make_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
async_session = make_session_factory(engine)


async def init_db(bind: Optional[AsyncEngine] = None):
    # Import models to ensure they are registered with SQLModel
    import inex_auth.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = getattr(request.app.state, "session_factory", async_session)
    async with session_factory() as session:
        yield session
