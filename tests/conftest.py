"""Shared fixtures: an isolated SQLite database per test, a fast codec and a mock mailer."""
import re
from typing import Optional

import pytest
import pytest_asyncio

from inex_auth.config import Settings
from inex_auth.core.security import TokenCodec
from inex_auth.database import init_db, make_engine, make_session_factory
from inex_auth.repositories.user_repo import UserRepository
from inex_auth.core.security import get_password_hash
from inex_auth.services.auth_service import AuthService
from inex_auth.services.email_service import MockEmailService

ACCESS_SECRET = "test-access-secret-0123456789abcdefghij"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdefghij"
PASSWORD = "Secret123!"


def token_from_email(email: Optional[dict]) -> str:
    """Pull the ``token=`` query value out of a sent email body."""
    assert email is not None
    match = re.search(r"token=([A-Za-z0-9_\-\.]+)", email["body"])
    assert match, email["body"]
    return match.group(1)


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}",
        JWT_SECRET=ACCESS_SECRET,
        JWT_REFRESH_SECRET=REFRESH_SECRET,
        BCRYPT_ROUNDS=4,
        TOKEN_CLEANUP_ENABLED=False,
        CLIENT_URL="http://client.example.com",
        LOG_LEVEL="DEBUG",
    )


@pytest_asyncio.fixture
async def engine(test_settings):
    engine = make_engine(test_settings.DATABASE_URL)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def codec(test_settings):
    return TokenCodec.from_settings(test_settings)


@pytest.fixture
def mailer():
    return MockEmailService()


@pytest.fixture
def auth_service(session, codec, mailer, test_settings):
    return AuthService(session, codec=codec, email_service=mailer, settings=test_settings)


@pytest_asyncio.fixture
async def user(session):
    return await UserRepository(session).create(
        name="Jane Doe",
        email="jane@example.com",
        password_hash=get_password_hash(PASSWORD, rounds=4),
    )
