"""
Inex Auth Service - FastAPI Application
Main entry point with all routes configured.
"""
import asyncio
import contextlib
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncEngine

from inex_auth.config import Settings, settings
from inex_auth.core.exceptions import AuthenticationError, InexAuthException
from inex_auth.core.security import TokenCodec
from inex_auth.database import engine as default_engine, init_db, make_session_factory
from inex_auth.schemas.common import HealthResponse
from inex_auth.services.email_service import EmailService, get_email_service
from inex_auth.services.token_cleanup import TokenCleanupService
from inex_auth.api import auth

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def create_app(
    app_settings: Settings = settings,
    engine: Optional[AsyncEngine] = None,
    email_service: Optional[EmailService] = None
) -> FastAPI:
    """Build the application. Tests pass their own settings, engine and mailer."""
    engine = engine or default_engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logging.basicConfig(
            level=app_settings.LOG_LEVEL.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s"
        )
        # Refuses to start with missing, shared or weak secrets
        app.state.token_codec = TokenCodec.from_settings(app_settings)

        if app_settings.AUTO_CREATE_TABLES:
            await init_db(engine)

        cleanup_task = None
        if app_settings.TOKEN_CLEANUP_ENABLED:
            cleanup = TokenCleanupService(app.state.session_factory, app_settings)
            cleanup_task = asyncio.create_task(cleanup.run_forever())

        logger.info(f"Inex auth service started (prefix {app_settings.API_PREFIX})")
        yield

        if cleanup_task is not None:
            cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await cleanup_task

    app = FastAPI(
        title="Inex Auth API",
        description="Account authentication for the Income & Expense Manager",
        version=VERSION,
        lifespan=lifespan
    )
    app.state.settings = app_settings
    app.state.session_factory = make_session_factory(engine)
    app.state.email_service = email_service or get_email_service()

    @app.exception_handler(InexAuthException)
    async def inex_exception_handler(request: Request, exc: InexAuthException):
        headers = None
        if isinstance(exc, AuthenticationError):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message},
            headers=headers
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"}
        )

    app.include_router(auth.router, prefix=app_settings.API_PREFIX)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Health check."""
        return HealthResponse(version=VERSION)

    return app


app = create_app()
