"""
API dependencies - shared across all routes.
"""
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlmodel.ext.asyncio.session import AsyncSession

from inex_auth.config import Settings, settings
from inex_auth.core.security import TokenCodec
from inex_auth.database import get_session
from inex_auth.services.auth_service import AuthService
from inex_auth.services.email_service import EmailService, get_email_service


oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/signin")


def get_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", settings)


def get_token_codec(request: Request) -> TokenCodec:
    codec = getattr(request.app.state, "token_codec", None)
    if codec is None:
        codec = TokenCodec.from_settings(get_settings(request))
        request.app.state.token_codec = codec
    return codec


def get_mailer(request: Request) -> EmailService:
    return getattr(request.app.state, "email_service", None) or get_email_service()


def get_auth_service(
    session: AsyncSession = Depends(get_session),
    codec: TokenCodec = Depends(get_token_codec),
    email_service: EmailService = Depends(get_mailer),
    app_settings: Settings = Depends(get_settings)
) -> AuthService:
    return AuthService(session, codec=codec, email_service=email_service, settings=app_settings)
