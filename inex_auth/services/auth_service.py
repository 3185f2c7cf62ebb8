"""
Authentication service - handles all auth operations.

Each operation raises a specific InexAuthException for the failures it
knows about; anything else is logged and surfaced as a generic ServerError.
"""
import functools
import logging
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from fastapi.concurrency import run_in_threadpool
from sqlmodel.ext.asyncio.session import AsyncSession

from inex_auth.config import Settings, settings as default_settings
from inex_auth.core.security import TokenCodec, TokenClaims, get_password_hash, verify_password
from inex_auth.core.exceptions import (
    InexAuthException,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ServerError,
    TokenExpiredError,
    ValidationError,
)
from inex_auth.models.token import TokenKind
from inex_auth.models.user import User
from inex_auth.repositories.token_repo import TokenLedger
from inex_auth.repositories.user_repo import UserRepository, normalize_email
from inex_auth.schemas.auth import AuthResponse, CurrentUserResponse, TokenPairResponse, UserPublic
from inex_auth.schemas.common import MessageResponse
from inex_auth.services.email_service import EmailService, get_email_service
from inex_auth.services.password_policy import PasswordPolicy

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
FORGOT_PASSWORD_MESSAGE = (
    "If an account exists with this email, a password reset link has been sent."
)
RESEND_VERIFICATION_MESSAGE = (
    "If the email exists and is not verified, a new verification link has been sent."
)
PASSWORD_REUSE_MESSAGE = (
    "You cannot reuse a recently used password. Please choose a different password."
)

_TOKEN_NOUNS = {
    TokenKind.PASSWORD_RESET: "reset token",
    TokenKind.EMAIL_VERIFICATION: "verification token",
}

# Compared against when the email is unknown so both signin failures cost the same
_dummy_hashes: Dict[int, str] = {}


def _dummy_hash(rounds: int) -> str:
    if rounds not in _dummy_hashes:
        _dummy_hashes[rounds] = get_password_hash(uuid.uuid4().hex, rounds)
    return _dummy_hashes[rounds]


def handle_unexpected(message: str):
    """Roll back on failure; re-raise known errors, wrap the rest into ServerError."""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            try:
                return await func(self, *args, **kwargs)
            except InexAuthException:
                await self.session.rollback()
                raise
            except Exception as e:
                await self.session.rollback()
                logger.exception(f"{message}: unexpected error")
                raise ServerError(message) from e
        return wrapper
    return decorator


class AuthService:
    """Service for authentication operations."""

    def __init__(
        self,
        session: AsyncSession,
        codec: Optional[TokenCodec] = None,
        email_service: Optional[EmailService] = None,
        settings: Optional[Settings] = None
    ):
        self.session = session
        self.settings = settings or default_settings
        self.codec = codec or TokenCodec.from_settings(self.settings)
        self.email_service = email_service or get_email_service()
        self.password_policy = PasswordPolicy.from_settings(self.settings)
        self.user_repo = UserRepository(session)
        self.ledger = TokenLedger(session)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    @handle_unexpected("Failed to create user account")
    async def signup(
        self,
        name: str,
        email: str,
        password: str,
        confirm_password: str
    ) -> AuthResponse:
        """Register a new, unverified user and sign them in."""
        self._validate_new_password(password, confirm_password)

        email = normalize_email(email)
        if await self.user_repo.get_by_email(email):
            raise ConflictError("User", "email")

        password_hash = await self._hash(password)
        user = await self.user_repo.create(name=name, email=email, password_hash=password_hash)
        logger.info(f"User {user.id} registered")

        verify_token = await self._issue_purpose_token(user, TokenKind.EMAIL_VERIFICATION)
        await self._send_verification_email(user, verify_token)

        return self._auth_response(
            user,
            "User created successfully. Please check your email for verification."
        )

    @handle_unexpected("Failed to sign in")
    async def signin(self, email: str, password: str) -> AuthResponse:
        """Authenticate user and return tokens."""
        user = await self.user_repo.get_by_email(email)
        if not user:
            await self._check_password(password, _dummy_hash(self.settings.BCRYPT_ROUNDS))
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        if not await self._check_password(password, user.password_hash):
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        return self._auth_response(user, "Login successful")

    @handle_unexpected("Failed to process password reset request")
    async def forgot_password(self, email: str) -> MessageResponse:
        """Initiate password reset flow. The answer never reveals whether the email exists."""
        response = MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

        user = await self.user_repo.get_by_email(email)
        if not user:
            return response

        reset_token = await self._issue_purpose_token(user, TokenKind.PASSWORD_RESET)
        reset_link = f"{self.settings.CLIENT_URL}/auth/reset-password?token={reset_token}"
        try:
            await self.email_service.send_templated(
                "reset-password",
                user.email,
                {"name": user.name, "resetLink": reset_link, **self._template_values()}
            )
        except Exception as e:
            logger.error(f"Error sending reset password email for user {user.id}: {e}")
            raise ServerError("Failed to send reset password email") from e

        return response

    @handle_unexpected("Failed to reset password")
    async def reset_password(
        self,
        token: str,
        password: str,
        confirm_password: str
    ) -> MessageResponse:
        """Reset password using a single-use reset token."""
        self._validate_new_password(password, confirm_password)

        claims = await self._consume_purpose_token(token, TokenKind.PASSWORD_RESET)

        user = await self.user_repo.get_by_email(claims.email)
        if not user:
            raise NotFoundError("User not found")

        if await self._is_recent_password(user, password):
            raise ValidationError(PASSWORD_REUSE_MESSAGE)

        new_hash = await self._hash(password)
        user.password_history = self._rotated_history(user)
        user.password_hash = new_hash
        # Commits the password change and the ledger flip together
        await self.user_repo.save(user)
        logger.info(f"Password reset for user {user.id}")

        return MessageResponse(message="Password reset successfully")

    @handle_unexpected("Failed to verify account")
    async def verify_account(self, token: str) -> MessageResponse:
        """Verify email using a single-use verification token."""
        claims = await self._consume_purpose_token(token, TokenKind.EMAIL_VERIFICATION)

        user = await self.user_repo.get_by_email(claims.email)
        if not user:
            raise NotFoundError("User not found")

        if user.is_verified:
            await self.session.commit()
            return MessageResponse(message="Account is already verified")

        await self.user_repo.mark_verified(user)
        logger.info(f"User {user.id} verified")
        return MessageResponse(message="Account verified successfully")

    @handle_unexpected("Failed to refresh token")
    async def refresh_token(self, refresh_token: str) -> TokenPairResponse:
        """Rotate both tokens. The old refresh token is not revoked."""
        try:
            claims = self.codec.verify(refresh_token, "refresh")
        except AuthenticationError as e:
            raise AuthenticationError("Invalid or expired refresh token", reason=e.reason)

        pair = self.codec.issue_pair(claims.user_id, claims.email)
        return TokenPairResponse(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        )

    @handle_unexpected("Failed to verify token")
    async def verify_token(self, access_token: str) -> CurrentUserResponse:
        """Resolve a valid access token to its user."""
        user = await self.get_user_for_token(access_token)
        return CurrentUserResponse(user=UserPublic.model_validate(user))

    @handle_unexpected("Failed to resend verification email")
    async def resend_verification(self, email: str) -> MessageResponse:
        """Issue a fresh verification token for an unverified account."""
        response = MessageResponse(message=RESEND_VERIFICATION_MESSAGE)

        user = await self.user_repo.get_by_email(email)
        if not user or user.is_verified:
            return response

        verify_token = await self._issue_purpose_token(user, TokenKind.EMAIL_VERIFICATION)
        await self._send_verification_email(user, verify_token)
        return response

    async def get_user_for_token(self, access_token: str) -> User:
        try:
            claims = self.codec.verify(access_token, "access")
        except AuthenticationError as e:
            raise AuthenticationError("Invalid or expired token", reason=e.reason)

        try:
            user_id = uuid.UUID(claims.user_id)
        except ValueError:
            raise AuthenticationError("Invalid or expired token")

        user = await self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _hash(self, password: str) -> str:
        return await run_in_threadpool(get_password_hash, password, self.settings.BCRYPT_ROUNDS)

    async def _check_password(self, password: str, password_hash: str) -> bool:
        return await run_in_threadpool(verify_password, password, password_hash)

    def _validate_new_password(self, password: str, confirm_password: str) -> None:
        if password != confirm_password:
            raise ValidationError("Passwords do not match")
        result = self.password_policy.validate(password)
        if not result.is_valid:
            raise ValidationError("; ".join(result.errors), errors=result.errors)

    async def _is_recent_password(self, user: User, password: str) -> bool:
        """
        True if ``password`` is the current one or in the retained history.
        The current password is checked on top of the history entries.
        """
        size = self.settings.PASSWORD_HISTORY_SIZE
        candidates: List[str] = [user.password_hash]
        for entry in (user.password_history or [])[-size:]:
            if entry["password_hash"] not in candidates:
                candidates.append(entry["password_hash"])

        for password_hash in candidates:
            if await self._check_password(password, password_hash):
                return True
        return False

    def _rotated_history(self, user: User) -> List[dict]:
        """History with the outgoing hash appended, bounded to the configured size."""
        history = list(user.password_history or [])
        if not history or history[-1]["password_hash"] != user.password_hash:
            history.append({
                "password_hash": user.password_hash,
                "changed_at": datetime.utcnow().isoformat()
            })
        return history[-self.settings.PASSWORD_HISTORY_SIZE:]

    def _purpose_ttl(self, kind: TokenKind) -> timedelta:
        if kind == TokenKind.PASSWORD_RESET:
            return timedelta(hours=self.settings.PASSWORD_RESET_TOKEN_EXPIRE_HOURS)
        return timedelta(hours=self.settings.EMAIL_VERIFICATION_TOKEN_EXPIRE_HOURS)

    async def _issue_purpose_token(self, user: User, kind: TokenKind) -> str:
        ttl = self._purpose_ttl(kind)
        token = self.codec.sign_purpose(kind, user.id, user.email, ttl)
        await self.ledger.issue(token, kind, user.id, ttl)
        return token

    async def _consume_purpose_token(self, token: str, kind: TokenKind) -> TokenClaims:
        """
        Check the signature and expiry, then consume the ledger entry.

        The ledger flip is left uncommitted; the caller's final commit (or the
        rollback in ``handle_unexpected``) decides whether it sticks.
        """
        noun = _TOKEN_NOUNS[kind]
        try:
            claims = self.codec.verify_purpose(token, kind)
        except AuthenticationError as e:
            raise AuthenticationError(f"Invalid or expired {noun}", reason=e.reason)

        try:
            entry = await self.ledger.consume(token, kind, commit=False)
        except TokenExpiredError as e:
            raise AuthenticationError(f"{noun.capitalize()} has expired", reason=e.reason)
        except AuthenticationError as e:
            raise AuthenticationError(f"Invalid or already used {noun}", reason=e.reason)

        if str(entry.user_id) != claims.user_id:
            raise AuthenticationError(f"Invalid or expired {noun}")
        return claims

    async def _send_verification_email(self, user: User, verify_token: str) -> None:
        """Best-effort: the account exists either way and can be re-verified later."""
        verify_link = f"{self.settings.CLIENT_URL}/auth/verify-account?token={verify_token}"
        try:
            await self.email_service.send_templated(
                "verify-account",
                user.email,
                {"name": user.name, "verifyLink": verify_link, **self._template_values()}
            )
        except Exception as e:
            logger.error(f"Error sending verification email for user {user.id}: {e}")

    def _template_values(self) -> Dict[str, str]:
        client_url = self.settings.CLIENT_URL
        return {
            "supportEmail": self.settings.SUPPORT_EMAIL,
            "facebookLink": self.settings.FACEBOOK_LINK or "#",
            "twitterLink": self.settings.TWITTER_LINK or "#",
            "instagramLink": self.settings.INSTAGRAM_LINK or "#",
            "companyAddress": self.settings.COMPANY_ADDRESS,
            "privacyPolicyLink": f"{client_url}/privacy-policy",
            "termsLink": f"{client_url}/terms-of-service",
            "unsubscribeLink": f"{client_url}/unsubscribe",
        }

    def _auth_response(self, user: User, message: str) -> AuthResponse:
        pair = self.codec.issue_pair(user.id, user.email)
        return AuthResponse(
            message=message,
            user=UserPublic.model_validate(user),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        )
