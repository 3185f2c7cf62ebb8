"""
Security utilities for the Inex auth service.
Consolidated JWT and password handling.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Literal, Union
import uuid

import jwt
import bcrypt

from inex_auth.config import Settings, check_jwt_secrets
from inex_auth.core.exceptions import TokenExpiredError, TokenInvalidError
from inex_auth.models.token import TokenKind


DEFAULT_BCRYPT_ROUNDS = 10


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(
            plain_password.encode('utf-8'),
            hashed_password.encode('utf-8')
        )
    except ValueError:
        # Malformed hash or a password bcrypt refuses (> 72 bytes)
        return False


def get_password_hash(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Hash a password with a fresh salt."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


# Key kinds: which secret signed the token
KeyKind = Literal["access", "refresh"]


@dataclass(frozen=True)
class TokenClaims:
    """Verified subject claims of a token."""
    user_id: str
    email: str
    token_type: str
    expires_at: datetime
    issued_at: Optional[datetime] = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenCodec:
    """
    Signs and verifies access, refresh and purpose tokens.

    Access and purpose tokens are signed with the access secret, refresh
    tokens with the refresh secret. Every token carries a ``type`` claim so
    a token of one kind never verifies as another, and a random ``jti`` so
    two tokens minted in the same second differ.
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        min_secret_length: int = 32,
    ):
        check_jwt_secrets(access_secret, refresh_secret, min_secret_length)
        self._secrets = {"access": access_secret, "refresh": refresh_secret}
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenCodec":
        return cls(
            access_secret=settings.JWT_SECRET,
            refresh_secret=settings.JWT_REFRESH_SECRET,
            algorithm=settings.JWT_ALGORITHM,
            access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            min_secret_length=settings.JWT_MIN_SECRET_LENGTH,
        )

    def _sign(
        self,
        key_kind: KeyKind,
        token_type: str,
        user_id: Union[str, uuid.UUID],
        email: str,
        ttl: timedelta
    ) -> str:
        now = datetime.utcnow()
        payload = {
            "user_id": str(user_id),
            "email": email,
            "type": token_type,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, self._secrets[key_kind], algorithm=self.algorithm)

    def sign_access(self, user_id: Union[str, uuid.UUID], email: str) -> str:
        """Create an access token."""
        return self._sign("access", "access", user_id, email, self.access_ttl)

    def sign_refresh(self, user_id: Union[str, uuid.UUID], email: str) -> str:
        """Create a refresh token."""
        return self._sign("refresh", "refresh", user_id, email, self.refresh_ttl)

    def sign_purpose(
        self,
        kind: TokenKind,
        user_id: Union[str, uuid.UUID],
        email: str,
        ttl: timedelta
    ) -> str:
        """Create a single-use token (email verification, password reset)."""
        return self._sign("access", TokenKind(kind).value, user_id, email, ttl)

    def issue_pair(self, user_id: Union[str, uuid.UUID], email: str) -> TokenPair:
        return TokenPair(
            access_token=self.sign_access(user_id, email),
            refresh_token=self.sign_refresh(user_id, email),
        )

    def _decode(self, token: str, key_kind: KeyKind, token_type: str) -> TokenClaims:
        label = f"{token_type.replace('-', ' ').capitalize()} token"
        try:
            payload = jwt.decode(
                token,
                self._secrets[key_kind],
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError(label)
        except jwt.InvalidTokenError:
            raise TokenInvalidError(label)

        if payload.get("type") != token_type:
            raise TokenInvalidError(label)
        user_id = payload.get("user_id")
        email = payload.get("email")
        if not user_id or not email:
            raise TokenInvalidError(label)

        return TokenClaims(
            user_id=user_id,
            email=email,
            token_type=token_type,
            expires_at=datetime.utcfromtimestamp(payload["exp"]),
            issued_at=datetime.utcfromtimestamp(payload["iat"]),
        )

    def verify(self, token: str, key_kind: KeyKind = "access") -> TokenClaims:
        """
        Verify an access or refresh token.

        Raises:
            TokenExpiredError: signature is valid but ``exp`` has passed
            TokenInvalidError: bad signature, wrong key, wrong type or malformed
        """
        if key_kind not in self._secrets:
            raise ValueError(f"Unknown key kind: {key_kind}")
        return self._decode(token, key_kind, key_kind)

    def verify_purpose(self, token: str, kind: TokenKind) -> TokenClaims:
        """Verify a purpose token's signature, expiry and kind."""
        return self._decode(token, "access", TokenKind(kind).value)
