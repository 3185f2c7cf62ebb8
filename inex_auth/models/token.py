"""
Ledger of issued single-use tokens.
Email verification and password reset share one table, tagged by kind.
"""
import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field


class TokenKind(str, enum.Enum):
    PASSWORD_RESET = "password-reset"
    EMAIL_VERIFICATION = "email-verification"


class IssuedToken(SQLModel, table=True):
    """
    A purpose token recorded at issuance.
    Single-use: ``used`` flips to True exactly once.
    """
    __tablename__ = "issued_token"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True)

    token: str = Field(unique=True, index=True)  # The signed token string
    kind: TokenKind = Field(index=True)

    # Status
    used: bool = Field(default=False, index=True)
    used_at: Optional[datetime] = None

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    expires_at: datetime = Field(index=True)
