"""
User model.
"""
import uuid
from datetime import datetime
from typing import List

from sqlalchemy import Column, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    User model with credentials and verification status.
    ``password_history`` holds ``{"password_hash", "changed_at"}`` entries,
    oldest first, and is never serialized to clients.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    # Profile
    name: str

    # Auth
    email: str = Field(unique=True, index=True)  # stored lowercase
    password_hash: str
    password_history: List[dict] = Field(
        default_factory=list,
        sa_column=Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    )

    # Verification status
    is_verified: bool = Field(default=False, index=True)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
