"""
User repository.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from inex_auth.core.exceptions import ConflictError
from inex_auth.models.user import User
from inex_auth.repositories.base import BaseRepository


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository(BaseRepository[User]):
    """Repository for User operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(User, session)

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email (case-insensitive)."""
        query = select(User).where(User.email == normalize_email(email))
        result = await self.session.exec(query)
        return result.first()

    async def create(self, name: str, email: str, password_hash: str) -> User:
        """Create an unverified user whose history starts with the initial password."""
        now = datetime.utcnow()
        user = User(
            name=name.strip(),
            email=normalize_email(email),
            password_hash=password_hash,
            password_history=[
                {"password_hash": password_hash, "changed_at": now.isoformat()}
            ],
            is_verified=False,
            created_at=now,
            updated_at=now,
        )
        try:
            return await self.add(user)
        except IntegrityError:
            # Lost a race against a concurrent signup for the same email
            await self.session.rollback()
            raise ConflictError("User", "email")

    async def save(self, user: User, commit: bool = True) -> User:
        """Persist changes to an existing user."""
        user.updated_at = datetime.utcnow()
        return await self.add(user, commit=commit)

    async def mark_verified(self, user: User) -> User:
        """Mark user as verified."""
        user.is_verified = True
        return await self.save(user)
