"""
Single-use token ledger.

Purpose tokens (email verification, password reset) are recorded at issue
time and consumed at most once. Consumption is one conditional UPDATE, so
two concurrent consumers of the same token can never both succeed.
"""
import uuid
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy import delete, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from inex_auth.core.exceptions import (
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from inex_auth.models.token import IssuedToken, TokenKind
from inex_auth.repositories.base import BaseRepository


class TokenLedger(BaseRepository[IssuedToken]):
    """Repository for IssuedToken operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(IssuedToken, session)

    async def issue(
        self,
        token: str,
        kind: Union[TokenKind, str],
        user_id: uuid.UUID,
        ttl: timedelta
    ) -> IssuedToken:
        """Record a newly issued token."""
        issued = IssuedToken(
            token=token,
            kind=TokenKind(kind),
            user_id=user_id,
            used=False,
            expires_at=datetime.utcnow() + ttl
        )
        return await self.add(issued)

    async def get_by_token(self, token: str, kind: Union[TokenKind, str]) -> Optional[IssuedToken]:
        query = (
            select(IssuedToken)
            .where(IssuedToken.token == token, IssuedToken.kind == TokenKind(kind))
            .execution_options(populate_existing=True)
        )
        result = await self.session.exec(query)
        return result.first()

    async def consume(
        self,
        token: str,
        kind: Union[TokenKind, str],
        commit: bool = True
    ) -> IssuedToken:
        """
        Mark a token as used.

        With ``commit=False`` the flip stays in the caller's transaction and
        is undone if the caller rolls back.

        Raises:
            TokenNotFoundError: no entry for this token and kind
            TokenAlreadyUsedError: the entry was consumed before
            TokenExpiredError: the entry is past ``expires_at``
        """
        kind = TokenKind(kind)
        now = datetime.utcnow()
        stmt = (
            update(IssuedToken.__table__)
            .where(
                IssuedToken.token == token,
                IssuedToken.kind == kind,
                IssuedToken.used == False,  # noqa: E712
                IssuedToken.expires_at >= now
            )
            .values(used=True, used_at=now)
        )
        conn = await self.session.connection()
        result = await conn.execute(stmt)
        matched = result.rowcount

        entry = await self.get_by_token(token, kind)
        if matched == 1:
            if commit:
                await self.session.commit()
            return entry

        # Nothing flipped: read the entry only to report why
        label = f"{kind.value.replace('-', ' ').capitalize()} token"
        if entry is None:
            raise TokenNotFoundError(label)
        if entry.used:
            raise TokenAlreadyUsedError(label)
        raise TokenExpiredError(label)

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete every entry past its expiry, used or not."""
        stmt = delete(IssuedToken.__table__).where(
            IssuedToken.expires_at < (now or datetime.utcnow())
        )
        conn = await self.session.connection()
        result = await conn.execute(stmt)
        await self.session.commit()
        return result.rowcount

    async def purge_used(self, retention: timedelta, now: Optional[datetime] = None) -> int:
        """Delete used entries consumed longer ago than ``retention``."""
        cutoff = (now or datetime.utcnow()) - retention
        stmt = delete(IssuedToken.__table__).where(
            IssuedToken.used == True,  # noqa: E712
            IssuedToken.used_at < cutoff
        )
        conn = await self.session.connection()
        result = await conn.execute(stmt)
        await self.session.commit()
        return result.rowcount
