"""
Periodic cleanup of the single-use token ledger.

Expired entries are removed whether or not they were used; used entries are
kept for a retention window after consumption and then removed.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import sessionmaker

from inex_auth.config import Settings, settings as default_settings
from inex_auth.repositories.token_repo import TokenLedger

logger = logging.getLogger(__name__)


class TokenCleanupService:
    """Runs ledger sweeps on its own sessions."""

    def __init__(self, session_factory: sessionmaker, settings: Optional[Settings] = None):
        self.session_factory = session_factory
        self.settings = settings or default_settings

    async def cleanup_expired_tokens(self) -> int:
        async with self.session_factory() as session:
            deleted = await TokenLedger(session).purge_expired()
        logger.info(f"Cleaned up {deleted} expired tokens")
        return deleted

    async def cleanup_used_tokens(self) -> int:
        retention = timedelta(days=self.settings.USED_TOKEN_RETENTION_DAYS)
        async with self.session_factory() as session:
            deleted = await TokenLedger(session).purge_used(retention)
        logger.info(f"Cleaned up {deleted} used tokens older than {retention.days} days")
        return deleted

    async def run_once(self) -> None:
        """One sweep. Failures are logged; the next sweep tries again."""
        try:
            await self.cleanup_expired_tokens()
            await self.cleanup_used_tokens()
        except Exception:
            logger.exception("Token cleanup failed")

    async def run_forever(self, interval: Optional[timedelta] = None) -> None:
        interval = interval or timedelta(minutes=self.settings.TOKEN_CLEANUP_INTERVAL_MINUTES)
        logger.info(f"Token cleanup scheduled every {interval}")
        while True:
            await self.run_once()
            await asyncio.sleep(interval.total_seconds())
