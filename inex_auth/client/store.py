"""
Durable storage for the client's token pair.
"""
import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class StoredTokens:
    access_token: str
    refresh_token: str
    user: Optional[dict] = None


class TokenStore(ABC):
    """Base token store interface."""

    @abstractmethod
    async def load(self) -> Optional[StoredTokens]:
        pass

    @abstractmethod
    async def save(self, tokens: StoredTokens) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass


class MemoryTokenStore(TokenStore):
    """Keeps tokens for the lifetime of the process only."""

    def __init__(self, tokens: Optional[StoredTokens] = None):
        self._tokens = tokens

    async def load(self) -> Optional[StoredTokens]:
        return self._tokens

    async def save(self, tokens: StoredTokens) -> None:
        self._tokens = tokens

    async def clear(self) -> None:
        self._tokens = None


class FileTokenStore(TokenStore):
    """
    JSON file readable by the owner only.
    A missing or unreadable file loads as "no tokens".
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read(self) -> Optional[StoredTokens]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return StoredTokens(
                access_token=data["access_token"],
                refresh_token=data["refresh_token"],
                user=data.get("user")
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable token file {self.path}: {e}")
            return None

    def _write(self, tokens: StoredTokens) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(asdict(tokens), f)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def _remove(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    async def load(self) -> Optional[StoredTokens]:
        return await asyncio.to_thread(self._read)

    async def save(self, tokens: StoredTokens) -> None:
        await asyncio.to_thread(self._write, tokens)

    async def clear(self) -> None:
        await asyncio.to_thread(self._remove)
