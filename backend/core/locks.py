import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable, Optional

import structlog

from core.errors import ConcurrencyError

logger = structlog.get_logger(__name__)


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class KeyedLocks:
    """Key-scoped mutual exclusion with a bounded wait.

    Holders of different keys never contend. A contender that cannot acquire
    its key before the deadline fails with ConcurrencyError instead of
    blocking. Entries are dropped once nobody holds or waits on them.
    """

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self._entries: Dict[Hashable, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def locked(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return bool(entry and entry.lock.locked())

    @asynccontextmanager
    async def hold(self, key: Hashable, timeout: Optional[float] = None) -> AsyncIterator[None]:
        wait = self.timeout if timeout is None else timeout
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1
        try:
            try:
                await asyncio.wait_for(entry.lock.acquire(), timeout=wait)
            except asyncio.TimeoutError:
                logger.warning("lock_timeout", key=str(key), timeout=wait)
                raise ConcurrencyError(
                    f"Another update to {key} is in progress; try again"
                ) from None
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(key) is entry:
                del self._entries[key]
