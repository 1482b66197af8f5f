"""
In-Memory TTL Cache

Process-local cache used for tests and single-process runs.
Expired entries are dropped when read and swept on every write.
"""

import time
from typing import Callable, Optional

from ledger.services.cache.interface import CacheInterface, CacheError


class InMemoryCache(CacheInterface):
    """
    Dict-backed cache with per-entry expiry.

    The clock is injectable so tests can expire entries without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[str, tuple[bytes, float]] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[bytes]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise CacheError(f"TTL must be positive, got {ttl_seconds}")
        now = self._clock()
        self._sweep(now)
        self._entries[key] = (value, now + ttl_seconds)

    def _sweep(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
