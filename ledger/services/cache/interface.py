"""
Abstract Cache Interface

A key-value store with per-entry time-to-live. Values are opaque bytes;
callers own serialization.

Callers treat every cache failure as a miss. A CacheError must never
decide the outcome of a ledger operation.
"""

from abc import ABC, abstractmethod
from typing import Optional


class CacheInterface(ABC):
    """Key-value cache with TTL."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """
        Get a cached value.

        Returns:
            The value, or None on a miss or an expired entry

        Raises:
            CacheError: If the backend cannot be reached
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        """Store a value that expires after ttl_seconds."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key. Deleting a missing key is not an error."""
        pass


class CacheError(Exception):
    """Base exception for cache operations."""
    pass
