"""Cache services package."""

from ledger.services.cache.interface import CacheError, CacheInterface
from ledger.services.cache.memory import InMemoryCache

__all__ = ["CacheError", "CacheInterface", "InMemoryCache"]
