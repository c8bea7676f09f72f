"""
Cache Manager for Ledger Reads
==============================

Per-key TTL cache owned by the LedgerAccessFacade.

Features:
- One TTL per cache instance (not per key)
- Expiry when now - stored_at > ttl; expired entries are evicted on read
  and swept by cleanup_expired (the facade sweeps after every miss)
- Explicit invalidation by key, by substring (address), or wholesale
- Injectable clock for deterministic tests

Usage:
    cache = CacheManager(ttl=30)
    await cache.set("balance:<address>", 1_000_000)
    value = await cache.get("balance:<address>")
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, TypeVar


T = TypeVar("T")

MISSING = object()


@dataclass
class CacheEntry(Generic[T]):
    """
    Cache entry with TTL support.

    Attributes:
        value: Cached data (None is a legitimate cached value)
        stored_at: Clock reading when the entry was written
    """
    value: T
    stored_at: float

    def is_expired(self, now: float, ttl: float) -> bool:
        return now - self.stored_at > ttl


class CacheManager:
    """TTL cache with explicit invalidation."""

    def __init__(self, ttl: float = 30.0, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            ttl: Time to live in seconds for every entry
            clock: Monotonic clock in seconds
        """
        if ttl < 0:
            raise ValueError(f"ttl must be >= 0, got {ttl}")
        self.ttl = ttl
        self._clock = clock
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str, default: Any = None) -> Any:
        """
        Get cached value by key.

        Returns:
            Cached value if present and fresh, ``default`` otherwise
        """
        async with self._lock:
            entry = self._cache.get(key)

            if entry is None:
                return default

            if entry.is_expired(self._clock(), self.ttl):
                del self._cache[key]
                return default

            return entry.value

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            self._cache[key] = CacheEntry(value=value, stored_at=self._clock())

    async def invalidate(self, fragment: str) -> int:
        """
        Drop every key containing ``fragment`` (e.g. an address).

        Returns:
            Number of entries removed
        """
        async with self._lock:
            doomed = [key for key in self._cache if fragment in key]
            for key in doomed:
                del self._cache[key]
            return len(doomed)

    async def clear(self) -> None:
        """Clear all cached entries."""
        async with self._lock:
            self._cache.clear()

    async def cleanup_expired(self) -> int:
        """
        Remove all expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        async with self._lock:
            expired_keys = [
                key for key, entry in self._cache.items()
                if entry.is_expired(now, self.ttl)
            ]
            for key in expired_keys:
                del self._cache[key]
        return len(expired_keys)

    def size(self) -> int:
        return len(self._cache)
