"""
In-memory TTL cache for API responses.

Entries expire lazily: expiry is checked when a key is read, there is no
background sweep. Nothing here survives a restart; see persistent_cache for
data that must.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from marketlink.core.timing import SystemClock
from marketlink.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    key: str
    value: Any
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now > self.stored_at + self.ttl


class EphemeralCache:
    """
    Process-local cache with per-entry TTL.

    Example:
        cache = EphemeralCache()

        # Store data
        cache.set("quote:AAPL", {"price": 190.1}, ttl=10)

        # Retrieve data (None once 10s have passed)
        data = cache.get("quote:AAPL")
    """

    def __init__(self, clock: Optional[Any] = None):
        self.clock = clock or SystemClock()
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        """
        Retrieve a cached value if it has not expired.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/expired
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self.clock.now()):
            del self._entries[key]
            logger.debug("Cache expired: %s", key)
            return None
        logger.debug("Cache hit: %s", key)
        return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        """
        Store a value for `ttl` seconds.

        Args:
            key: Cache key
            value: Any object; stored by reference
            ttl: Lifetime in seconds
        """
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self.clock.now(), ttl=ttl)

    def invalidate(self, key: str) -> None:
        """Remove cache entry."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        logger.debug("Cleared %d cache entries", count)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
