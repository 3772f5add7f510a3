"""Time-boxed in-memory cache for scraped resources."""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """
    Per-resource-kind cache keyed by query parameters.

    Entries live until their expiry passes; there is no size bound and
    no background eviction, an expired entry is dropped when it is next
    read or overwritten. Empty values are never stored, so a later call
    goes back to the network instead of returning a false empty result.
    """

    def __init__(self, name: str, ttl_seconds: float = 3600,
                 clock: Callable[[], float] = time.time):
        """
        Initialize the cache.

        Args:
            name: Resource kind, used in log messages
            ttl_seconds: Lifetime of an entry (default: 1 hour)
            clock: Source of the current time in seconds
        """
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        """
        Return the cached value, or None when absent or expired.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self.clock() > entry.expires_at:
            logger.debug(f"{self.name} cache entry {key} expired")
            del self._entries[key]
            return None

        logger.debug(f"{self.name} cache hit for {key}")
        return entry.value

    def put(self, key: str, value: Any) -> bool:
        """
        Store a value for the configured lifetime.

        Returns:
            True if stored, False if the value was empty and skipped
        """
        if not value:
            logger.debug(f"Not caching empty {self.name} result for {key}")
            return False

        self._entries[key] = CacheEntry(
            value=value,
            expires_at=self.clock() + self.ttl_seconds
        )
        return True

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def make_key(*parts: Any) -> str:
    """Compose a cache key from query parameters."""
    return '_'.join(str(part) for part in parts)
