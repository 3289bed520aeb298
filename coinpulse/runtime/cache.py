"""
Time-based in-memory cache.

Entries expire after a fixed TTL. Expired entries are kept until overwritten so
callers can fall back to stale data when the upstream is unavailable.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from coinpulse.logging import get_logger

logger = get_logger(__name__)

K = TypeVar("K")
V = TypeVar("V")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    stale_hits: int = 0
    current_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate as percentage."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits / total) * 100


@dataclass(frozen=True)
class CacheInfo:
    """Snapshot of one cache entry's state."""

    has_value: bool
    is_valid: bool
    expires_in_s: float
    size: int


class ExpiringCache(Generic[K, V]):
    """
    Cache with a fixed time-to-live per entry.

    Features:
    - Fixed TTL, measured on a monotonic clock
    - Stale reads for error fallbacks
    - Statistics tracking
    """

    def __init__(
        self,
        ttl_seconds: float,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize cache.

        Args:
            ttl_seconds: Lifetime of each entry
            name: Name for logging purposes
            clock: Monotonic time source (injectable for tests)
        """
        self._ttl_seconds = ttl_seconds
        self._name = name
        self._clock = clock

        # key -> (value, expires_at)
        self._entries: dict[K, tuple[V, float]] = {}
        self._stats = CacheStats()

    def get(self, key: K) -> V | None:
        """
        Get value from cache.

        Returns:
            Value if present and not expired, None otherwise
        """
        entry = self._entries.get(key)
        if entry is None or self._clock() >= entry[1]:
            self._stats.misses += 1
            return None
        self._stats.hits += 1
        return entry[0]

    def get_stale(self, key: K) -> V | None:
        """Get value regardless of expiry."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        self._stats.stale_hits += 1
        logger.debug("Serving stale %s entry for %r", self._name, key)
        return entry[0]

    def set(self, key: K, value: V) -> None:
        """Store value, resetting its expiry."""
        self._entries[key] = (value, self._clock() + self._ttl_seconds)
        self._stats.current_size = len(self._entries)

    def is_valid(self, key: K) -> bool:
        """Check whether key holds an unexpired value."""
        entry = self._entries.get(key)
        return entry is not None and self._clock() < entry[1]

    def info(self, key: K) -> CacheInfo:
        """Describe the state of one key."""
        entry = self._entries.get(key)
        expires_in = max(0.0, entry[1] - self._clock()) if entry else 0.0
        return CacheInfo(
            has_value=entry is not None,
            is_valid=self.is_valid(key),
            expires_in_s=expires_in,
            size=len(entry[0]) if entry and hasattr(entry[0], "__len__") else 0,  # type: ignore[arg-type]
        )

    def clear(self) -> None:
        """Clear all entries."""
        self._entries.clear()
        self._stats.current_size = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def stats(self) -> CacheStats:
        """Get cache statistics."""
        return self._stats
