"""
Runtime utilities for the coinpulse dashboard.

Provides:
- Typed event bus for component pub/sub
- Retry wrapper with exponential backoff
- Expiring cache with stale fallback
"""

from coinpulse.runtime.cache import CacheInfo, CacheStats, ExpiringCache
from coinpulse.runtime.event_bus import EventBus, Subscription, Topic, get_event_bus
from coinpulse.runtime.retry import RetryPolicy, retry_async

__all__ = [
    # Event bus
    "EventBus",
    "Subscription",
    "Topic",
    "get_event_bus",
    # Retry
    "RetryPolicy",
    "retry_async",
    # Cache utilities
    "CacheInfo",
    "CacheStats",
    "ExpiringCache",
]
