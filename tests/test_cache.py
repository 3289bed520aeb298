"""
Tests for the expiring cache.
"""

from coinpulse.runtime.cache import ExpiringCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestExpiringCache:
    """Tests for ExpiringCache."""

    def test_basic_get_set(self) -> None:
        cache: ExpiringCache[str, int] = ExpiringCache(ttl_seconds=60)

        cache.set("a", 1)

        assert cache.get("a") == 1
        assert cache.get("b") is None
        assert len(cache) == 1

    def test_entry_expires_after_ttl(self) -> None:
        clock = FakeClock()
        cache: ExpiringCache[str, int] = ExpiringCache(ttl_seconds=30, clock=clock)
        cache.set("a", 1)

        clock.now += 29.9
        assert cache.get("a") == 1

        clock.now += 0.1
        assert cache.get("a") is None
        assert not cache.is_valid("a")

    def test_stale_read_survives_expiry(self) -> None:
        clock = FakeClock()
        cache: ExpiringCache[str, list[int]] = ExpiringCache(ttl_seconds=1, clock=clock)
        cache.set("a", [1, 2])

        clock.now += 5
        assert cache.get("a") is None
        assert cache.get_stale("a") == [1, 2]
        assert cache.get_stale("missing") is None

    def test_set_resets_expiry(self) -> None:
        clock = FakeClock()
        cache: ExpiringCache[str, int] = ExpiringCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        clock.now += 8
        cache.set("a", 2)
        clock.now += 8
        assert cache.get("a") == 2

    def test_info_describes_entry(self) -> None:
        clock = FakeClock()
        cache: ExpiringCache[str, list[int]] = ExpiringCache(ttl_seconds=10, clock=clock)

        empty = cache.info("a")
        assert not empty.has_value
        assert not empty.is_valid
        assert empty.size == 0

        cache.set("a", [1, 2, 3])
        clock.now += 4
        info = cache.info("a")
        assert info.has_value
        assert info.is_valid
        assert info.expires_in_s == 6
        assert info.size == 3

    def test_stats_track_hits_and_misses(self) -> None:
        cache: ExpiringCache[str, int] = ExpiringCache(ttl_seconds=60)
        cache.set("a", 1)

        cache.get("a")
        cache.get("a")
        cache.get("b")

        assert cache.stats.hits == 2
        assert cache.stats.misses == 1
        assert round(cache.stats.hit_rate, 1) == 66.7

    def test_clear(self) -> None:
        cache: ExpiringCache[str, int] = ExpiringCache(ttl_seconds=60)
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0
        assert cache.get_stale("a") is None
