# =============================================================================
# tests/test_ttl_cache.py - TTL Cache Tests
# =============================================================================
# Expiry, LRU eviction and fetch-through behavior of lib/ttl_cache.py.
# The clock is injected so nothing sleeps.
# =============================================================================

import pytest

from lib.ttl_cache import TTLCache, clear_all_caches, get_or_fetch


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Expiry
# =============================================================================

class TestExpiry:
    """Entries live exactly `ttl` seconds."""

    def test_value_available_before_ttl(self):
        clock = FakeClock()
        cache = TTLCache(maxsize=10, ttl=600, timer=clock)

        cache.set("u1", ["video"])
        clock.advance(599)

        assert cache.get("u1") == ["video"]

    def test_value_gone_at_ttl(self):
        clock = FakeClock()
        cache = TTLCache(maxsize=10, ttl=600, timer=clock)

        cache.set("u1", ["video"])
        clock.advance(600)

        assert cache.get("u1") is None
        assert len(cache) == 0

    def test_overwrite_restarts_ttl(self):
        """Last writer wins and gets a fresh lifetime."""
        clock = FakeClock()
        cache = TTLCache(maxsize=10, ttl=60, timer=clock)

        cache.set("k", "old")
        clock.advance(50)
        cache.set("k", "new")
        clock.advance(50)

        assert cache.get("k") == "new"

    def test_contains_respects_expiry(self):
        clock = FakeClock()
        cache = TTLCache(maxsize=10, ttl=5, timer=clock)
        cache.set("k", 1)

        assert "k" in cache
        clock.advance(5)
        assert "k" not in cache


# =============================================================================
# Eviction
# =============================================================================

class TestEviction:
    """The cache never holds more than maxsize entries."""

    def test_evicts_least_recently_used(self):
        cache = TTLCache(maxsize=2, ttl=60)

        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")  # "b" is now least recently used
        cache.set("c", 3)

        assert cache.get("a") == 1
        assert cache.get("b") is None
        assert cache.get("c") == 3
        assert len(cache) == 2

    def test_overwrite_does_not_evict(self):
        cache = TTLCache(maxsize=2, ttl=60)

        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)

        assert cache.get("a") == 10
        assert cache.get("b") == 2

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            TTLCache(maxsize=0, ttl=60)
        with pytest.raises(ValueError):
            TTLCache(maxsize=1, ttl=-1)


# =============================================================================
# Fetch-through
# =============================================================================

class TestGetOrFetch:
    """get_or_fetch calls the fetcher only on a miss."""

    def test_second_call_within_ttl_hits_cache(self):
        clock = FakeClock()
        cache = TTLCache(maxsize=10, ttl=600, timer=clock)
        calls = []

        def fetch():
            calls.append(1)
            return {"videos": len(calls)}

        # Act
        first = get_or_fetch(cache, "u1", fetch)
        clock.advance(300)
        second = get_or_fetch(cache, "u1", fetch)

        # Assert: one upstream call, identical data
        assert len(calls) == 1
        assert first == second

    def test_one_new_call_after_expiry(self):
        clock = FakeClock()
        cache = TTLCache(maxsize=10, ttl=600, timer=clock)
        calls = []

        def fetch():
            calls.append(1)
            return len(calls)

        get_or_fetch(cache, "u1", fetch)
        clock.advance(601)
        get_or_fetch(cache, "u1", fetch)
        get_or_fetch(cache, "u1", fetch)

        assert len(calls) == 2

    def test_fetch_error_is_not_cached(self):
        cache = TTLCache(maxsize=10, ttl=600)

        def failing():
            raise RuntimeError("upstream down")

        with pytest.raises(RuntimeError):
            get_or_fetch(cache, "u1", failing)

        assert get_or_fetch(cache, "u1", lambda: "ok") == "ok"

    def test_clear_all_caches_empties_named_caches(self):
        cache = TTLCache(maxsize=10, ttl=600, name="test_named_cache")
        cache.set("k", "v")

        clear_all_caches()

        assert cache.get("k") is None
