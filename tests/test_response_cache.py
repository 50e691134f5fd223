"""Tests for data/response_cache.py."""

from __future__ import annotations

import pytest

from data.response_cache import ResponseCache


class FakeClock:

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestResponseCache:

    @pytest.fixture
    def clock(self) -> FakeClock:
        return FakeClock()

    @pytest.fixture
    def cache(self, clock: FakeClock) -> ResponseCache:
        return ResponseCache(ttl_s=5.0, max_entries=3, clock=clock)

    def test_hit_within_ttl(self, cache: ResponseCache, clock: FakeClock) -> None:
        cache.set("a", 1)
        clock.now += 4.9
        assert cache.get("a") == 1
        assert cache.hits == 1

    def test_expired_entry_dropped(self, cache: ResponseCache, clock: FakeClock) -> None:
        cache.set("a", 1)
        clock.now += 5.0
        assert cache.get("a") is None
        assert len(cache) == 0
        assert cache.misses == 1

    def test_lru_eviction(self, cache: ResponseCache) -> None:
        for key in ("a", "b", "c"):
            cache.set(key, key)
        cache.get("a")  # a becomes most recent
        cache.set("d", "d")
        assert cache.get("b") is None
        assert cache.get("a") == "a"
        assert len(cache) == 3

    def test_invalidate_and_clear(self, cache: ResponseCache) -> None:
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a")
        cache.invalidate("missing")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    def test_falsy_values_cached(self, cache: ResponseCache) -> None:
        cache.set("flag", False)
        assert cache.get("flag", "default") is False

    @pytest.mark.parametrize("kwargs", [{"ttl_s": 0}, {"max_entries": 0}])
    def test_invalid_bounds(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            ResponseCache(**kwargs)

    @pytest.mark.asyncio
    async def test_get_or_load_reads_through(self, cache: ResponseCache) -> None:
        calls = 0

        async def loader() -> int:
            nonlocal calls
            calls += 1
            return 42

        assert await cache.get_or_load("k", loader) == 42
        assert await cache.get_or_load("k", loader) == 42
        assert calls == 1

    @pytest.mark.asyncio
    async def test_get_or_load_error_not_cached(self, cache: ResponseCache) -> None:
        async def failing() -> int:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await cache.get_or_load("k", failing)
        assert len(cache) == 0
