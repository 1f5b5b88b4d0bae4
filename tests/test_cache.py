"""Tests for the two-tier TTL cache."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from sportfun_market.cache import TtlCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestMemoryTier:
    def test_expiry(self, clock) -> None:
        cache = TtlCache(clock=clock)
        cache.set("k", "v", 10)

        clock.now += 9
        assert cache.get("k") == "v"
        clock.now += 1
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_no_ttl_never_expires(self, clock) -> None:
        cache = TtlCache(clock=clock)
        cache.set("k", 1, None)
        clock.now += 10**9
        assert cache.get("k") == 1

    def test_lru_eviction(self, clock) -> None:
        cache = TtlCache(max_entries=2, clock=clock)
        cache.set("a", 1, None)
        cache.set("b", 2, None)
        cache.get("a")
        cache.set("c", 3, None)

        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3

    def test_invalidate_and_clear(self, clock) -> None:
        cache = TtlCache(clock=clock)
        cache.set("a", 1, None)
        cache.set("b", 2, None)
        cache.invalidate("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0


class TestGetOrLoad:
    """Tests for single-flight loading."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_loader(self) -> None:
        cache = TtlCache()
        calls = 0

        async def loader() -> int:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return 42

        results = await asyncio.gather(*(cache.get_or_load("k", 60, loader) for _ in range(5)))

        assert results == [42] * 5
        assert calls == 1
        assert await cache.get_or_load("k", 60, loader) == 42
        assert calls == 1

    @pytest.mark.asyncio
    async def test_errors_reach_every_waiter_and_are_not_cached(self) -> None:
        cache = TtlCache()
        loader = AsyncMock(side_effect=RuntimeError("boom"))

        results = await asyncio.gather(
            cache.get_or_load("k", 60, loader),
            cache.get_or_load("k", 60, loader),
            return_exceptions=True,
        )

        assert all(isinstance(r, RuntimeError) for r in results)
        assert loader.await_count == 1
        loader.side_effect = None
        loader.return_value = "ok"
        assert await cache.get_or_load("k", 60, loader) == "ok"

    @pytest.mark.asyncio
    async def test_none_is_not_cached(self) -> None:
        cache = TtlCache()
        loader = AsyncMock(return_value=None)

        await cache.get_or_load("k", 60, loader)
        await cache.get_or_load("k", 60, loader)

        assert loader.await_count == 2


class TestRedisTier:
    @pytest.mark.asyncio
    async def test_shared_hit_skips_loader(self) -> None:
        redis = AsyncMock()
        redis.get.return_value = json.dumps({"a": 1})
        cache = TtlCache(redis=redis, key_prefix="test:")
        loader = AsyncMock()

        assert await cache.get_or_load("k", 60, loader) == {"a": 1}

        redis.get.assert_awaited_once_with("test:k")
        loader.assert_not_awaited()
        assert cache.get("k") == {"a": 1}

    @pytest.mark.asyncio
    async def test_loaded_value_written_with_ttl(self) -> None:
        redis = AsyncMock()
        redis.get.return_value = None
        cache = TtlCache(redis=redis)

        await cache.get_or_load("k", 120, AsyncMock(return_value=[1, 2]))

        redis.set.assert_awaited_once_with("sportfun:k", "[1, 2]", ex=120)

    @pytest.mark.asyncio
    async def test_non_expiring_value_gets_shared_ttl(self, clock) -> None:
        redis = AsyncMock()
        redis.get.return_value = None
        cache = TtlCache(redis=redis, shared_ttl_seconds=86_400, clock=clock)

        await cache.get_or_load("block-ts:5", None, AsyncMock(return_value=1_754_006_410_000))

        redis.set.assert_awaited_once_with("sportfun:block-ts:5", "1754006410000", ex=86_400)
        clock.now += 10 * 86_400
        assert cache.get("block-ts:5") == 1_754_006_410_000

    @pytest.mark.asyncio
    async def test_redis_errors_are_misses(self) -> None:
        redis = AsyncMock()
        redis.get.side_effect = ConnectionError("redis down")
        redis.set.side_effect = ConnectionError("redis down")
        cache = TtlCache(redis=redis)

        assert await cache.get_or_load("k", 60, AsyncMock(return_value=7)) == 7
        assert cache.get("k") == 7
