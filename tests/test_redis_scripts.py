"""Tests that execute the Redis Lua scripts.

Runs against fakeredis with its Lua engine, so the server-side logic
(exclusive prune bound, revoke, first-use expiry, compare-and-set branches)
is exercised end to end through RedisStore and the limiters.
"""

import asyncio

import fakeredis
import pytest

from keylimiter.limiters.fixed_window import FixedWindowLimiter
from keylimiter.limiters.sliding_window import SlidingWindowLimiter
from keylimiter.limiters.token_bucket import TokenBucketLimiter
from keylimiter.stores.redis_store import RedisStore


@pytest.fixture
def fake_redis():
    """Fake async Redis client on a private server."""
    return fakeredis.FakeAsyncRedis(
        server=fakeredis.FakeServer(), decode_responses=True
    )


@pytest.fixture
def redis_store(fake_redis):
    return RedisStore(redis_client=fake_redis)


class TestIncrementAndExpireScript:
    @pytest.mark.asyncio
    async def test_counts_and_expires_on_first_use(self, redis_store, fake_redis):
        assert await redis_store.increment_and_expire("c", 60) == 1
        assert await redis_store.increment_and_expire("c", 600) == 2

        # The second call must not push the expiry back
        ttl_ms = await fake_redis.pttl("c")
        assert 0 < ttl_ms <= 60_000


class TestRecordInWindowScript:
    @pytest.mark.asyncio
    async def test_revokes_denied_member(self, redis_store, fake_redis):
        assert await redis_store.record_in_window("w", "m1", 0.0, -10.0, 1, 10) == 1
        assert await redis_store.record_in_window("w", "m2", 1.0, -9.0, 1, 10) == 2
        assert await fake_redis.zrange("w", 0, -1) == ["m1"]

    @pytest.mark.asyncio
    async def test_prune_bound_is_exclusive(self, redis_store, fake_redis):
        await redis_store.record_in_window("w", "old", 0.0, -10.0, 5, 100)
        await redis_store.record_in_window("w", "edge", 5.0, -5.0, 5, 100)
        # min_score == 5.0 keeps the member scored exactly 5.0
        assert await redis_store.record_in_window("w", "new", 15.0, 5.0, 5, 100) == 2
        assert await fake_redis.zrange("w", 0, -1) == ["edge", "new"]

    @pytest.mark.asyncio
    async def test_admitted_member_sets_expiry(self, redis_store, fake_redis):
        await redis_store.record_in_window("w", "m1", 0.0, -10.0, 5, 10)
        assert 0 < await fake_redis.pttl("w") <= 10_000


class TestGetAndSetScript:
    @pytest.mark.asyncio
    async def test_set_when_absent(self, redis_store):
        assert await redis_store.get_and_set("s", "v1", None) is True
        assert await redis_store.get("s") == "v1"

    @pytest.mark.asyncio
    async def test_conflicts_leave_value_untouched(self, redis_store):
        await redis_store.get_and_set("s", "v1", None)
        assert await redis_store.get_and_set("s", "v2", None) is False
        assert await redis_store.get_and_set("s", "v2", "v0") is False
        assert await redis_store.get("s") == "v1"

    @pytest.mark.asyncio
    async def test_swaps_on_match(self, redis_store):
        await redis_store.get_and_set("s", "v1", None)
        assert await redis_store.get_and_set("s", "v2", "v1") is True
        assert await redis_store.get("s") == "v2"

    @pytest.mark.asyncio
    async def test_ttl_applied_only_when_given(self, redis_store, fake_redis):
        await redis_store.get_and_set("s", "v1", None, ttl=30)
        assert 0 < await fake_redis.pttl("s") <= 30_000

        await redis_store.get_and_set("s", "v2", "v1")
        assert await fake_redis.pttl("s") == -1


class TestLimitersOnRedis:
    """The three algorithms driven through the Lua scripts."""

    @pytest.mark.asyncio
    async def test_fixed_window(self, redis_store, clock):
        limiter = FixedWindowLimiter(redis_store, limit=3, window_seconds=10, clock=clock)
        results = []
        for now in (0, 1, 2, 3, 10):
            clock.set(now)
            results.append(await limiter.allow("k"))
        assert results == [True, True, True, False, True]

    @pytest.mark.asyncio
    async def test_sliding_window(self, redis_store, clock):
        limiter = SlidingWindowLimiter(redis_store, limit=2, window_seconds=10, clock=clock)
        results = []
        for now in (0, 5, 9, 10.5):
            clock.set(now)
            results.append(await limiter.allow("k"))
        assert results == [True, True, False, True]

    @pytest.mark.asyncio
    async def test_sliding_window_rejections_take_no_slot(self, redis_store, clock):
        limiter = SlidingWindowLimiter(redis_store, limit=2, window_seconds=10, clock=clock)
        for _ in range(7):
            await limiter.allow("k")
        assert await redis_store.count("ratelimit:sliding:k") == 2

    @pytest.mark.asyncio
    async def test_token_bucket(self, redis_store, clock):
        limiter = TokenBucketLimiter(redis_store, capacity=5, refill_rate=1, clock=clock)
        results = [await limiter.allow("k") for _ in range(5)]
        clock.set(0.5)
        results.append(await limiter.allow("k"))
        clock.set(1.0)
        results.append(await limiter.allow("k"))
        assert results == [True] * 5 + [False, True]

    @pytest.mark.asyncio
    async def test_token_bucket_single_winner(self, redis_store, clock):
        limiter = TokenBucketLimiter(redis_store, capacity=1, refill_rate=0.01, clock=clock)
        results = await asyncio.gather(*(limiter.allow("shared") for _ in range(10)))
        assert results.count(True) == 1
