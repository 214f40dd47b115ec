"""Tests for the Redis counter store.

The Redis client is replaced with AsyncMock so these tests check command
wiring and error translation without a server.
"""

from unittest.mock import AsyncMock, patch

import pytest
import redis

from keylimiter.exceptions import StoreUnavailable
from keylimiter.stores.redis_lua import (
    GET_AND_SET_SCRIPT,
    INCREMENT_AND_EXPIRE_SCRIPT,
    RECORD_IN_WINDOW_SCRIPT,
)
from keylimiter.stores.redis_store import RedisStore, _to_millis


@pytest.fixture
def mock_redis():
    """Create a mock async Redis client."""
    return AsyncMock()


@pytest.fixture
def store(mock_redis):
    return RedisStore(redis_client=mock_redis)


class TestToMillis:
    """Tests for TTL conversion."""

    def test_whole_seconds(self):
        assert _to_millis(60) == 60_000

    def test_fraction_rounds_up(self):
        assert _to_millis(0.0001) == 1
        assert _to_millis(1.2345) == 1235


class TestRedisStoreCommands:
    """Tests for command wiring."""

    @pytest.mark.asyncio
    async def test_increment_and_expire_runs_script(self, store, mock_redis):
        mock_redis.eval.return_value = 3
        assert await store.increment_and_expire("c", 60) == 3
        mock_redis.eval.assert_awaited_once_with(
            INCREMENT_AND_EXPIRE_SCRIPT, 1, "c", 60_000
        )

    @pytest.mark.asyncio
    async def test_record_in_window_runs_script(self, store, mock_redis):
        mock_redis.eval.return_value = 2
        count = await store.record_in_window("w", "m", 12.5, 2.5, 5, 10)
        assert count == 2
        mock_redis.eval.assert_awaited_once_with(
            RECORD_IN_WINDOW_SCRIPT, 1, "w", "m", "12.5", "2.5", 5, 10_000
        )

    @pytest.mark.asyncio
    async def test_get_and_set_expects_absent_key(self, store, mock_redis):
        mock_redis.eval.return_value = 1
        assert await store.get_and_set("b", "new", None) is True
        mock_redis.eval.assert_awaited_once_with(
            GET_AND_SET_SCRIPT, 1, "b", "new", "", "0", 0
        )

    @pytest.mark.asyncio
    async def test_get_and_set_with_expected_value_and_ttl(self, store, mock_redis):
        mock_redis.eval.return_value = 0
        assert await store.get_and_set("b", "new", "old", ttl=30) is False
        mock_redis.eval.assert_awaited_once_with(
            GET_AND_SET_SCRIPT, 1, "b", "new", "old", "1", 30_000
        )

    @pytest.mark.asyncio
    async def test_ordered_set_commands(self, store, mock_redis):
        mock_redis.zremrangebyscore.return_value = 4
        mock_redis.zrem.return_value = 1
        mock_redis.zcard.return_value = 7

        await store.add_to_ordered_set("z", "m", 1.5)
        assert await store.remove_range_by_score("z", 0, 1) == 4
        assert await store.remove_from_ordered_set("z", "m") == 1
        assert await store.count("z") == 7

        mock_redis.zadd.assert_awaited_once_with("z", {"m": 1.5})
        mock_redis.zremrangebyscore.assert_awaited_once_with("z", 0, 1)
        mock_redis.zrem.assert_awaited_once_with("z", "m")

    @pytest.mark.asyncio
    async def test_get_decodes_bytes(self, store, mock_redis):
        mock_redis.get.return_value = b'{"tokens":1}'
        assert await store.get("b") == '{"tokens":1}'

    @pytest.mark.asyncio
    async def test_get_missing(self, store, mock_redis):
        mock_redis.get.return_value = None
        assert await store.get("b") is None

    @pytest.mark.asyncio
    async def test_delete(self, store, mock_redis):
        await store.delete("b")
        mock_redis.delete.assert_awaited_once_with("b")

    @pytest.mark.asyncio
    async def test_close(self, store, mock_redis):
        await store.close()
        mock_redis.aclose.assert_awaited_once()
        await store.close()  # Second close is a no-op
        mock_redis.aclose.assert_awaited_once()


class TestRedisStoreErrors:
    """Tests for translating client errors into StoreUnavailable."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, detail",
        [
            (redis.ConnectionError("Connection refused"), "connection_error"),
            (redis.TimeoutError("Timed out"), "timeout"),
            (redis.ResponseError("NOSCRIPT"), "redis_error"),
        ],
    )
    async def test_errors_are_translated(self, store, mock_redis, error, detail):
        mock_redis.eval.side_effect = error

        with pytest.raises(StoreUnavailable) as exc_info:
            await store.increment_and_expire("c", 60)

        assert exc_info.value.operation == "increment_and_expire"
        assert exc_info.value.detail == detail
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_native_command_errors_translated(self, store, mock_redis):
        mock_redis.zcard.side_effect = redis.ConnectionError("down")
        with pytest.raises(StoreUnavailable) as exc_info:
            await store.count("z")
        assert exc_info.value.operation == "count"


class TestRedisClientCreation:
    """Tests for lazy client creation."""

    def test_builds_client_from_url(self):
        with patch("keylimiter.stores.redis_store.aioredis.from_url") as from_url:
            store = RedisStore(redis_url="redis://cache:6379/2", socket_timeout=0.5)
            client = store._get_client()

        assert client is from_url.return_value
        from_url.assert_called_once_with(
            "redis://cache:6379/2",
            socket_timeout=0.5,
            socket_connect_timeout=0.5,
            decode_responses=True,
        )

    def test_reuses_injected_client(self, mock_redis):
        store = RedisStore(redis_client=mock_redis)
        assert store._get_client() is mock_redis
