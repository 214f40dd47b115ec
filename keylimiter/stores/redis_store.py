"""Redis-backed counter store for multi-instance deployments.

Compound operations run as Lua scripts (see ``redis_lua``) so they are
atomic across every process sharing the Redis instance. Single commands
use the native client API.

Redis errors are never retried here: they are logged and re-raised as
``StoreUnavailable`` so the caller can pick its own fallback policy.
"""

import math
from typing import Any, Awaitable, Optional, TypeVar

import redis
import redis.asyncio as aioredis

from keylimiter.core.config import settings
from keylimiter.core.logging import get_log_context, get_logger
from keylimiter.exceptions import StoreUnavailable
from keylimiter.stores.base import CounterStore
from keylimiter.stores.redis_lua import (
    GET_AND_SET_SCRIPT,
    INCREMENT_AND_EXPIRE_SCRIPT,
    RECORD_IN_WINDOW_SCRIPT,
)

logger = get_logger(__name__)

T = TypeVar("T")


def _to_millis(seconds: float) -> int:
    """Convert a TTL in seconds to whole milliseconds (at least 1)."""
    return max(1, int(math.ceil(seconds * 1000)))


class RedisStore(CounterStore):
    """Redis counter store.

    Example:
        >>> store = RedisStore(redis_url="redis://localhost:6379/0")
        >>> await store.increment_and_expire("ratelimit:fixed:user-1:0", 60)
        1
    """

    name = "redis"

    def __init__(
        self,
        redis_client: Optional[Any] = None,
        redis_url: Optional[str] = None,
        socket_timeout: Optional[float] = None,
    ) -> None:
        """Initialize the Redis store.

        Args:
            redis_client: Optional ``redis.asyncio.Redis`` instance
            redis_url: Redis connection URL, defaults to settings.redis_url
            socket_timeout: Per-command timeout in seconds, defaults to
                settings.redis_socket_timeout
        """
        self._redis = redis_client
        self._redis_url = redis_url or settings.redis_url
        self._socket_timeout = socket_timeout or settings.redis_socket_timeout

    def _get_client(self) -> Any:
        """Get or create the Redis client."""
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._redis_url,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
                decode_responses=True,
            )
        return self._redis

    async def _execute(self, operation: str, command: Awaitable[T]) -> T:
        """Await a Redis command, translating client errors."""
        try:
            return await command
        except redis.ConnectionError as e:
            logger.error(
                f"Redis connection failed during {operation}: {e}",
                extra=get_log_context(store=self.name, operation=operation),
            )
            raise StoreUnavailable(operation, "connection_error") from e
        except redis.TimeoutError as e:
            logger.warning(
                f"Redis timeout during {operation}: {e}",
                extra=get_log_context(store=self.name, operation=operation),
            )
            raise StoreUnavailable(operation, "timeout") from e
        except redis.RedisError as e:
            logger.error(
                f"Redis error during {operation}: {e}",
                extra=get_log_context(store=self.name, operation=operation),
            )
            raise StoreUnavailable(operation, "redis_error") from e

    @staticmethod
    def _decode(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode()
        return str(value)

    async def increment_and_expire(self, key: str, ttl: float) -> int:
        client = self._get_client()
        result = await self._execute(
            "increment_and_expire",
            client.eval(INCREMENT_AND_EXPIRE_SCRIPT, 1, key, _to_millis(ttl)),
        )
        return int(result)

    async def add_to_ordered_set(self, key: str, member: str, score: float) -> None:
        client = self._get_client()
        await self._execute("add_to_ordered_set", client.zadd(key, {member: score}))

    async def remove_range_by_score(
        self, key: str, min_score: float, max_score: float
    ) -> int:
        client = self._get_client()
        removed = await self._execute(
            "remove_range_by_score",
            client.zremrangebyscore(key, min_score, max_score),
        )
        return int(removed)

    async def remove_from_ordered_set(self, key: str, member: str) -> int:
        client = self._get_client()
        removed = await self._execute("remove_from_ordered_set", client.zrem(key, member))
        return int(removed)

    async def count(self, key: str) -> int:
        client = self._get_client()
        return int(await self._execute("count", client.zcard(key)))

    async def record_in_window(
        self,
        key: str,
        member: str,
        score: float,
        min_score: float,
        limit: int,
        ttl: float,
    ) -> int:
        client = self._get_client()
        result = await self._execute(
            "record_in_window",
            client.eval(
                RECORD_IN_WINDOW_SCRIPT,
                1,  # Number of keys
                key,  # KEYS[1]
                member,  # ARGV[1]
                repr(score),  # ARGV[2]
                repr(min_score),  # ARGV[3]
                limit,  # ARGV[4]
                _to_millis(ttl),  # ARGV[5]
            ),
        )
        return int(result)

    async def get(self, key: str) -> str | None:
        client = self._get_client()
        return self._decode(await self._execute("get", client.get(key)))

    async def get_and_set(
        self,
        key: str,
        value: str,
        expected_previous: str | None,
        ttl: float | None = None,
    ) -> bool:
        client = self._get_client()
        result = await self._execute(
            "get_and_set",
            client.eval(
                GET_AND_SET_SCRIPT,
                1,  # Number of keys
                key,  # KEYS[1]
                value,  # ARGV[1]
                expected_previous or "",  # ARGV[2]
                "0" if expected_previous is None else "1",  # ARGV[3]
                _to_millis(ttl) if ttl else 0,  # ARGV[4]
            ),
        )
        return bool(int(result))

    async def delete(self, key: str) -> None:
        client = self._get_client()
        await self._execute("delete", client.delete(key))

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
