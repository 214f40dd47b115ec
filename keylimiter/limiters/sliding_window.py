"""Sliding-window rate limiter.

Each admitted request is stored as a timestamped member of an ordered set.
Every check prunes members older than the window, inserts the new request,
counts, and revokes the insertion when the count exceeds the limit, all as
one atomic store operation. Denied requests therefore never occupy a slot.
"""

import math
import time
import uuid
from typing import Callable

from keylimiter.core.logging import get_log_context, get_logger
from keylimiter.limiters.base import (
    RateLimiter,
    require_key,
    require_positive,
    require_unit_cost,
)
from keylimiter.limiters.models import RateLimitResult
from keylimiter.stores.base import CounterStore

logger = get_logger(__name__)


class SlidingWindowLimiter(RateLimiter):
    """Allow at most ``limit`` requests per key in any trailing window.

    Store key format: ``{prefix}:{key}`` holding an ordered set scored by
    request timestamp. The set expires one window after the last admitted
    request.
    """

    algorithm = "sliding_window"

    def __init__(
        self,
        store: CounterStore,
        *,
        limit: int,
        window_seconds: float,
        prefix: str = "ratelimit:sliding",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Counter store holding the timestamp sets
            limit: Maximum requests in any window
            window_seconds: Window length, fractions allowed
            prefix: Namespace for store keys
            clock: Time source returning UNIX time in seconds

        Raises:
            InvalidConfiguration: If limit or window_seconds is not positive
        """
        require_positive("limit", limit, integer=True)
        require_positive("window_seconds", window_seconds)
        self._store = store
        self._limit = int(limit)
        self._window_seconds = float(window_seconds)
        self._prefix = prefix
        self._clock = clock

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def period(self) -> float:
        return self._window_seconds

    def _store_key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    @staticmethod
    def _member(now: float) -> str:
        # Random suffix keeps requests with identical timestamps distinct
        return f"{now:.6f}:{uuid.uuid4().hex[:12]}"

    async def check(self, key: str, cost: float = 1) -> RateLimitResult:
        require_key(key)
        require_unit_cost(cost)

        now = self._clock()
        min_score = now - self._window_seconds
        reset_at = math.ceil(now + self._window_seconds)

        count = await self._store.record_in_window(
            self._store_key(key),
            self._member(now),
            now,
            min_score,
            self._limit,
            self._window_seconds,
        )

        if count <= self._limit:
            logger.debug(
                f"Sliding window allowed {count}/{self._limit}",
                extra=get_log_context(limiter=self.algorithm, key=key, allowed=True),
            )
            return RateLimitResult(
                allowed=True,
                limit=self._limit,
                remaining=self._limit - count,
                reset_at=reset_at,
            )

        # The oldest member leaves the window at most one window from now
        retry_after = math.ceil(self._window_seconds)
        logger.info(
            "Sliding window limit exceeded",
            extra=get_log_context(
                limiter=self.algorithm, key=key, allowed=False, retry_after=retry_after
            ),
        )
        return RateLimitResult(
            allowed=False,
            limit=self._limit,
            remaining=0,
            reset_at=reset_at,
            retry_after=retry_after,
        )

    async def reset(self, key: str) -> None:
        """Drop every recorded timestamp for ``key``."""
        require_key(key)
        await self._store.delete(self._store_key(key))
