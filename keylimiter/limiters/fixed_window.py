"""Fixed-window rate limiter.

Requests are counted per key within windows aligned to multiples of
``window_seconds``. A burst of ``limit`` requests at the end of one window
followed by ``limit`` more at the start of the next is accepted, so up to
twice the limit can pass in a short span. That is the trade-off of fixed
windows against the sliding-window limiter.
"""

import math
import time
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


class FixedWindowLimiter(RateLimiter):
    """Allow at most ``limit`` requests per key in each fixed window.

    Store key format: ``{prefix}:{key}:{window_id}`` where
    ``window_id = floor(now / window_seconds)``. Each counter expires
    together with its window.
    """

    algorithm = "fixed_window"

    def __init__(
        self,
        store: CounterStore,
        *,
        limit: int,
        window_seconds: int,
        prefix: str = "ratelimit:fixed",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Counter store holding the window counters
            limit: Maximum requests per window
            window_seconds: Window length in whole seconds
            prefix: Namespace for store keys
            clock: Time source returning UNIX time in seconds

        Raises:
            InvalidConfiguration: If limit or window_seconds is not a
                positive integer
        """
        require_positive("limit", limit, integer=True)
        require_positive("window_seconds", window_seconds, integer=True)
        self._store = store
        self._limit = int(limit)
        self._window_seconds = int(window_seconds)
        self._prefix = prefix
        self._clock = clock

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def period(self) -> float:
        return float(self._window_seconds)

    def _store_key(self, key: str, window_id: int) -> str:
        return f"{self._prefix}:{key}:{window_id}"

    async def check(self, key: str, cost: float = 1) -> RateLimitResult:
        """Count this request in the current window.

        Denied requests are counted too; only the comparison with the limit
        depends on the counter, so over-counting past the limit is harmless.
        """
        require_key(key)
        require_unit_cost(cost)

        now = self._clock()
        window_id = int(now // self._window_seconds)
        reset_at = (window_id + 1) * self._window_seconds

        count = await self._store.increment_and_expire(
            self._store_key(key, window_id), self._window_seconds
        )

        if count <= self._limit:
            logger.debug(
                f"Fixed window allowed {count}/{self._limit}",
                extra=get_log_context(limiter=self.algorithm, key=key, allowed=True),
            )
            return RateLimitResult(
                allowed=True,
                limit=self._limit,
                remaining=self._limit - count,
                reset_at=reset_at,
            )

        retry_after = max(0, math.ceil(reset_at - now))
        logger.info(
            "Fixed window limit exceeded",
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
        """Clear the counter of the current window for ``key``."""
        require_key(key)
        window_id = int(self._clock() // self._window_seconds)
        await self._store.delete(self._store_key(key, window_id))
