"""Fail-open / fail-closed handling for store outages.

Limiters always propagate ``StoreUnavailable``. Callers who prefer a fixed
answer while the store is down wrap their limiter in ``FailPolicyLimiter``.
"""

import math
import time
from typing import Callable

from keylimiter.core.logging import get_log_context, get_logger
from keylimiter.exceptions import StoreUnavailable
from keylimiter.limiters.base import RateLimiter
from keylimiter.limiters.models import RateLimitResult

logger = get_logger(__name__)


class FailPolicyLimiter(RateLimiter):
    """Answer every check with a fixed decision while the store is unavailable.

    fail_closed=False (fail-open): requests pass without a rate limit check,
    suited to non-critical endpoints.
    fail_closed=True: requests are denied, suited to security-sensitive
    endpoints such as login.

    Invalid configuration is never masked.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        *,
        fail_closed: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._limiter = limiter
        self._fail_closed = fail_closed
        self._clock = clock
        self.algorithm = limiter.algorithm

    @property
    def wrapped(self) -> RateLimiter:
        return self._limiter

    @property
    def fail_closed(self) -> bool:
        return self._fail_closed

    @property
    def limit(self) -> int:
        return self._limiter.limit

    @property
    def period(self) -> float:
        return self._limiter.period

    async def check(self, key: str, cost: float = 1) -> RateLimitResult:
        try:
            return await self._limiter.check(key, cost)
        except StoreUnavailable as e:
            return self._handle_store_failure(key, e)

    def _handle_store_failure(self, key: str, error: StoreUnavailable) -> RateLimitResult:
        """Build the policy decision for a failed check."""
        retry_after = math.ceil(self.period)
        reset_at = math.ceil(self._clock() + self.period)
        context = get_log_context(
            limiter=self.algorithm, key=key, operation=error.operation
        )

        if self._fail_closed:
            logger.warning(
                f"Rate limiting fail-closed triggered due to {error.detail or error.operation}. "
                "Request denied.",
                extra=context,
            )
            return RateLimitResult(
                allowed=False,
                limit=self.limit,
                remaining=0,
                reset_at=reset_at,
                retry_after=retry_after,
            )

        logger.warning(
            f"Rate limiting fail-open triggered due to {error.detail or error.operation}. "
            "Request allowed without rate limit check.",
            extra=context,
        )
        return RateLimitResult(
            allowed=True,
            limit=self.limit,
            remaining=self.limit,
            reset_at=reset_at,
        )

    async def reset(self, key: str) -> None:
        await self._limiter.reset(key)
