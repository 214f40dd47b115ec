"""Rate limiter interface shared by every strategy."""

import math
import numbers
from abc import ABC, abstractmethod

from keylimiter.exceptions import InvalidConfiguration
from keylimiter.limiters.models import RateLimitResult


def require_positive(name: str, value: float, *, integer: bool = False) -> None:
    """Reject non-positive (or, when ``integer``, non-integral) parameters.

    Raises:
        InvalidConfiguration: If the value is not acceptable.
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidConfiguration(f"{name} must be a number, got {value!r}")
    if integer and not isinstance(value, numbers.Integral):
        raise InvalidConfiguration(f"{name} must be an integer, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise InvalidConfiguration(f"{name} must be positive, got {value!r}")


def require_key(key: str) -> None:
    """Reject empty rate limit keys."""
    if not isinstance(key, str) or not key:
        raise InvalidConfiguration("key must be a non-empty string")


class RateLimiter(ABC):
    """Abstract base class for rate limiters.

    Limiters keep only their configuration; all state lives in the store,
    so one instance can be shared by any number of concurrent callers.
    """

    #: Strategy name used in log context and settings
    algorithm: str = "abstract"

    @property
    @abstractmethod
    def limit(self) -> int:
        """Maximum number of unit-cost requests the key can burst."""
        pass

    @property
    @abstractmethod
    def period(self) -> float:
        """Seconds after which a fully spent budget is restored."""
        pass

    @abstractmethod
    async def check(self, key: str, cost: float = 1) -> RateLimitResult:
        """Consume budget for ``key`` and describe the decision.

        Args:
            key: Rate limit key (e.g. user ID or IP address)
            cost: Units to consume

        Returns:
            RateLimitResult with the decision and metadata

        Raises:
            InvalidConfiguration: If the key or cost is invalid
            StoreUnavailable: If the store could not complete the check
        """
        pass

    async def allow(self, key: str, cost: float = 1) -> bool:
        """Return True if the request for ``key`` may proceed."""
        result = await self.check(key, cost)
        return result.allowed

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Forget all state recorded for ``key``."""
        pass


def require_unit_cost(cost: float) -> None:
    """Window limiters count requests, so every request costs exactly one."""
    if cost != 1:
        raise InvalidConfiguration(
            f"window limiters count requests and only accept cost=1, got {cost!r}"
        )
