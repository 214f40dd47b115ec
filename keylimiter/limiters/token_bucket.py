"""Token-bucket rate limiter.

Each key owns a bucket of at most ``capacity`` tokens that refills at
``refill_rate`` tokens per second. A request consumes ``cost`` tokens when
enough are available. The refill-then-consume step is an optimistic
read-modify-write: the new state is written with a compare-and-set against
the value read, and recomputed from fresh state when another caller won the
race. Two callers can never both spend the last token.
"""

import math
import time
from typing import Callable, Optional

from keylimiter.core.logging import get_log_context, get_logger
from keylimiter.exceptions import InvalidConfiguration, StoreUnavailable
from keylimiter.limiters.base import RateLimiter, require_key, require_positive
from keylimiter.limiters.models import BucketState, RateLimitResult
from keylimiter.stores.base import CounterStore

logger = get_logger(__name__)


class TokenBucketLimiter(RateLimiter):
    """Gate requests on a per-key replenishing token budget.

    Store key format: ``{prefix}:{key}`` holding the JSON-encoded
    ``BucketState``. Buckets are created lazily at full capacity and only
    expire if ``state_ttl`` is set.
    """

    algorithm = "token_bucket"

    DEFAULT_MAX_ATTEMPTS = 32

    def __init__(
        self,
        store: CounterStore,
        *,
        capacity: float,
        refill_rate: float,
        prefix: str = "ratelimit:bucket",
        state_ttl: Optional[float] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Counter store holding bucket state
            capacity: Maximum tokens a bucket holds
            refill_rate: Tokens added per second
            prefix: Namespace for store keys
            state_ttl: Optional expiry in seconds for idle bucket state
            max_attempts: Compare-and-set attempts before giving up
            clock: Time source returning UNIX time in seconds

        Raises:
            InvalidConfiguration: If any numeric parameter is not positive
        """
        require_positive("capacity", capacity)
        require_positive("refill_rate", refill_rate)
        require_positive("max_attempts", max_attempts, integer=True)
        if state_ttl is not None:
            require_positive("state_ttl", state_ttl)
        self._store = store
        self._capacity = float(capacity)
        self._refill_rate = float(refill_rate)
        self._prefix = prefix
        self._state_ttl = state_ttl
        self._max_attempts = int(max_attempts)
        self._clock = clock

    @property
    def capacity(self) -> float:
        return self._capacity

    @property
    def refill_rate(self) -> float:
        return self._refill_rate

    @property
    def limit(self) -> int:
        return int(self._capacity)

    @property
    def period(self) -> float:
        return self._capacity / self._refill_rate

    def _store_key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def _validate_cost(self, cost: float) -> None:
        require_positive("cost", cost)
        if cost > self._capacity:
            raise InvalidConfiguration(
                f"cost {cost!r} exceeds bucket capacity {self._capacity!r} and can never be satisfied"
            )

    def _decode(self, raw: Optional[str], now: float) -> BucketState:
        if raw is None:
            return BucketState(tokens=self._capacity, last_refill=now)
        try:
            return BucketState.from_json(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.error(
                f"Corrupt token bucket state: {e}",
                extra=get_log_context(limiter=self.algorithm, operation="get"),
            )
            raise StoreUnavailable("get", "corrupt bucket state") from e

    def _refill(self, state: BucketState, now: float) -> tuple[float, float]:
        """Return (refilled tokens, refill timestamp) at ``now``."""
        # A clock behind the stored timestamp (skew between hosts) adds nothing
        refill_at = max(now, state.last_refill)
        elapsed = refill_at - state.last_refill
        refilled = min(self._capacity, state.tokens + elapsed * self._refill_rate)
        return refilled, refill_at

    async def check(self, key: str, cost: float = 1) -> RateLimitResult:
        """Refill the bucket for ``key`` and try to spend ``cost`` tokens.

        Raises:
            InvalidConfiguration: If cost is not positive or exceeds capacity
            StoreUnavailable: If the store fails or the compare-and-set keeps
                losing to concurrent writers
        """
        require_key(key)
        self._validate_cost(cost)
        store_key = self._store_key(key)

        for _ in range(self._max_attempts):
            raw = await self._store.get(store_key)
            now = self._clock()
            refilled, refill_at = self._refill(self._decode(raw, now), now)

            allowed = refilled >= cost
            tokens = refilled - cost if allowed else refilled
            new_state = BucketState(tokens=tokens, last_refill=refill_at)

            # Denied requests still persist the refill so it is not lost
            if await self._store.get_and_set(
                store_key, new_state.to_json(), raw, ttl=self._state_ttl
            ):
                return self._build_result(key, allowed, tokens, cost, refill_at)

        logger.error(
            f"Token bucket update lost {self._max_attempts} compare-and-set races",
            extra=get_log_context(limiter=self.algorithm, key=key, operation="get_and_set"),
        )
        raise StoreUnavailable(
            "get_and_set", f"contention exceeded {self._max_attempts} attempts"
        )

    def _build_result(
        self, key: str, allowed: bool, tokens: float, cost: float, now: float
    ) -> RateLimitResult:
        """Build a RateLimitResult from the persisted bucket state."""
        reset_at = math.ceil(now + (self._capacity - tokens) / self._refill_rate)
        if allowed:
            logger.debug(
                f"Token bucket allowed, {tokens:.3f}/{self._capacity} tokens left",
                extra=get_log_context(limiter=self.algorithm, key=key, allowed=True),
            )
            return RateLimitResult(
                allowed=True,
                limit=self.limit,
                remaining=int(tokens),
                reset_at=reset_at,
            )

        retry_after = math.ceil((cost - tokens) / self._refill_rate)
        logger.info(
            "Token bucket exhausted",
            extra=get_log_context(
                limiter=self.algorithm, key=key, allowed=False, retry_after=retry_after
            ),
        )
        return RateLimitResult(
            allowed=False,
            limit=self.limit,
            remaining=0,
            reset_at=reset_at,
            retry_after=retry_after,
        )

    async def reset(self, key: str) -> None:
        """Refill the bucket for ``key`` by discarding its state."""
        require_key(key)
        await self._store.delete(self._store_key(key))
