"""Build stores and limiters from settings.

Limiters receive their store explicitly; these helpers only translate
``Settings`` into constructor arguments, so applications can keep several
independent stores in one process.
"""

import time
from typing import Callable, Optional

from keylimiter.core.config import Settings, settings as default_settings
from keylimiter.core.logging import get_logger
from keylimiter.exceptions import InvalidConfiguration
from keylimiter.limiters.base import RateLimiter
from keylimiter.limiters.fixed_window import FixedWindowLimiter
from keylimiter.limiters.policy import FailPolicyLimiter
from keylimiter.limiters.sliding_window import SlidingWindowLimiter
from keylimiter.limiters.token_bucket import TokenBucketLimiter
from keylimiter.stores.base import CounterStore
from keylimiter.stores.memory import InMemoryStore
from keylimiter.stores.redis_store import RedisStore

logger = get_logger(__name__)

ALGORITHMS = ("fixed_window", "sliding_window", "token_bucket")


def create_store(
    settings: Optional[Settings] = None,
    backend: Optional[str] = None,
    clock: Callable[[], float] = time.time,
) -> CounterStore:
    """Create the counter store selected by configuration.

    Args:
        settings: Settings to read, defaults to the module-level instance
        backend: 'memory' or 'redis', overrides settings.store_backend
        clock: Time source for the in-memory store

    Returns:
        A CounterStore instance (InMemoryStore or RedisStore)

    Raises:
        InvalidConfiguration: If the backend name is unknown
    """
    settings = settings or default_settings
    backend = backend or settings.store_backend

    if backend == "redis":
        logger.info("Using Redis counter store")
        return RedisStore(
            redis_url=settings.redis_url,
            socket_timeout=settings.redis_socket_timeout,
        )
    if backend == "memory":
        logger.debug("Using in-memory counter store")
        return InMemoryStore(clock=clock)
    raise InvalidConfiguration(f"Unknown store backend: {backend!r}")


def create_limiter(
    store: CounterStore,
    algorithm: Optional[str] = None,
    settings: Optional[Settings] = None,
    clock: Callable[[], float] = time.time,
) -> RateLimiter:
    """Create a limiter for ``algorithm`` from configuration.

    The limiter is wrapped in FailPolicyLimiter when settings.fail_policy is
    'open' or 'closed'; with 'propagate' store errors reach the caller.

    Args:
        store: Counter store the limiter will use
        algorithm: Strategy name, overrides settings.algorithm
        settings: Settings to read, defaults to the module-level instance
        clock: Time source for the limiter

    Raises:
        InvalidConfiguration: If the algorithm is unknown or parameters are invalid
    """
    settings = settings or default_settings
    algorithm = algorithm or settings.algorithm
    prefix = f"{settings.key_prefix}:{algorithm}"

    if algorithm == "fixed_window":
        window = settings.window_seconds
        if not float(window).is_integer():
            raise InvalidConfiguration(
                f"fixed_window needs a whole number of seconds, got {window!r}"
            )
        limiter: RateLimiter = FixedWindowLimiter(
            store,
            limit=settings.limit,
            window_seconds=int(window),
            prefix=prefix,
            clock=clock,
        )
    elif algorithm == "sliding_window":
        limiter = SlidingWindowLimiter(
            store,
            limit=settings.limit,
            window_seconds=settings.window_seconds,
            prefix=prefix,
            clock=clock,
        )
    elif algorithm == "token_bucket":
        limiter = TokenBucketLimiter(
            store,
            capacity=settings.capacity,
            refill_rate=settings.refill_rate,
            prefix=prefix,
            state_ttl=settings.bucket_state_ttl,
            clock=clock,
        )
    else:
        raise InvalidConfiguration(
            f"Unknown algorithm {algorithm!r}, expected one of {', '.join(ALGORITHMS)}"
        )

    if settings.fail_policy == "propagate":
        return limiter
    return FailPolicyLimiter(
        limiter, fail_closed=settings.fail_policy == "closed", clock=clock
    )
