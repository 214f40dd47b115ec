"""Rate limiting over a shared key-value store.

Example:
    >>> from keylimiter import InMemoryStore, SlidingWindowLimiter
    >>> limiter = SlidingWindowLimiter(InMemoryStore(), limit=10, window_seconds=60)
    >>> await limiter.allow("user-42")
    True
"""

from keylimiter.exceptions import InvalidConfiguration, RateLimitError, StoreUnavailable
from keylimiter.factory import create_limiter, create_store
from keylimiter.limiters import (
    BucketState,
    FailPolicyLimiter,
    FixedWindowLimiter,
    RateLimiter,
    RateLimitResult,
    SlidingWindowLimiter,
    TokenBucketLimiter,
)
from keylimiter.stores import CounterStore, InMemoryStore, RedisStore

__version__ = "0.1.0"

__all__ = [
    # Errors
    "RateLimitError",
    "StoreUnavailable",
    "InvalidConfiguration",
    # Stores
    "CounterStore",
    "InMemoryStore",
    "RedisStore",
    # Limiters
    "RateLimiter",
    "RateLimitResult",
    "BucketState",
    "FixedWindowLimiter",
    "SlidingWindowLimiter",
    "TokenBucketLimiter",
    "FailPolicyLimiter",
    # Factory
    "create_store",
    "create_limiter",
]
