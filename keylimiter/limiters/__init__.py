"""Rate limiting strategies.

Fixed window, sliding window and token bucket are independent strategies
over the same counter store; pick whichever trade-off suits the endpoint.
"""

from keylimiter.limiters.base import RateLimiter
from keylimiter.limiters.fixed_window import FixedWindowLimiter
from keylimiter.limiters.models import BucketState, RateLimitResult
from keylimiter.limiters.policy import FailPolicyLimiter
from keylimiter.limiters.sliding_window import SlidingWindowLimiter
from keylimiter.limiters.token_bucket import TokenBucketLimiter

__all__ = [
    # Models
    "RateLimitResult",
    "BucketState",
    # Strategies
    "RateLimiter",
    "FixedWindowLimiter",
    "SlidingWindowLimiter",
    "TokenBucketLimiter",
    # Policies
    "FailPolicyLimiter",
]
