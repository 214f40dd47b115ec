"""Rate limiting data models.

This module contains dataclasses for rate limit results and bucket state.
"""

import json
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per window (or bucket capacity, rounded down).
        remaining: Whole units left after this request (0 when denied).
        reset_at: UNIX epoch seconds when the budget is next replenished.
        retry_after: Seconds to wait before retrying, None when allowed.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: Optional[int] = None


@dataclass(frozen=True)
class BucketState:
    """Token bucket state as persisted in the store."""

    tokens: float
    last_refill: float

    def to_json(self) -> str:
        """Serialize to the compact JSON string stored under the bucket key."""
        return json.dumps(
            {"tokens": self.tokens, "last_refill": self.last_refill},
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, raw: str) -> "BucketState":
        """Create from the stored JSON string."""
        data = json.loads(raw)
        return cls(tokens=float(data["tokens"]), last_refill=float(data["last_refill"]))
