"""Counter stores backing the rate limiters.

The in-memory store serves single-process use and tests; the Redis store
shares state across every instance pointed at the same server.
"""

from .base import CounterStore
from .memory import InMemoryStore
from .redis_store import RedisStore

__all__ = [
    "CounterStore",
    "InMemoryStore",
    "RedisStore",
]
