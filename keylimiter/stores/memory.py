"""In-process counter store.

State lives in an ``OrderedDict``; each key is guarded by its own
``threading.Lock`` so operations on different keys never wait on each other.
None of the locked sections await, so the same locks serialize tasks on one
event loop and threads running their own loops. Suitable for single-process
deployments and tests. Running several worker processes gives each one an
independent budget.

Memory optimization:
- Expired entries are swept every ``sweep_interval`` new keys
- Limits max entries to prevent unbounded memory growth (LRU eviction)
- Per-key locks are dropped as soon as no caller holds or waits on them
"""

import threading
import time
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

from keylimiter.core.logging import get_log_context, get_logger
from keylimiter.exceptions import InvalidConfiguration, StoreUnavailable
from keylimiter.stores.base import CounterStore

logger = get_logger(__name__)


@dataclass
class _Entry:
    """Internal store entry with TTL tracking."""

    value: int | str | dict[str, float]
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        """Check if the entry has expired."""
        if self.expires_at is None:
            return False
        return now >= self.expires_at


@dataclass
class _KeyLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class _KeyLocks:
    """Lazily created per-key locks, released once unused."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, _KeyLock] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            key_lock = self._locks.get(key)
            if key_lock is None:
                key_lock = self._locks[key] = _KeyLock()
            key_lock.users += 1
        try:
            with key_lock.lock:
                yield
        finally:
            with self._guard:
                key_lock.users -= 1
                if key_lock.users == 0:
                    del self._locks[key]


class InMemoryStore(CounterStore):
    """In-memory counter store with TTL support.

    Expiry is evaluated lazily against ``clock`` on every access. Keys that
    are never read again (old fixed windows) are purged by the periodic
    sweep or by ``cleanup_expired``.

    Note: This store is not distributed and data is lost when the
    process exits. Keys evicted by the ``max_entries`` bound start over
    with a fresh budget.
    """

    name = "memory"

    DEFAULT_MAX_ENTRIES = 100_000
    DEFAULT_SWEEP_INTERVAL = 1000

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        max_entries: Optional[int] = DEFAULT_MAX_ENTRIES,
        sweep_interval: int = DEFAULT_SWEEP_INTERVAL,
    ) -> None:
        """Initialize the in-memory store.

        Args:
            clock: Time source returning UNIX time in seconds. Must be the
                same clock the limiters use so expiry lines up with windows.
            max_entries: Maximum number of keys to keep (LRU eviction), or
                None for no bound
            sweep_interval: Number of newly created keys between sweeps of
                expired entries
        """
        if max_entries is not None and max_entries < 1:
            raise InvalidConfiguration("max_entries must be positive")
        if sweep_interval < 1:
            raise InvalidConfiguration("sweep_interval must be positive")
        self._clock = clock
        self._max_entries = max_entries
        self._sweep_interval = sweep_interval
        self._data: OrderedDict[str, _Entry] = OrderedDict()
        self._data_guard = threading.Lock()
        self._inserts_since_sweep = 0
        self._locks = _KeyLocks()

    def __len__(self) -> int:
        return len(self._data)

    def _live(self, key: str) -> _Entry | None:
        """Return the live entry for a key the caller holds the lock of."""
        with self._data_guard:
            entry = self._data.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._data[key]
                return None
            self._data.move_to_end(key)
            return entry

    def _put(self, key: str, entry: _Entry) -> None:
        with self._data_guard:
            is_new = key not in self._data
            self._data[key] = entry
            self._data.move_to_end(key)
            if not is_new:
                return
            self._inserts_since_sweep += 1
            if self._inserts_since_sweep >= self._sweep_interval:
                self._purge_expired()
            self._enforce_lru_limit()

    def _purge_expired(self) -> int:
        """Drop expired entries. Caller holds ``_data_guard``."""
        now = self._clock()
        expired_keys = [
            key for key, entry in self._data.items() if entry.is_expired(now)
        ]
        for key in expired_keys:
            del self._data[key]
        self._inserts_since_sweep = 0
        if expired_keys:
            logger.debug(f"Purged {len(expired_keys)} expired keys from memory store")
        return len(expired_keys)

    def _enforce_lru_limit(self) -> None:
        """Enforce max entries limit using LRU eviction."""
        if self._max_entries is None or len(self._data) <= self._max_entries:
            return
        self._purge_expired()
        evicted = 0
        while len(self._data) > self._max_entries:
            self._data.popitem(last=False)
            evicted += 1
        if evicted:
            logger.warning(
                f"Memory store full, evicted {evicted} least recently used keys",
                extra=get_log_context(store=self.name),
            )

    def _wrong_type(self, operation: str, key: str, expected: str) -> StoreUnavailable:
        logger.error(
            f"Key does not hold {expected}",
            extra=get_log_context(key=key, store=self.name, operation=operation),
        )
        return StoreUnavailable(operation, "wrong type")

    def _zset(
        self, operation: str, key: str, create: bool = False
    ) -> dict[str, float] | None:
        entry = self._live(key)
        if entry is None:
            if not create:
                return None
            entry = _Entry(value={})
            self._put(key, entry)
        if not isinstance(entry.value, dict):
            raise self._wrong_type(operation, key, "an ordered set")
        return entry.value

    async def increment_and_expire(self, key: str, ttl: float) -> int:
        with self._locks.hold(key):
            entry = self._live(key)
            if entry is None:
                entry = _Entry(value=0, expires_at=self._expiry(ttl))
                self._put(key, entry)
            if not isinstance(entry.value, int):
                raise self._wrong_type("increment_and_expire", key, "a counter")
            entry.value += 1
            return entry.value

    def _expiry(self, ttl: float | None) -> float | None:
        return self._clock() + ttl if ttl is not None and ttl > 0 else None

    async def add_to_ordered_set(self, key: str, member: str, score: float) -> None:
        with self._locks.hold(key):
            self._zset("add_to_ordered_set", key, create=True)[member] = score

    async def remove_range_by_score(
        self, key: str, min_score: float, max_score: float
    ) -> int:
        with self._locks.hold(key):
            members = self._zset("remove_range_by_score", key)
            if not members:
                return 0
            stale = [m for m, s in members.items() if min_score <= s <= max_score]
            for member in stale:
                del members[member]
            return len(stale)

    async def remove_from_ordered_set(self, key: str, member: str) -> int:
        with self._locks.hold(key):
            members = self._zset("remove_from_ordered_set", key)
            if not members or member not in members:
                return 0
            del members[member]
            return 1

    async def count(self, key: str) -> int:
        with self._locks.hold(key):
            members = self._zset("count", key)
            return len(members) if members else 0

    async def record_in_window(
        self,
        key: str,
        member: str,
        score: float,
        min_score: float,
        limit: int,
        ttl: float,
    ) -> int:
        with self._locks.hold(key):
            entry = self._live(key)
            if entry is None:
                entry = _Entry(value={})
                self._put(key, entry)
            if not isinstance(entry.value, dict):
                raise self._wrong_type("record_in_window", key, "an ordered set")
            members = entry.value
            # Scores equal to min_score stay in the window
            for stale in [m for m, s in members.items() if s < min_score]:
                del members[stale]
            members[member] = score
            current = len(members)
            if current > limit:
                del members[member]
            else:
                entry.expires_at = self._expiry(ttl)
            return current

    async def get(self, key: str) -> str | None:
        with self._locks.hold(key):
            entry = self._live(key)
            if entry is None:
                return None
            return str(entry.value)

    async def get_and_set(
        self,
        key: str,
        value: str,
        expected_previous: str | None,
        ttl: float | None = None,
    ) -> bool:
        with self._locks.hold(key):
            entry = self._live(key)
            current = None if entry is None else str(entry.value)
            if current != expected_previous:
                return False
            self._put(key, _Entry(value=value, expires_at=self._expiry(ttl)))
            return True

    async def delete(self, key: str) -> None:
        with self._locks.hold(key):
            with self._data_guard:
                self._data.pop(key, None)

    async def cleanup_expired(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        with self._data_guard:
            return self._purge_expired()
