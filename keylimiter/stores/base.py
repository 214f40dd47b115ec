"""Counter store abstraction.

Limiters depend only on this interface, so any key-value engine offering
atomic increment-with-expiry, atomic ordered-set mutation and
compare-and-set can back them.
"""

from abc import ABC, abstractmethod


class CounterStore(ABC):
    """Abstract base class for counter stores.

    Every operation may raise ``StoreUnavailable``. Implementations must make
    each method atomic with respect to other callers on the same key.
    """

    #: Backend name used in log context
    name: str = "abstract"

    @abstractmethod
    async def increment_and_expire(self, key: str, ttl: float) -> int:
        """Atomically increment a counter.

        Args:
            key: Counter key.
            ttl: Expiry in seconds, applied when the counter is created.

        Returns:
            The post-increment value.
        """
        pass

    @abstractmethod
    async def add_to_ordered_set(self, key: str, member: str, score: float) -> None:
        """Add (or re-score) a member of the ordered set at ``key``."""
        pass

    @abstractmethod
    async def remove_range_by_score(
        self, key: str, min_score: float, max_score: float
    ) -> int:
        """Remove members whose score lies in ``[min_score, max_score]``.

        Returns:
            Number of members removed.
        """
        pass

    @abstractmethod
    async def remove_from_ordered_set(self, key: str, member: str) -> int:
        """Remove a single member. Returns 1 if it was present, else 0."""
        pass

    @abstractmethod
    async def count(self, key: str) -> int:
        """Return the number of members in the ordered set at ``key``."""
        pass

    @abstractmethod
    async def record_in_window(
        self,
        key: str,
        member: str,
        score: float,
        min_score: float,
        limit: int,
        ttl: float,
    ) -> int:
        """Record a request in a sliding window as one atomic unit.

        Drops members scored strictly below ``min_score``, inserts ``member``,
        counts, and removes ``member`` again when the count exceeds ``limit``.
        The key expires ``ttl`` seconds after the last admitted request.

        Returns:
            The member count observed right after insertion.
        """
        pass

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the string value at ``key`` or None if absent."""
        pass

    @abstractmethod
    async def get_and_set(
        self,
        key: str,
        value: str,
        expected_previous: str | None,
        ttl: float | None = None,
    ) -> bool:
        """Compare-and-set.

        Writes ``value`` only if the current value equals
        ``expected_previous`` (None meaning the key is absent).

        Args:
            key: Value key.
            value: New value.
            expected_previous: Value the caller last read.
            ttl: Optional expiry in seconds for the written value.

        Returns:
            True if the write happened, False if the value had changed.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` whatever its type."""
        pass

    async def close(self) -> None:
        """Release resources held by the store."""
        pass
