"""Base class for counter store implementations."""

from abc import ABC, abstractmethod
from typing import Optional, Tuple


class QuotaStore(ABC):
    """
    Minimal key-value contract the quota engine relies on.

    Every operation must be atomic on the store side. Implementations raise
    ``StoreError`` for any backend failure.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[int]:
        """Return the integer stored at ``key`` or None when absent."""

    @abstractmethod
    async def incr(self, key: str) -> int:
        """Atomically increment ``key`` and return the new value."""

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> bool:
        """Set the time-to-live of ``key``. Returns False if the key is missing."""

    @abstractmethod
    async def sadd(self, set_key: str, member: str) -> int:
        """Add ``member`` to a set. Returns the number of members added (0 or 1)."""

    @abstractmethod
    async def scard(self, set_key: str) -> int:
        """Return the cardinality of a set (0 when absent)."""

    @abstractmethod
    async def incr_within_limit(
        self, key: str, limit: int, ttl_seconds: int
    ) -> Tuple[bool, int]:
        """
        Increment a counter only if the result stays within ``limit``.

        The increment, the comparison and the rollback of an excess increment
        happen as one atomic step. A freshly created counter gets
        ``ttl_seconds`` as expiry.

        Args:
            key: Counter key
            limit: Highest value the counter may reach
            ttl_seconds: Expiry applied when the counter has none

        Returns:
            (True, new value) if the increment was kept,
            (False, current value) if it was rolled back
        """

    async def close(self) -> None:
        """Release client resources."""
        return None
