"""Interface for the read cache.

Defines the contract for storing, retrieving and invalidating cached backend
results. Implementations are in-memory and synchronous: no call may block
on I/O, so no lock is ever held across a backend call.
"""

import abc
from typing import Any, Optional

from ..models.common import CacheKey, CachePrefix


class CacheService(abc.ABC):
    """Abstract Base Class for caching operations."""

    @abc.abstractmethod
    def get(self, key: CacheKey) -> Optional[Any]:
        """Retrieves an item from the cache.

        Args:
            key: The cache key to retrieve.

        Returns:
            The cached item if found and not expired, otherwise None.
        """

    @abc.abstractmethod
    def set(self, key: CacheKey, value: Any) -> None:
        """Stores an item, refreshing its recency and timestamp.

        Args:
            key: The cache key to store the item under.
            value: The item to store.
        """

    @abc.abstractmethod
    def invalidate(self, key: CacheKey) -> None:
        """Removes a single key (no-op when absent)."""

    @abc.abstractmethod
    def invalidate_by_prefix(self, prefix: CachePrefix) -> int:
        """Removes every key starting with `prefix`.

        Returns:
            The number of entries removed.
        """

    @abc.abstractmethod
    def clear(self) -> None:
        """Clears all items from the cache."""

    @abc.abstractmethod
    def __len__(self) -> int:
        """Number of physically stored entries (expired ones included until touched)."""
