"""In-memory LRU cache with lazy TTL expiry.

Entries are kept in an OrderedDict whose order is recency: a hit moves the
entry to the end, eviction pops from the front. Expiry is only checked when
a key is read; there is no background sweeper.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

from storesync.domain.interfaces.cache import CacheService
from storesync.domain.models.common import CacheKey, CachePrefix

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 100
DEFAULT_TTL_SECONDS = 5 * 60  # 5 minutes


@dataclass
class CacheEntry:
    """Internal representation of a cache entry."""
    value: Any
    stored_at: float


class LRUCache(CacheService):
    """Bounded, time-expiring key/value store with least-recently-used eviction."""

    def __init__(
        self,
        max_items: int = DEFAULT_MAX_ITEMS,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the cache.

        Args:
            max_items: Capacity; inserting beyond it evicts the LRU entry.
            ttl_seconds: Age after which an entry is treated as absent.
            clock: Monotonic time source (injectable for tests).
        """
        if max_items <= 0:
            raise ValueError("Cache capacity must be positive.")
        if ttl_seconds <= 0:
            raise ValueError("Cache TTL must be positive.")
        self.max_items = max_items
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[CacheKey, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        logger.info(f"LRUCache initialized: max_items={max_items}, ttl={ttl_seconds}s")

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.stored_at > self.ttl_seconds

    def get(self, key: CacheKey) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                logger.debug(f"Cache EXPIRED key: {key}")
                return None
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: CacheKey, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_items:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.debug(f"Cache EVICTED key (LRU): {evicted_key}")
            self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def invalidate(self, key: CacheKey) -> None:
        with self._lock:
            if self._entries.pop(key, None) is not None:
                logger.debug(f"Cache invalidated key: {key}")

    def invalidate_by_prefix(self, prefix: CachePrefix) -> int:
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
        if doomed:
            logger.debug(f"Cache invalidated {len(doomed)} key(s) with prefix: {prefix}")
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Cleared in-memory cache.")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        # Physical presence only; does not touch recency or expiry.
        with self._lock:
            return key in self._entries
