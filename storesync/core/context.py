"""The resilience context: the shared cache, limiter, queue, monitor and retry policy.

One context is built per composition root and passed to every service that
needs it. Nothing here is a module-level singleton, so tests can build as
many isolated contexts as they like.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from storesync.domain.interfaces.cache import CacheService
from storesync.domain.interfaces.storage import KeyValueStore
from storesync.infrastructure.cache.lru_cache import LRUCache
from storesync.infrastructure.config.settings import ResilienceSettings
from storesync.infrastructure.connectivity.connection_monitor import ConnectionMonitor
from storesync.infrastructure.monitoring.metrics import MetricsTracker
from storesync.infrastructure.queue.offline_queue import OfflineQueue
from storesync.infrastructure.resilience.rate_limiter import TokenBucketRateLimiter
from storesync.infrastructure.resilience.retry import RetryPolicy
from storesync.infrastructure.storage.disk_store import DiskKeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class ResilienceContext:
    cache: CacheService
    rate_limiter: TokenBucketRateLimiter
    offline_queue: OfflineQueue
    connection_monitor: ConnectionMonitor
    retry_policy: RetryPolicy
    metrics: MetricsTracker = field(default_factory=MetricsTracker)

    @classmethod
    def from_settings(
        cls,
        settings: ResilienceSettings,
        store: Optional[KeyValueStore] = None,
        initially_online: bool = True,
    ) -> "ResilienceContext":
        """Builds a context from configuration.

        Args:
            settings: Tuning knobs (see ResilienceSettings).
            store: Durable store for the offline queue; a DiskKeyValueStore in
                `settings.queue_directory` when omitted.
            initially_online: Starting connection state.
        """
        if store is None:
            store = DiskKeyValueStore(settings.queue_directory)
        context = cls(
            cache=LRUCache(max_items=settings.cache_max_items, ttl_seconds=settings.cache_ttl_seconds),
            rate_limiter=TokenBucketRateLimiter(
                max_tokens=settings.rate_limit_max_tokens,
                refill_rate=settings.rate_limit_refill_rate,
            ),
            offline_queue=OfflineQueue(
                store,
                max_size=settings.queue_max_size,
                replay_delay=settings.queue_replay_delay,
            ),
            connection_monitor=ConnectionMonitor(initially_online=initially_online),
            retry_policy=RetryPolicy(
                max_retries=settings.retry_max_retries,
                base_delay=settings.retry_base_delay,
                attempt_timeout=settings.retry_attempt_timeout,
                jitter=settings.retry_jitter,
            ),
        )
        logger.info("Resilience context created.")
        return context
