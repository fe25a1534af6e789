"""DataAccessService: the single read/write contract over the document backend.

Reads go cache -> in-flight dedup -> rate limiter -> retry policy -> backend,
and populate the cache. Writes go to the backend when online (rate limited,
retried, then invalidating stale cache entries) and to the durable offline
queue otherwise. A write also joins the queue while an earlier write to the
same record is still in it, so records never change out of order. The queue
is replayed when the connection comes back.
"""

import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set

from storesync.core.context import ResilienceContext
from storesync.domain.events.access_events import (
    ConnectionChanged, EventListener, QueueDrained, WriteQueued, log_event,
)
from storesync.domain.exceptions import (
    OfflineQueuedSignal, RateLimitError, RetryExhaustedError, StoreSyncError,
)
from storesync.domain.interfaces.backend import DocumentBackend
from storesync.domain.models.common import CacheKey, CachePrefix, MetricsSnapshot
from storesync.domain.models.operations import (
    DrainReport, OperationKind, QueuedOperation, WriteOperation,
)
from storesync.domain.models.query import Increment
from storesync.infrastructure.connectivity.connection_monitor import ConnectionCallback, Subscription

logger = logging.getLogger(__name__)

Fetch = Callable[[], Awaitable[Any]]
OperationHandler = Callable[[DocumentBackend, WriteOperation], Awaitable[Any]]


# --- Replay handlers: one per OperationKind, keyed by name so queued
# descriptors can be dispatched after a restart ---

async def _handle_create(backend: DocumentBackend, op: WriteOperation) -> Any:
    return await backend.create(op.collection, op.payload)


async def _handle_set(backend: DocumentBackend, op: WriteOperation) -> Any:
    await backend.set(op.collection, op.record_id, op.payload)
    return op.record_id


async def _handle_update(backend: DocumentBackend, op: WriteOperation) -> Any:
    await backend.update(op.collection, op.record_id, op.payload)
    return op.record_id


async def _handle_delete(backend: DocumentBackend, op: WriteOperation) -> Any:
    await backend.delete(op.collection, op.record_id)
    return op.record_id


async def _handle_increment(backend: DocumentBackend, op: WriteOperation) -> Any:
    field_name = op.payload["field"]
    amount = op.payload.get("amount", 1)
    await backend.update(op.collection, op.record_id, {field_name: Increment(amount)})
    return op.record_id


DEFAULT_HANDLERS: Dict[OperationKind, OperationHandler] = {
    OperationKind.CREATE: _handle_create,
    OperationKind.SET: _handle_set,
    OperationKind.UPDATE: _handle_update,
    OperationKind.DELETE: _handle_delete,
    OperationKind.INCREMENT: _handle_increment,
}


class DataAccessService:
    """Orchestrates cache, rate limiter, retry policy, offline queue and connection monitor."""

    def __init__(
        self,
        context: ResilienceContext,
        backend: DocumentBackend,
        queue_on_failure: bool = True,
        event_listener: Optional[EventListener] = None,
    ):
        """Initializes the service and subscribes to connection changes.

        Args:
            context: Shared resilience components.
            backend: Document backend all calls go to.
            queue_on_failure: Queue online writes whose retries were exhausted
                on a transient error instead of failing them.
            event_listener: Optional receiver of domain events.
        """
        self.context = context
        self.backend = backend
        self.queue_on_failure = queue_on_failure
        self.event_listener = event_listener
        self._handlers: Dict[OperationKind, OperationHandler] = dict(DEFAULT_HANDLERS)
        self._in_flight: Dict[CacheKey, "asyncio.Future[Any]"] = {}
        self._drain_tasks: Set["asyncio.Task[Any]"] = set()
        self._subscription: Optional[Subscription] = context.connection_monitor.on_change(self._on_connection_change)

    # --- Handler registry ---

    def register_handler(self, kind: OperationKind, handler: OperationHandler) -> None:
        self._handlers[kind] = handler

    async def _dispatch(self, operation: WriteOperation) -> Any:
        handler = self._handlers.get(operation.kind)
        if handler is None:
            raise ValueError(f"No handler registered for operation kind {operation.kind.value!r}")
        return await handler(self.backend, operation)

    # --- Reads ---

    async def read(
        self,
        cache_key: CacheKey,
        fetch: Fetch,
        *,
        use_cache: bool = True,
        retries: Optional[int] = None,
    ) -> Any:
        """Returns the value for `cache_key`, fetching it from the backend on a miss.

        Concurrent reads of the same key share one backend call.

        Raises:
            RateLimitError: The rate limiter denied the backend call.
            TerminalBackendError: The backend rejected the call.
            RetryExhaustedError: Every retry failed with a transient error.
        """
        metrics = self.context.metrics
        if use_cache:
            cached = self.context.cache.get(cache_key)
            if cached is not None:
                metrics.increment("cache_hits")
                logger.debug(f"Cache hit for key: {cache_key}")
                return cached
            metrics.increment("cache_misses")

        # Everything below up to the first await must stay synchronous so a
        # concurrent caller sees the in-flight entry.
        in_flight = self._in_flight.get(cache_key)
        if in_flight is not None:
            metrics.increment("deduplicated_reads")
            logger.debug(f"Joining in-flight request for key: {cache_key}")
            return await asyncio.shield(in_flight)

        limiter = self.context.rate_limiter
        if not limiter.try_acquire():
            metrics.increment("rate_limit_rejections")
            raise RateLimitError(retry_after=limiter.wait_time(), operation="read", cache_key=cache_key)

        task = asyncio.ensure_future(self._fetch(cache_key, fetch, use_cache, retries))
        self._in_flight[cache_key] = task
        task.add_done_callback(partial(self._forget_in_flight, cache_key))
        return await asyncio.shield(task)

    def _forget_in_flight(self, cache_key: CacheKey, task: "asyncio.Future[Any]") -> None:
        if self._in_flight.get(cache_key) is task:
            del self._in_flight[cache_key]
        if not task.cancelled():
            # Mark the exception retrieved; every waiter already received it
            task.exception()

    async def _fetch(self, cache_key: CacheKey, fetch: Fetch, use_cache: bool, retries: Optional[int]) -> Any:
        self.context.metrics.increment("network_requests")
        try:
            result = await self.context.retry_policy.execute(fetch, max_retries=retries, name=f"read {cache_key}")
        except StoreSyncError as e:
            self.context.metrics.increment("network_errors")
            raise e.add_context(operation="read", cache_key=cache_key)
        if use_cache and result is not None:
            self.context.cache.set(cache_key, result)
        return result

    # --- Writes ---

    async def write(
        self,
        operation: WriteOperation,
        backend_write: Optional[Fetch] = None,
        affected_cache_keys: Optional[Iterable[CacheKey]] = None,
    ) -> Any:
        """Applies `operation` now, or queues it when offline.

        Args:
            operation: Serializable description of the write. It is what gets
                queued and later replayed through the handler registry.
            backend_write: Optional call used instead of the registered handler
                while online.
            affected_cache_keys: Extra exact keys to invalidate on success.

        Returns:
            The backend result (the new id for creates).

        Raises:
            OfflineQueuedSignal: The write was queued and will sync later. This
                also happens online while an earlier write to the same record
                is still queued.
            QueueFullError: The write had to be queued and the queue is at capacity.
            RateLimitError: The rate limiter denied the backend call.
            TerminalBackendError: The backend rejected the write.
            RetryExhaustedError: Retries ran out and queue_on_failure is off.
        """
        extra_keys = list(affected_cache_keys or ())
        if not self.context.connection_monitor.is_online():
            raise await self._enqueue(operation, reason="offline")

        resource = operation.resource_key
        if resource is not None and await self.context.offline_queue.has_pending_for(resource):
            logger.info(f"Queueing {operation.describe()} behind an earlier queued write to {resource}.")
            raise await self._enqueue(operation, reason="ordering")

        limiter = self.context.rate_limiter
        if not limiter.try_acquire():
            self.context.metrics.increment("rate_limit_rejections")
            raise RateLimitError(retry_after=limiter.wait_time(), operation=operation.describe())

        call = backend_write or partial(self._dispatch, operation)
        self.context.metrics.increment("network_requests")
        try:
            result = await self.context.retry_policy.execute(call, name=operation.describe())
        except RetryExhaustedError as e:
            self.context.metrics.increment("network_errors")
            e.add_context(operation=operation.describe())
            if not self.queue_on_failure:
                raise
            logger.warning(f"Write {operation.describe()} exhausted retries; queueing for later sync.")
            raise await self._enqueue(operation, reason="retries-exhausted") from e
        except StoreSyncError as e:
            self.context.metrics.increment("network_errors")
            raise e.add_context(operation=operation.describe())

        self._invalidate(operation, extra_keys)
        return result

    async def _enqueue(self, operation: WriteOperation, reason: str) -> OfflineQueuedSignal:
        """Queues `operation` and returns the signal to raise (QueueFullError when full)."""
        op_id = await self.context.offline_queue.enqueue(operation)
        self.context.metrics.increment("queued_writes")
        await self.refresh_queue_depth()
        log_event(logger, WriteQueued(operation_id=op_id, description=operation.describe(), reason=reason),
                  self.event_listener)
        return OfflineQueuedSignal(op_id, operation.describe())

    def _invalidate(self, operation: WriteOperation, extra_keys: Iterable[CacheKey] = ()) -> None:
        cache = self.context.cache
        for key in list(operation.invalidate_keys) + list(extra_keys):
            cache.invalidate(key)
        prefixes = {CachePrefix(f"{operation.collection}:")} | set(operation.invalidate_prefixes)
        for prefix in prefixes:
            cache.invalidate_by_prefix(prefix)

    # --- Offline queue replay ---

    async def _replay(self, queued: QueuedOperation) -> None:
        await self.context.rate_limiter.wait_for_permission()
        self.context.metrics.increment("network_requests")
        try:
            await self.context.retry_policy.execute(
                partial(self._dispatch, queued.operation), name=f"replay #{queued.id} {queued.operation.describe()}"
            )
        except StoreSyncError:
            self.context.metrics.increment("network_errors")
            raise
        self._invalidate(queued.operation)

    async def drain_queue(self) -> Optional[DrainReport]:
        """Replays queued writes now. Returns None if a drain was already running."""
        report = await self.context.offline_queue.drain(
            self._replay, is_online=self.context.connection_monitor.is_online
        )
        await self.refresh_queue_depth()
        if report is not None:
            self.context.metrics.increment("replayed_operations", len(report.replayed))
            self.context.metrics.increment("failed_replays", len(report.failed))
            log_event(logger, QueueDrained(
                replayed=len(report.replayed), failed=len(report.failed), deferred=len(report.deferred),
            ), self.event_listener)
        return report

    async def refresh_queue_depth(self) -> int:
        depth = await self.context.offline_queue.size()
        self.context.metrics.set_gauge("queue_depth", depth)
        return depth

    async def start(self) -> None:
        """Picks up writes persisted by a previous run and replays them if online."""
        depth = await self.refresh_queue_depth()
        if depth:
            logger.info(f"Found {depth} queued operation(s) from a previous session.")
            if self.context.connection_monitor.is_online():
                await self.drain_queue()

    def _on_connection_change(self, online: bool) -> None:
        log_event(logger, ConnectionChanged(online=online), self.event_listener)
        if not online:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Connection restored outside an event loop; call drain_queue() to sync.")
            return
        task = loop.create_task(self.drain_queue())
        self._drain_tasks.add(task)
        task.add_done_callback(self._drain_finished)

    def _drain_finished(self, task: "asyncio.Task[Any]") -> None:
        self._drain_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background queue drain failed: {error}", exc_info=error)

    async def wait_for_drains(self) -> None:
        """Waits for every drain scheduled by a reconnect to finish."""
        while self._drain_tasks:
            await asyncio.gather(*list(self._drain_tasks), return_exceptions=True)

    # --- Passthroughs ---

    def get_metrics(self) -> MetricsSnapshot:
        return self.context.metrics.snapshot()

    def reset_metrics(self) -> None:
        self.context.metrics.reset()

    def on_connection_change(self, callback: ConnectionCallback) -> Subscription:
        return self.context.connection_monitor.on_change(callback)

    async def close(self) -> None:
        """Stops reacting to connection changes and waits for running drains."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        await self.wait_for_drains()
