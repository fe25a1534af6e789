"""Durable FIFO queue of writes made while offline.

Each queued operation is stored as a JSON-compatible dict under its own key
in a `KeyValueStore`, next to a persisted id counter, so queued writes
survive a process restart and keep their submission order.

Replay (`drain`) walks the queue in id order. A failure blocks every later
operation on the same record for the rest of the pass, so two writes to one
record can never apply out of order; writes to other records carry on.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional, Set

from storesync.domain.exceptions import QueueFullError, TerminalBackendError
from storesync.domain.interfaces.storage import KeyValueStore
from storesync.domain.models.common import OperationId
from storesync.domain.models.operations import (
    DrainReport, OperationStatus, QueuedOperation, WriteOperation,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 100
DEFAULT_REPLAY_DELAY_S = 0.1
DEFAULT_NAMESPACE = "offline-queue"

ReplayFunc = Callable[[QueuedOperation], Awaitable[None]]


class OfflineQueue:
    """Bounded, persistent, ordered queue of pending write operations."""

    def __init__(
        self,
        store: KeyValueStore,
        max_size: int = DEFAULT_MAX_SIZE,
        replay_delay: float = DEFAULT_REPLAY_DELAY_S,
        namespace: str = DEFAULT_NAMESPACE,
    ):
        """Initializes the queue.

        Args:
            store: Durable key-value store holding the entries.
            max_size: Capacity; enqueue beyond it raises QueueFullError.
            replay_delay: Pause in seconds between replayed operations.
            namespace: Key prefix, so several queues can share one store.
        """
        if max_size <= 0:
            raise ValueError("Queue capacity must be positive.")
        self.store = store
        self.max_size = max_size
        self.replay_delay = replay_delay
        self.namespace = namespace
        self._op_prefix = f"{namespace}:op:"
        self._counter_key = f"{namespace}:next-id"
        self._enqueue_lock = asyncio.Lock()
        self._draining = False
        self._drain_requested = False
        logger.info(f"OfflineQueue initialized: namespace={namespace}, max_size={max_size}")

    def _key(self, op_id: int) -> str:
        # Zero-padded so lexical and numeric order agree
        return f"{self._op_prefix}{int(op_id):012d}"

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def enqueue(self, operation: WriteOperation) -> OperationId:
        """Persists `operation` at the tail of the queue.

        Raises:
            QueueFullError: When the queue already holds `max_size` entries.
        """
        async with self._enqueue_lock:
            depth = await self.size()
            if depth >= self.max_size:
                logger.error(f"Offline queue full ({depth}/{self.max_size}); rejecting {operation.describe()}")
                raise QueueFullError(self.max_size, operation=operation.describe())
            next_id = int(await self.store.get(self._counter_key, 1))
            await self.store.put(self._counter_key, next_id + 1)
            queued = QueuedOperation(id=OperationId(next_id), operation=operation, enqueued_at=time.time())
            await self.store.put(self._key(next_id), queued.to_dict())
            if self._draining:
                # The running pass listed the queue before this entry existed
                self._drain_requested = True
        logger.info(f"Queued offline operation #{next_id}: {operation.describe()} (depth {depth + 1})")
        return queued.id

    async def list_pending(self) -> List[QueuedOperation]:
        """Every operation not yet replayed, oldest first (failed ones included).

        Entries that no longer parse are dropped from the store, since they can
        never be replayed.
        """
        raw = await self.store.list_all(self._op_prefix)
        operations = []
        for key, data in raw.items():
            try:
                operations.append(QueuedOperation.from_dict(data))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Dropping corrupt offline queue entry {key}: {e}")
                await self.store.delete(key)
        operations.sort(key=lambda op: op.id)
        return operations

    async def has_pending_for(self, resource_key: str) -> bool:
        """True if an earlier write to `resource_key` is still queued (pending or failed)."""
        return any(queued.operation.resource_key == resource_key for queued in await self.list_pending())

    async def get(self, op_id: int) -> Optional[QueuedOperation]:
        data = await self.store.get(self._key(op_id))
        return QueuedOperation.from_dict(data) if data is not None else None

    async def update(self, queued: QueuedOperation) -> None:
        await self.store.put(self._key(queued.id), queued.to_dict())

    async def remove(self, op_id: int) -> None:
        await self.store.delete(self._key(op_id))
        logger.debug(f"Removed offline operation #{op_id}")

    async def size(self) -> int:
        return len(await self.list_pending())

    async def clear(self) -> None:
        """Drops every queued operation. The id counter is kept so ids stay unique."""
        keys = list((await self.store.list_all(self._op_prefix)).keys())
        for key in keys:
            await self.store.delete(key)
        logger.info(f"Cleared offline queue ({len(keys)} operations dropped).")

    async def drain(
        self,
        replay: ReplayFunc,
        is_online: Optional[Callable[[], bool]] = None,
    ) -> Optional[DrainReport]:
        """Replays queued operations in FIFO order.

        Args:
            replay: Performs one operation; raises on failure. A
                TerminalBackendError marks the operation Failed, any other
                exception leaves it Pending for the next drain.
            is_online: Checked before each operation; the pass stops when it
                returns False.

        Returns:
            A DrainReport, or None if a drain was already running. In that case
            the running drain performs one more pass once its current one ends.
        """
        if self._draining:
            self._drain_requested = True
            logger.info("Drain already in progress; scheduling one more pass.")
            return None
        self._draining = True
        report = DrainReport()
        try:
            while True:
                self._drain_requested = False
                report.passes += 1
                await self._drain_pass(replay, is_online, report)
                if not self._drain_requested:
                    break
                # A reconnect arrived mid-pass: run again even if this pass was cut short
                report.interrupted = False
        finally:
            self._draining = False
            self._drain_requested = False
        logger.info(
            f"Offline queue drain finished: replayed={len(report.replayed)}, failed={len(report.failed)}, "
            f"deferred={len(report.deferred)}, skipped={len(report.skipped)}, passes={report.passes}"
        )
        return report

    async def _drain_pass(
        self,
        replay: ReplayFunc,
        is_online: Optional[Callable[[], bool]],
        report: DrainReport,
    ) -> None:
        pending = await self.list_pending()
        if pending:
            logger.info(f"Processing {len(pending)} queued operations...")
        blocked: Set[str] = set()
        attempted = False

        for queued in pending:
            if is_online is not None and not is_online():
                logger.warning("Connection lost during drain; stopping.")
                report.interrupted = True
                return

            resource = queued.operation.resource_key
            if resource is not None and resource in blocked:
                logger.debug(f"Skipping #{queued.id}: earlier operation on {resource} did not apply")
                report.skipped.append(queued.id)
                continue

            if attempted and self.replay_delay > 0:
                await asyncio.sleep(self.replay_delay)
            attempted = True

            queued.status = OperationStatus.PROCESSING
            queued.attempts += 1
            await self.update(queued)
            try:
                await replay(queued)
            except TerminalBackendError as e:
                logger.error(f"Queued operation #{queued.id} ({queued.operation.describe()}) failed permanently: {e}")
                queued.status = OperationStatus.FAILED
                queued.last_error = str(e)
                await self.update(queued)
                report.failed.append(queued.id)
                if resource is not None:
                    blocked.add(resource)
            except Exception as e:
                logger.warning(f"Queued operation #{queued.id} deferred: {type(e).__name__}: {e}")
                queued.status = OperationStatus.PENDING
                queued.last_error = str(e)
                await self.update(queued)
                report.deferred.append(queued.id)
                if resource is not None:
                    blocked.add(resource)
            else:
                await self.remove(queued.id)
                report.replayed.append(queued.id)
