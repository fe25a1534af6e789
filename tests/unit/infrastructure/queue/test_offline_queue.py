import asyncio

import pytest

from storesync.domain.exceptions import QueueFullError, TerminalBackendError, TransientBackendError
from storesync.domain.models.operations import OperationKind, OperationStatus, WriteOperation
from storesync.infrastructure.queue.offline_queue import OfflineQueue
from storesync.infrastructure.storage.disk_store import DiskKeyValueStore, MemoryKeyValueStore


def update_op(record_id, **payload):
    return WriteOperation(OperationKind.UPDATE, "products", record_id=record_id, payload=payload)


@pytest.fixture
def queue(store):
    return OfflineQueue(store, max_size=5, replay_delay=0)


class Recorder:
    """Replay function that records calls and raises scripted errors per op id."""

    def __init__(self, failures=None):
        self.failures = dict(failures or {})
        self.replayed = []

    async def __call__(self, queued):
        error = self.failures.pop(queued.id, None)
        if error is not None:
            raise error
        self.replayed.append(queued.id)


async def test_enqueue_assigns_increasing_ids(queue: OfflineQueue):
    first = await queue.enqueue(update_op("p1", price=1))
    second = await queue.enqueue(update_op("p2", price=2))
    assert second > first
    pending = await queue.list_pending()
    assert [p.id for p in pending] == [first, second]
    assert all(p.status == OperationStatus.PENDING for p in pending)
    assert pending[0].operation.payload == {"price": 1}


async def test_rejects_enqueue_when_full(queue: OfflineQueue):
    for i in range(5):
        await queue.enqueue(update_op(f"p{i}"))
    with pytest.raises(QueueFullError) as exc_info:
        await queue.enqueue(update_op("overflow"))
    assert exc_info.value.capacity == 5
    assert await queue.size() == 5


async def test_drain_replays_in_fifo_order(queue: OfflineQueue):
    ids = [await queue.enqueue(update_op(f"p{i}")) for i in range(3)]
    replay = Recorder()

    report = await queue.drain(replay)

    assert replay.replayed == ids
    assert report.replayed == ids
    assert await queue.size() == 0


async def test_failure_blocks_later_ops_on_same_record_only(queue: OfflineQueue):
    """A1 fails: A2 waits; B1 still applies."""
    a1 = await queue.enqueue(update_op("A", step=1))
    b1 = await queue.enqueue(update_op("B", step=1))
    a2 = await queue.enqueue(update_op("A", step=2))
    replay = Recorder({a1: TransientBackendError("down", code="unavailable")})

    report = await queue.drain(replay)

    assert replay.replayed == [b1]
    assert report.deferred == [a1]
    assert report.skipped == [a2]
    remaining = await queue.list_pending()
    assert [p.id for p in remaining] == [a1, a2]
    assert remaining[0].attempts == 1
    assert remaining[0].status == OperationStatus.PENDING
    assert remaining[1].attempts == 0

    # Next drain applies both, still in order
    second = await queue.drain(replay)
    assert second.replayed == [a1, a2]
    assert replay.replayed == [b1, a1, a2]


async def test_terminal_failure_marks_failed_and_keeps_entry(queue: OfflineQueue):
    op_id = await queue.enqueue(update_op("A"))
    replay = Recorder({op_id: TerminalBackendError("denied", code="permission-denied")})

    report = await queue.drain(replay)

    assert report.failed == [op_id]
    stored = await queue.get(op_id)
    assert stored.status == OperationStatus.FAILED
    assert "denied" in stored.last_error
    assert await queue.size() == 1


async def test_creates_without_record_id_never_block(queue: OfflineQueue):
    c1 = await queue.enqueue(WriteOperation(OperationKind.CREATE, "contacts", payload={"n": 1}))
    c2 = await queue.enqueue(WriteOperation(OperationKind.CREATE, "contacts", payload={"n": 2}))
    replay = Recorder({c1: TransientBackendError("down")})

    report = await queue.drain(replay)

    assert report.deferred == [c1]
    assert report.replayed == [c2]


async def test_drain_stops_when_connection_drops(queue: OfflineQueue):
    ids = [await queue.enqueue(update_op(f"p{i}")) for i in range(3)]
    online = {"value": True}

    async def replay(queued):
        online["value"] = False

    report = await queue.drain(replay, is_online=lambda: online["value"])

    assert report.replayed == ids[:1]
    assert report.interrupted is True
    assert [p.id for p in await queue.list_pending()] == ids[1:]


async def test_concurrent_drain_requests_one_more_pass(queue: OfflineQueue):
    first = await queue.enqueue(update_op("p1"))
    late = []
    gate = asyncio.Event()

    async def replay(queued):
        if queued.id == first:
            late.append(await queue.enqueue(update_op("p2")))
            gate.set()
            await asyncio.sleep(0)

    running = asyncio.ensure_future(queue.drain(replay))
    await gate.wait()
    assert queue.is_draining
    assert await queue.drain(replay) is None

    report = await running
    assert report.passes == 2
    assert report.replayed == [first] + late
    assert await queue.size() == 0
    assert not queue.is_draining


async def test_operation_left_processing_is_retried(store):
    queue = OfflineQueue(store, replay_delay=0)
    op_id = await queue.enqueue(update_op("A"))
    stuck = await queue.get(op_id)
    stuck.status = OperationStatus.PROCESSING
    await queue.update(stuck)

    replay = Recorder()
    report = await queue.drain(replay)

    assert report.replayed == [op_id]


async def test_clear_keeps_ids_unique(queue: OfflineQueue):
    first = await queue.enqueue(update_op("A"))
    await queue.clear()
    assert await queue.size() == 0
    assert await queue.enqueue(update_op("B")) > first


async def test_namespaces_share_a_store():
    store = MemoryKeyValueStore()
    left = OfflineQueue(store, namespace="left")
    right = OfflineQueue(store, namespace="right")
    await left.enqueue(update_op("A"))
    assert await right.size() == 0


async def test_survives_restart_with_disk_store(tmp_path):
    """Entries and id counter are read back by a fresh queue over the same directory."""
    first_store = DiskKeyValueStore(tmp_path / "queue")
    first = OfflineQueue(first_store)
    a = await first.enqueue(update_op("A", price=10))
    b = await first.enqueue(WriteOperation(OperationKind.DELETE, "products", record_id="B"))
    await first_store.close()

    second_store = DiskKeyValueStore(tmp_path / "queue")
    second = OfflineQueue(second_store)
    pending = await second.list_pending()
    assert [p.id for p in pending] == [a, b]
    assert pending[0].operation.payload == {"price": 10}
    assert pending[1].kind == OperationKind.DELETE
    assert await second.enqueue(update_op("C")) > b
    await second_store.close()


def test_rejects_non_positive_capacity(store):
    with pytest.raises(ValueError):
        OfflineQueue(store, max_size=0)


async def test_corrupt_entries_are_dropped_and_not_counted(store):
    queue = OfflineQueue(store, max_size=1, replay_delay=0)
    await store.put("offline-queue:op:000000000007", "not an operation")
    await store.put("offline-queue:op:000000000008", {"id": 8, "operation": {"kind": "teleport"}})

    assert await queue.size() == 0
    assert await store.list_all("offline-queue:op:") == {}
    # Capacity is available for a real entry
    op_id = await queue.enqueue(update_op("A"))
    assert [p.id for p in await queue.list_pending()] == [op_id]


async def test_has_pending_for(queue: OfflineQueue):
    await queue.enqueue(update_op("A"))
    await queue.enqueue(WriteOperation(OperationKind.CREATE, "products", payload={"name": "new"}))

    assert await queue.has_pending_for("products/A") is True
    assert await queue.has_pending_for("products/B") is False


async def test_enqueue_during_drain_gets_its_own_pass(queue: OfflineQueue):
    first = await queue.enqueue(update_op("A", step=1))
    late = []

    async def replay(queued):
        if queued.id == first:
            late.append(await queue.enqueue(update_op("A", step=2)))

    report = await queue.drain(replay)

    assert report.passes == 2
    assert report.replayed == [first] + late
    assert await queue.size() == 0
