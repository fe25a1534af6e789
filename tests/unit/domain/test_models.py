import pytest

from storesync.domain.exceptions import (
    BackendError, OfflineQueuedSignal, RetryExhaustedError, StoreSyncError, TransientBackendError,
)
from storesync.domain.models.operations import (
    OperationKind, OperationStatus, QueuedOperation, WriteOperation,
)
from storesync.domain.models.query import FieldFilter, OrderBy, Query


def test_query_builders_are_immutable():
    base = Query()
    narrowed = base.where("category", "==", "office").order("createdAt", "desc").limited(5)
    assert base == Query()
    assert len(narrowed.filters) == 1
    assert narrowed.limit == 5


def test_query_signature():
    assert Query().signature() == "all"
    signature = Query().where("category", "==", "office").order("createdAt", "desc").limited(5).signature()
    assert signature == "category=='office'|order=createdAt:desc|limit=5"


def test_invalid_operator_and_direction():
    with pytest.raises(ValueError):
        FieldFilter("a", "~=", 1)
    with pytest.raises(ValueError):
        OrderBy("a", "sideways")
    with pytest.raises(ValueError):
        Query().limited(-1)


def test_write_operation_resource_key_and_description():
    update = WriteOperation(OperationKind.UPDATE, "products", record_id="p1")
    create = WriteOperation(OperationKind.CREATE, "products")
    assert update.resource_key == "products/p1"
    assert create.resource_key is None
    assert create.describe() == "create products/<new>"


def test_queued_operation_serialization_keeps_everything():
    queued = QueuedOperation(
        id=7,
        operation=WriteOperation(OperationKind.INCREMENT, "faqs", record_id="f1",
                                 payload={"field": "upvotes", "amount": 1},
                                 invalidate_keys=["faq:f1"], invalidate_prefixes=["home:"]),
        enqueued_at=123.0,
        status=OperationStatus.FAILED,
        attempts=2,
        last_error="denied",
    )
    data = queued.to_dict()
    assert data["operation"]["kind"] == "increment"
    assert QueuedOperation.from_dict(data) == queued


def test_error_context_is_added_once():
    error = BackendError("down", code="unavailable")
    error.add_context(operation="read", cache_key="products:all")
    error.add_context(operation="other")
    assert error.operation == "read"
    assert str(error) == "down (operation=read, key=products:all)"
    assert not error.is_terminal


def test_retry_exhausted_wraps_last_error():
    last = TransientBackendError("timeout", code="deadline-exceeded")
    error = RetryExhaustedError(last, 3)
    assert error.code == "deadline-exceeded"
    assert "Max retries (3)" in str(error)


def test_offline_signal_is_not_an_error_class():
    assert not issubclass(OfflineQueuedSignal, StoreSyncError)
    assert OfflineQueuedSignal(4).operation_id == 4
