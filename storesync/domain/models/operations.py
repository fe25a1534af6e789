"""Write operation descriptors and their queued form.

A write is described by data only (kind, collection, record id, payload) so
it can be persisted while offline and dispatched through a handler registry
after a restart. Nothing executable is ever stored.
"""

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from storesync.domain.models.common import CacheKey, CachePrefix, OperationId


class OperationKind(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    SET = "set"
    DELETE = "delete"
    INCREMENT = "increment"


class OperationStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class WriteOperation:
    """Serializable description of one backend mutation.

    Attributes:
        kind: Which handler replays the write.
        collection: Target collection name.
        record_id: Target document id (None for creates with a backend-assigned id).
        payload: JSON-compatible body: the record for create/set, the patch for
            update, ``{"field": ..., "amount": ...}`` for increment.
        invalidate_keys: Exact cache keys made stale by the write.
        invalidate_prefixes: Cache key prefixes made stale by the write.
    """
    kind: OperationKind
    collection: str
    record_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    invalidate_keys: List[CacheKey] = field(default_factory=list)
    invalidate_prefixes: List[CachePrefix] = field(default_factory=list)

    @property
    def resource_key(self) -> Optional[str]:
        """Logical resource used for replay ordering (None never blocks)."""
        if self.record_id is None:
            return None
        return f"{self.collection}/{self.record_id}"

    def describe(self) -> str:
        target = self.record_id or "<new>"
        return f"{self.kind.value} {self.collection}/{target}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "collection": self.collection,
            "record_id": self.record_id,
            "payload": dict(self.payload),
            "invalidate_keys": list(self.invalidate_keys),
            "invalidate_prefixes": list(self.invalidate_prefixes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WriteOperation":
        return cls(
            kind=OperationKind(data["kind"]),
            collection=data["collection"],
            record_id=data.get("record_id"),
            payload=dict(data.get("payload") or {}),
            invalidate_keys=[CacheKey(k) for k in data.get("invalidate_keys", [])],
            invalidate_prefixes=[CachePrefix(p) for p in data.get("invalidate_prefixes", [])],
        )


@dataclass
class QueuedOperation:
    """A WriteOperation waiting in the offline queue."""
    id: OperationId
    operation: WriteOperation
    enqueued_at: float = field(default_factory=time.time)
    status: OperationStatus = OperationStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None

    @property
    def kind(self) -> OperationKind:
        return self.operation.kind

    @property
    def payload(self) -> Dict[str, Any]:
        return self.operation.payload

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": int(self.id),
            "operation": self.operation.to_dict(),
            "enqueued_at": self.enqueued_at,
            "status": self.status.value,
            "attempts": self.attempts,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueuedOperation":
        return cls(
            id=OperationId(int(data["id"])),
            operation=WriteOperation.from_dict(data["operation"]),
            enqueued_at=float(data.get("enqueued_at", 0.0)),
            status=OperationStatus(data.get("status", OperationStatus.PENDING.value)),
            attempts=int(data.get("attempts", 0)),
            last_error=data.get("last_error"),
        )


@dataclass
class DrainReport:
    """Outcome of one drain call (possibly spanning several passes)."""
    passes: int = 0
    replayed: List[OperationId] = field(default_factory=list)
    failed: List[OperationId] = field(default_factory=list)
    deferred: List[OperationId] = field(default_factory=list)
    skipped: List[OperationId] = field(default_factory=list)
    interrupted: bool = False
