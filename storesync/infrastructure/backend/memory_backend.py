"""In-process document backend.

Implements the full `DocumentBackend` contract over dictionaries, with fault
injection hooks (`fail_next`, `latency`) so resilience behaviour can be
exercised without a network. Used by the test-suite and for local dry runs.
"""

import asyncio
import copy
import logging
import uuid
from collections import Counter, deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from storesync.domain.exceptions import BackendError
from storesync.domain.interfaces.backend import DocumentBackend
from storesync.domain.models.common import Record
from storesync.domain.models.query import DESCENDING, FieldFilter, Increment, Query

logger = logging.getLogger(__name__)

_MISSING = object()


def _matches(record: Record, condition: FieldFilter) -> bool:
    value = record.get(condition.field, _MISSING)
    if value is _MISSING:
        return False
    target = condition.value
    try:
        if condition.op == "==":
            return value == target
        if condition.op == "!=":
            return value != target
        if condition.op == "<":
            return value < target
        if condition.op == "<=":
            return value <= target
        if condition.op == ">":
            return value > target
        if condition.op == ">=":
            return value >= target
        if condition.op == "in":
            return value in target
        if condition.op == "array-contains":
            return isinstance(value, (list, tuple)) and target in value
    except TypeError:
        return False
    return False


def apply_query(records: List[Record], query: Optional[Query]) -> List[Record]:
    """Filters, sorts and limits `records` the way a document store would."""
    if query is None:
        return records
    result = [r for r in records if all(_matches(r, f) for f in query.filters)]
    for order in reversed(query.order_by):
        present = [r for r in result if r.get(order.field) is not None]
        absent = [r for r in result if r.get(order.field) is None]
        present.sort(key=lambda r: r[order.field], reverse=order.direction == DESCENDING)
        result = present + absent
    if query.limit:
        result = result[:query.limit]
    return result


class InMemoryBackend(DocumentBackend):
    """Dictionary-backed document store with injectable failures."""

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.collections: Dict[str, Dict[str, Record]] = {}
        self.call_counts: Counter = Counter()
        self._failures: Deque[Tuple[Optional[str], BaseException]] = deque()

    # --- Fault injection ---

    def fail_next(self, code: str = "unavailable", times: int = 1, method: Optional[str] = None,
                  error: Optional[BaseException] = None) -> None:
        """Makes the next `times` calls (optionally only to `method`) raise."""
        for _ in range(times):
            exc = error if error is not None else BackendError(f"Injected {code} failure", code=code)
            self._failures.append((method, exc))

    def clear_failures(self) -> None:
        self._failures.clear()

    async def _enter(self, method: str) -> None:
        self.call_counts[method] += 1
        if self.latency:
            await asyncio.sleep(self.latency)
        for index, (target, exc) in enumerate(self._failures):
            if target is None or target == method:
                del self._failures[index]
                logger.debug(f"Injecting failure into {method}: {exc!r}")
                raise exc

    # --- Helpers ---

    def seed(self, collection: str, records: Dict[str, Dict[str, Any]]) -> None:
        """Loads documents directly, bypassing counters and failures."""
        bucket = self.collections.setdefault(collection, {})
        for record_id, data in records.items():
            bucket[record_id] = copy.deepcopy(data)

    def _bucket(self, collection: str) -> Dict[str, Record]:
        return self.collections.setdefault(collection, {})

    @staticmethod
    def _with_id(record_id: str, data: Record) -> Record:
        record = copy.deepcopy(data)
        record["id"] = record_id
        return record

    # --- DocumentBackend ---

    async def fetch_many(self, collection: str, query: Optional[Query] = None) -> List[Record]:
        await self._enter("fetch_many")
        records = [self._with_id(rid, data) for rid, data in self._bucket(collection).items()]
        return apply_query(records, query)

    async def fetch_one(self, collection: str, record_id: str) -> Optional[Record]:
        await self._enter("fetch_one")
        data = self._bucket(collection).get(record_id)
        return self._with_id(record_id, data) if data is not None else None

    async def create(self, collection: str, record: Dict[str, Any]) -> str:
        await self._enter("create")
        record_id = uuid.uuid4().hex[:20]
        data = {k: v for k, v in copy.deepcopy(record).items() if k != "id"}
        self._bucket(collection)[record_id] = data
        return record_id

    async def set(self, collection: str, record_id: str, record: Dict[str, Any]) -> None:
        await self._enter("set")
        self._bucket(collection)[record_id] = {k: v for k, v in copy.deepcopy(record).items() if k != "id"}

    async def update(self, collection: str, record_id: str, patch: Dict[str, Any]) -> None:
        await self._enter("update")
        bucket = self._bucket(collection)
        if record_id not in bucket:
            raise BackendError(f"No document to update: {collection}/{record_id}", code="not-found")
        data = bucket[record_id]
        for field_name, value in patch.items():
            if isinstance(value, Increment):
                data[field_name] = data.get(field_name, 0) + value.amount
            else:
                data[field_name] = copy.deepcopy(value)

    async def delete(self, collection: str, record_id: str) -> None:
        await self._enter("delete")
        self._bucket(collection).pop(record_id, None)
