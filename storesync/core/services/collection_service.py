"""Generic collection-bound service over DataAccessService.

A domain service is just a collection name, a cache-key prefix for single
records and a few query builders; all resilience behaviour comes from the
shared DataAccessService.

Cache keys:
    ``{item_prefix}:{id}``            one record, e.g. ``product:p1``
    ``{collection}:{signature}``      a list/query, e.g. ``products:all``
Every write invalidates the record key and everything under ``{collection}:``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from storesync.core.services.data_access_service import DataAccessService
from storesync.domain.exceptions import RecordNotFoundError
from storesync.domain.models.common import CacheKey, Record
from storesync.domain.models.operations import OperationKind, WriteOperation
from storesync.domain.models.query import Query

logger = logging.getLogger(__name__)

TRecord = TypeVar("TRecord")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CollectionService(Generic[TRecord]):
    """CRUD and query access to one collection, parameterized over the record shape."""

    def __init__(
        self,
        data_access: DataAccessService,
        collection: str,
        item_prefix: str,
        record_factory: Optional[Callable[[Record], TRecord]] = None,
        cache_lists: bool = True,
    ):
        """Initializes the service.

        Args:
            data_access: Shared orchestrator.
            collection: Backend collection name (also the list cache-key prefix).
            item_prefix: Cache-key prefix for single records.
            record_factory: Turns raw backend dicts into TRecord (identity by default).
            cache_lists: Whether list/query results may be cached.
        """
        self.data_access = data_access
        self.collection = collection
        self.item_prefix = item_prefix
        self.record_factory = record_factory
        self.cache_lists = cache_lists

    # --- Keys ---

    def item_key(self, record_id: str) -> CacheKey:
        return CacheKey(f"{self.item_prefix}:{record_id}")

    def list_key(self, signature: str) -> CacheKey:
        return CacheKey(f"{self.collection}:{signature}")

    def _convert(self, record: Record) -> TRecord:
        return self.record_factory(record) if self.record_factory else record

    # --- Reads ---

    async def query(self, query: Query, signature: Optional[str] = None, use_cache: Optional[bool] = None) -> List[TRecord]:
        """Runs `query`, cached under ``{collection}:{signature}``."""
        key = self.list_key(signature or query.signature())
        cached = self.cache_lists if use_cache is None else use_cache
        records = await self.data_access.read(
            key, lambda: self.data_access.backend.fetch_many(self.collection, query), use_cache=cached
        )
        return [self._convert(r) for r in records]

    async def list_all(self, query: Optional[Query] = None, use_cache: Optional[bool] = None) -> List[TRecord]:
        return await self.query(query or Query(), signature="all", use_cache=use_cache)

    async def get(self, record_id: str, use_cache: bool = True) -> TRecord:
        """Returns one record.

        Raises:
            RecordNotFoundError: The record does not exist (never cached).
        """
        key = self.item_key(record_id)

        async def fetch() -> Record:
            record = await self.data_access.backend.fetch_one(self.collection, record_id)
            if record is None:
                raise RecordNotFoundError(f"{self.item_prefix.capitalize()} {record_id} not found", cache_key=key)
            return record

        return self._convert(await self.data_access.read(key, fetch, use_cache=use_cache))

    # --- Writes ---

    def _operation(self, kind: OperationKind, record_id: Optional[str], payload: Dict[str, Any]) -> WriteOperation:
        keys = [self.item_key(record_id)] if record_id else []
        return WriteOperation(kind=kind, collection=self.collection, record_id=record_id, payload=payload,
                              invalidate_keys=keys)

    async def create(self, data: Dict[str, Any], timestamps: bool = True) -> Dict[str, Any]:
        payload = dict(data)
        if timestamps:
            now = utc_now_iso()
            payload.setdefault("createdAt", now)
            payload.setdefault("updatedAt", now)
        new_id = await self.data_access.write(self._operation(OperationKind.CREATE, None, payload))
        logger.info(f"Created {self.collection}/{new_id}")
        return {**payload, "id": new_id}

    async def update(self, record_id: str, updates: Dict[str, Any], timestamps: bool = True) -> Dict[str, Any]:
        payload = dict(updates)
        if timestamps:
            payload["updatedAt"] = utc_now_iso()
        await self.data_access.write(self._operation(OperationKind.UPDATE, record_id, payload))
        return {**payload, "id": record_id}

    async def increment(self, record_id: str, field_name: str, amount: float = 1) -> None:
        await self.data_access.write(
            self._operation(OperationKind.INCREMENT, record_id, {"field": field_name, "amount": amount})
        )

    async def delete(self, record_id: str) -> Dict[str, Any]:
        await self.data_access.write(self._operation(OperationKind.DELETE, record_id, {}))
        return {"id": record_id}
