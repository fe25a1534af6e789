"""Interface for the remote document backend.

The backend is an external collaborator: only its CRUD/query boundary is
modelled here. Implementations raise `BackendError` with a code so the retry
policy can decide whether a failure is terminal or retryable.
"""

import abc
from typing import Any, Dict, List, Optional

from ..models.common import Record
from ..models.query import Query


class DocumentBackend(abc.ABC):
    """Abstract Base Class for document store access."""

    @abc.abstractmethod
    async def fetch_many(self, collection: str, query: Optional[Query] = None) -> List[Record]:
        """Returns the records of `collection` matching `query`.

        Each record includes its document id under the ``"id"`` key.
        """

    @abc.abstractmethod
    async def fetch_one(self, collection: str, record_id: str) -> Optional[Record]:
        """Returns one record, or None when it does not exist."""

    @abc.abstractmethod
    async def create(self, collection: str, record: Dict[str, Any]) -> str:
        """Stores a new record and returns its backend-assigned id."""

    @abc.abstractmethod
    async def update(self, collection: str, record_id: str, patch: Dict[str, Any]) -> None:
        """Applies a partial update. `Increment` values add to stored numbers."""

    @abc.abstractmethod
    async def delete(self, collection: str, record_id: str) -> None:
        """Deletes a record (no error when it is already gone)."""

    async def set(self, collection: str, record_id: str, record: Dict[str, Any]) -> None:
        """Creates or replaces a record under a caller-chosen id."""
        raise NotImplementedError(f"{type(self).__name__} does not support set()")
