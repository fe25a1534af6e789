"""Cloud Firestore implementation of `DocumentBackend`.

Wraps the synchronous firebase-admin Firestore client. Each call runs in a
worker thread, and `google.api_core` exceptions are mapped onto the backend
error codes the retry policy classifies (permission-denied, unavailable, ...).
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter as FirestoreFieldFilter

from storesync.domain.exceptions import BackendError
from storesync.domain.interfaces.backend import DocumentBackend
from storesync.domain.models.common import Record
from storesync.domain.models.query import DESCENDING, Increment, Query

logger = logging.getLogger(__name__)

# google.api_core exception class -> backend error code
ERROR_CODES = (
    (google_exceptions.PermissionDenied, "permission-denied"),
    (google_exceptions.Unauthenticated, "unauthenticated"),
    (google_exceptions.InvalidArgument, "invalid-argument"),
    (google_exceptions.NotFound, "not-found"),
    (google_exceptions.AlreadyExists, "already-exists"),
    (google_exceptions.FailedPrecondition, "failed-precondition"),
    (google_exceptions.DeadlineExceeded, "deadline-exceeded"),
    (google_exceptions.ServiceUnavailable, "unavailable"),
    (google_exceptions.ResourceExhausted, "resource-exhausted"),
    (google_exceptions.Aborted, "aborted"),
    (google_exceptions.InternalServerError, "internal"),
)

OPERATORS = {"array-contains": "array_contains"}


def error_code_for(error: BaseException) -> str:
    for exc_type, code in ERROR_CODES:
        if isinstance(error, exc_type):
            return code
    return "unknown"


def to_firestore_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: firestore.Increment(value.amount) if isinstance(value, Increment) else value
        for key, value in patch.items()
    }


class FirestoreBackend(DocumentBackend):
    """Firestore access through firebase-admin."""

    def __init__(self, client: Optional[Any] = None, credentials_path: Optional[str] = None,
                 project_id: Optional[str] = None):
        """Initializes the backend.

        Args:
            client: A ready Firestore client (tests inject a mock here).
            credentials_path: Service account JSON used when no app exists yet.
            project_id: Optional project ID override.
        """
        self._db = client if client is not None else self._connect(credentials_path, project_id)

    @staticmethod
    def _connect(credentials_path: Optional[str], project_id: Optional[str]) -> Any:
        try:
            app = firebase_admin.get_app()
            logger.info(f"Using existing Firebase app: {app.name}")
        except ValueError:
            path = credentials_path or os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
            if path and Path(path).is_file():
                cred = credentials.Certificate(path)
            else:
                logger.warning("No service account file found; using application default credentials.")
                cred = credentials.ApplicationDefault()
            options = {"projectId": project_id} if project_id else None
            app = firebase_admin.initialize_app(cred, options)
            logger.info(f"Initialized Firebase app for project: {project_id or '<default>'}")
        return firestore.client(app=app)

    async def _call(self, description: str, func: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(func)
        except google_exceptions.GoogleAPICallError as e:
            code = error_code_for(e)
            logger.error(f"Firestore {description} failed ({code}): {e}")
            raise BackendError(f"Firestore {description} failed: {e.message}", code=code) from e

    def _build_query(self, collection: str, query: Optional[Query]) -> Any:
        ref = self._db.collection(collection)
        if query is None:
            return ref
        for condition in query.filters:
            op = OPERATORS.get(condition.op, condition.op)
            ref = ref.where(filter=FirestoreFieldFilter(condition.field, op, condition.value))
        for order in query.order_by:
            direction = firestore.Query.DESCENDING if order.direction == DESCENDING else firestore.Query.ASCENDING
            ref = ref.order_by(order.field, direction=direction)
        if query.limit:
            ref = ref.limit(query.limit)
        return ref

    async def fetch_many(self, collection: str, query: Optional[Query] = None) -> List[Record]:
        def run() -> List[Record]:
            return [{**doc.to_dict(), "id": doc.id} for doc in self._build_query(collection, query).stream()]
        return await self._call(f"query on {collection}", run)

    async def fetch_one(self, collection: str, record_id: str) -> Optional[Record]:
        def run() -> Optional[Record]:
            snapshot = self._db.collection(collection).document(record_id).get()
            if not snapshot.exists:
                return None
            return {**snapshot.to_dict(), "id": snapshot.id}
        return await self._call(f"get {collection}/{record_id}", run)

    async def create(self, collection: str, record: Dict[str, Any]) -> str:
        data = {k: v for k, v in record.items() if k != "id"}

        def run() -> str:
            _, doc_ref = self._db.collection(collection).add(data)
            return doc_ref.id
        return await self._call(f"add to {collection}", run)

    async def set(self, collection: str, record_id: str, record: Dict[str, Any]) -> None:
        data = {k: v for k, v in record.items() if k != "id"}
        await self._call(f"set {collection}/{record_id}",
                         lambda: self._db.collection(collection).document(record_id).set(data))

    async def update(self, collection: str, record_id: str, patch: Dict[str, Any]) -> None:
        data = to_firestore_patch(patch)
        await self._call(f"update {collection}/{record_id}",
                         lambda: self._db.collection(collection).document(record_id).update(data))

    async def delete(self, collection: str, record_id: str) -> None:
        await self._call(f"delete {collection}/{record_id}",
                         lambda: self._db.collection(collection).document(record_id).delete())
