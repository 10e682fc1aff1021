"""
Firestore Storage Implementation

DESIGN DECISION: Firestore is the production document store because it
natively provides everything the ledger needs:
1. Atomic multi-document write batches (all-or-nothing)
2. Server-side numeric increments, so concurrent sales commute
3. Merge writes for partial updates of the settings singleton
4. Realtime snapshot listeners per collection and per document

Layout (one subtree per account):
    users/{account_id}/customers/{id}
    users/{account_id}/products/{id}
    users/{account_id}/transactions/{id}
    users/{account_id}/personalTransactions/{id}
    users/{account_id}/auditLog/{id}
    users/{account_id}/config/settings

TRADEOFFS:
- Firestore has no Decimal type, so money is written as float and
  re-quantized by the models on read
- Filtered queries are sorted in Python to avoid composite indexes
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

import structlog
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from src.config import FirestoreSettings, get_settings
from src.services.storage.interface import (
    Collection,
    CommitError,
    ConnectionError,
    DocumentsCallback,
    DocumentStoreInterface,
    Increment,
    NotFoundError,
    SettingsCallback,
    StorageError,
    StoredDocument,
    Unsubscribe,
    WriteBatch,
)

logger = structlog.get_logger(__name__)

SETTINGS_COLLECTION = "config"
SETTINGS_DOCUMENT = "settings"


def _encode(value: Any) -> Any:
    """Convert Python values into types Firestore accepts."""
    if isinstance(value, Increment):
        delta = value.delta
        return firestore.Increment(float(delta) if isinstance(delta, Decimal) else delta)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _encode(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    return value


class FirestoreClient:
    """
    Low-level Firestore client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self, settings: Optional[FirestoreSettings] = None):
        self._client: Optional[firestore.Client] = None
        self._settings = settings or get_settings().firestore

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> firestore.Client:
        """
        Establish the Firestore client.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                )
                self._client = firestore.Client(
                    project=self._settings.project_id,
                    credentials=credentials,
                )
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Firestore: {e}")

        return self._client

    def account_document(self, account_id: str) -> firestore.DocumentReference:
        """Root document of one account's subtree."""
        return self.connect().collection(self._settings.users_collection).document(account_id)


class FirestoreDocumentStore(DocumentStoreInterface):
    """
    Firestore implementation of the account-scoped document store.

    The client calls are synchronous; the async methods keep the same
    signature as every other store so callers don't care which one they
    hold.
    """

    def __init__(self, account_id: str, client: Optional[FirestoreClient] = None):
        if not account_id:
            raise ValueError("account_id is required")
        self._account_id = account_id
        self._client = client or FirestoreClient()

    @property
    def account_id(self) -> str:
        return self._account_id

    def _collection(self, collection: Collection) -> firestore.CollectionReference:
        return self._client.account_document(self._account_id).collection(collection.value)

    def _settings_ref(self) -> firestore.DocumentReference:
        return (
            self._client.account_document(self._account_id)
            .collection(SETTINGS_COLLECTION)
            .document(SETTINGS_DOCUMENT)
        )

    def new_document_id(self, collection: Collection) -> str:
        return self._collection(collection).document().id

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_document(
        self,
        collection: Collection,
        document_id: str,
    ) -> Optional[dict[str, Any]]:
        try:
            snapshot = self._collection(collection).document(document_id).get()
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to read {collection.value}/{document_id}: {e}")
        return snapshot.to_dict() if snapshot.exists else None

    async def list_documents(
        self,
        collection: Collection,
        where: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[StoredDocument]:
        query = self._collection(collection)
        for field, value in (where or {}).items():
            query = query.where(filter=FieldFilter(field, "==", _encode(value)))

        server_sorted = bool(order_by) and not where
        if server_sorted:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)

        try:
            documents = [
                StoredDocument(snapshot.id, snapshot.to_dict())
                for snapshot in query.stream()
            ]
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to list {collection.value}: {e}")

        if order_by and not server_sorted:
            present = [d for d in documents if d.data.get(order_by) is not None]
            missing = [d for d in documents if d.data.get(order_by) is None]
            present.sort(key=lambda d: d.data[order_by], reverse=descending)
            documents = present + missing
        return documents

    async def get_settings(self) -> Optional[dict[str, Any]]:
        try:
            snapshot = self._settings_ref().get()
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to read settings: {e}")
        return snapshot.to_dict() if snapshot.exists else None

    # -------------------------------------------------------------------------
    # Single-document writes
    # -------------------------------------------------------------------------

    async def add_document(
        self,
        collection: Collection,
        data: dict[str, Any],
    ) -> str:
        reference = self._collection(collection).document()
        try:
            reference.set(_encode(data))
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to add to {collection.value}: {e}")
        return reference.id

    async def set_document(
        self,
        collection: Collection,
        document_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        try:
            self._collection(collection).document(document_id).set(_encode(data), merge=merge)
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to write {collection.value}/{document_id}: {e}")

    async def update_document(
        self,
        collection: Collection,
        document_id: str,
        data: dict[str, Any],
    ) -> None:
        try:
            self._collection(collection).document(document_id).update(_encode(data))
        except google_exceptions.NotFound:
            raise NotFoundError(f"{collection.value}/{document_id} not found")
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to update {collection.value}/{document_id}: {e}")

    async def delete_document(
        self,
        collection: Collection,
        document_id: str,
    ) -> bool:
        reference = self._collection(collection).document(document_id)
        try:
            if not reference.get().exists:
                return False
            reference.delete()
            return True
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to delete {collection.value}/{document_id}: {e}")

    async def set_settings(self, data: dict[str, Any], merge: bool = True) -> None:
        try:
            self._settings_ref().set(_encode(data), merge=merge)
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to write settings: {e}")

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    async def commit(self, batch: WriteBatch) -> None:
        """
        Commit a Firestore write batch.

        Firestore applies the batch atomically: an update against a missing
        document, a permission failure or a network error rejects all of it.
        """
        firestore_batch = self._client.connect().batch()
        for operation in batch.operations:
            reference = self._collection(operation.collection).document(operation.document_id)
            if operation.kind == "set":
                firestore_batch.set(reference, _encode(operation.data), merge=operation.merge)
            elif operation.kind == "update":
                firestore_batch.update(reference, _encode(operation.data))
            else:
                firestore_batch.delete(reference)

        try:
            firestore_batch.commit()
        except google_exceptions.GoogleAPICallError as e:
            logger.warning(
                "batch_rejected",
                account_id=self._account_id,
                operations=len(batch),
                error=str(e),
            )
            raise CommitError(f"Batch rejected: {e}") from e

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        collection: Collection,
        callback: DocumentsCallback,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Unsubscribe:
        query = self._collection(collection)
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)

        def on_snapshot(snapshots, changes, read_time) -> None:
            callback([StoredDocument(s.id, s.to_dict()) for s in snapshots])

        watch = query.on_snapshot(on_snapshot)
        return watch.unsubscribe

    def subscribe_settings(self, callback: SettingsCallback) -> Unsubscribe:
        def on_snapshot(snapshots, changes, read_time) -> None:
            snapshot = snapshots[0] if snapshots else None
            callback(snapshot.to_dict() if snapshot is not None and snapshot.exists else None)

        watch = self._settings_ref().on_snapshot(on_snapshot)
        return watch.unsubscribe
