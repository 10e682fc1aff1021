"""
In-Memory Storage Implementation

Used by the test suite and for offline runs when no Firestore project is
configured. It follows the same contract as the Firestore backend:

- commit() stages every operation on a copy and swaps it in only if all
  of them succeed, so a failing batch leaves nothing behind
- Increment values add to the stored number (missing fields count as 0)
- subscribers get the full ordered collection after every change
"""

import copy
from collections import defaultdict
from typing import Any, Optional
from uuid import uuid4

import structlog

from src.services.storage.interface import (
    Collection,
    CommitError,
    DocumentsCallback,
    DocumentStoreInterface,
    Increment,
    NotFoundError,
    SettingsCallback,
    StoredDocument,
    Unsubscribe,
    WriteBatch,
    WriteOperation,
)

logger = structlog.get_logger(__name__)


def _resolve_fields(data: dict[str, Any], existing: dict[str, Any]) -> dict[str, Any]:
    """Replace Increment markers with concrete values based on `existing`."""
    resolved = {}
    for field, value in data.items():
        if isinstance(value, Increment):
            resolved[field] = (existing.get(field) or 0) + value.delta
        else:
            resolved[field] = copy.deepcopy(value)
    return resolved


def _sort_key(field: str):
    def key(document: StoredDocument):
        value = document.data.get(field)
        return (value is None, value)
    return key


class _Subscription:
    def __init__(
        self,
        callback: DocumentsCallback,
        order_by: Optional[str],
        descending: bool,
    ):
        self.callback = callback
        self.order_by = order_by
        self.descending = descending


class InMemoryDocumentStore(DocumentStoreInterface):
    """
    Dictionary-backed document store for one account.

    Documents are copied on the way in and out so callers can never
    mutate stored state by accident.
    """

    def __init__(self, account_id: str = "local"):
        self._account_id = account_id
        self._collections: dict[Collection, dict[str, dict[str, Any]]] = {
            collection: {} for collection in Collection
        }
        self._settings: Optional[dict[str, Any]] = None
        self._subscriptions: dict[Collection, list[_Subscription]] = defaultdict(list)
        self._settings_subscriptions: list[SettingsCallback] = []
        self.commit_count = 0

    @property
    def account_id(self) -> str:
        return self._account_id

    def new_document_id(self, collection: Collection) -> str:
        return uuid4().hex[:20]

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_document(
        self,
        collection: Collection,
        document_id: str,
    ) -> Optional[dict[str, Any]]:
        document = self._collections[collection].get(document_id)
        return copy.deepcopy(document) if document is not None else None

    def _snapshot(
        self,
        collection: Collection,
        where: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[StoredDocument]:
        documents = []
        for document_id, data in self._collections[collection].items():
            if where and any(data.get(field) != value for field, value in where.items()):
                continue
            documents.append(StoredDocument(document_id, copy.deepcopy(data)))

        if order_by:
            # Documents missing the field go last in either direction
            present = [d for d in documents if d.data.get(order_by) is not None]
            missing = [d for d in documents if d.data.get(order_by) is None]
            present.sort(key=_sort_key(order_by), reverse=descending)
            documents = present + missing
        return documents

    async def list_documents(
        self,
        collection: Collection,
        where: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[StoredDocument]:
        return self._snapshot(collection, where, order_by, descending)

    async def get_settings(self) -> Optional[dict[str, Any]]:
        return copy.deepcopy(self._settings)

    # -------------------------------------------------------------------------
    # Single-document writes
    # -------------------------------------------------------------------------

    async def add_document(
        self,
        collection: Collection,
        data: dict[str, Any],
    ) -> str:
        document_id = self.new_document_id(collection)
        await self.commit(WriteBatch().set(collection, document_id, data))
        return document_id

    async def set_document(
        self,
        collection: Collection,
        document_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        await self.commit(WriteBatch().set(collection, document_id, data, merge=merge))

    async def update_document(
        self,
        collection: Collection,
        document_id: str,
        data: dict[str, Any],
    ) -> None:
        if document_id not in self._collections[collection]:
            raise NotFoundError(f"{collection.value}/{document_id} not found")
        await self.commit(WriteBatch().update(collection, document_id, data))

    async def delete_document(
        self,
        collection: Collection,
        document_id: str,
    ) -> bool:
        if document_id not in self._collections[collection]:
            return False
        await self.commit(WriteBatch().delete(collection, document_id))
        return True

    async def set_settings(self, data: dict[str, Any], merge: bool = True) -> None:
        if merge and self._settings:
            self._settings = {**self._settings, **copy.deepcopy(data)}
        else:
            self._settings = copy.deepcopy(data)
        for callback in list(self._settings_subscriptions):
            callback(copy.deepcopy(self._settings))

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    @staticmethod
    def _apply(
        staged: dict[Collection, dict[str, dict[str, Any]]],
        operation: WriteOperation,
    ) -> None:
        documents = staged[operation.collection]
        existing = documents.get(operation.document_id)

        if operation.kind == "delete":
            documents.pop(operation.document_id, None)
        elif operation.kind == "update":
            if existing is None:
                raise NotFoundError(
                    f"{operation.collection.value}/{operation.document_id} not found"
                )
            existing.update(_resolve_fields(operation.data, existing))
        elif operation.merge and existing is not None:
            existing.update(_resolve_fields(operation.data, existing))
        else:
            documents[operation.document_id] = _resolve_fields(operation.data, {})

    async def commit(self, batch: WriteBatch) -> None:
        staged = copy.deepcopy(self._collections)
        for operation in batch.operations:
            try:
                self._apply(staged, operation)
            except NotFoundError as e:
                logger.warning(
                    "batch_rejected",
                    account_id=self._account_id,
                    operations=len(batch),
                    error=str(e),
                )
                raise CommitError(f"Batch rejected: {e}") from e

        self._collections = staged
        self.commit_count += 1

        for collection in {operation.collection for operation in batch.operations}:
            self._notify(collection)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def _notify(self, collection: Collection) -> None:
        for subscription in list(self._subscriptions[collection]):
            subscription.callback(
                self._snapshot(collection, None, subscription.order_by, subscription.descending)
            )

    def subscribe(
        self,
        collection: Collection,
        callback: DocumentsCallback,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Unsubscribe:
        subscription = _Subscription(callback, order_by, descending)
        self._subscriptions[collection].append(subscription)
        callback(self._snapshot(collection, None, order_by, descending))

        def unsubscribe() -> None:
            if subscription in self._subscriptions[collection]:
                self._subscriptions[collection].remove(subscription)

        return unsubscribe

    def subscribe_settings(self, callback: SettingsCallback) -> Unsubscribe:
        self._settings_subscriptions.append(callback)
        callback(copy.deepcopy(self._settings))

        def unsubscribe() -> None:
            if callback in self._settings_subscriptions:
                self._settings_subscriptions.remove(callback)

        return unsubscribe
