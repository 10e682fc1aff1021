"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run on Firestore in production
2. Use in-memory storage for testing and offline runs
3. Keep business logic decoupled from storage implementation

The interface models a per-account document store: named collections of
documents, one settings singleton, atomic multi-document batches with
server-side increments, and live subscriptions. Every store instance is
bound to exactly one account; nothing here knows how to reach another
account's data.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Literal, NamedTuple, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.models.audit import AuditEvent


class Collection(str, Enum):
    """Collections kept under each account."""
    CUSTOMERS = "customers"
    PRODUCTS = "products"
    TRANSACTIONS = "transactions"
    PERSONAL_TRANSACTIONS = "personalTransactions"
    AUDIT_LOG = "auditLog"


class StoredDocument(NamedTuple):
    """A document as read from the store."""
    id: str
    data: dict[str, Any]


class Increment:
    """
    Field value that adds `delta` to the stored number at commit time.

    Applying deltas on the store side keeps concurrent writers from
    overwriting each other's changes with stale absolute values.
    """

    __slots__ = ("delta",)

    def __init__(self, delta: Union[int, Decimal]):
        self.delta = delta

    def __eq__(self, other) -> bool:
        return isinstance(other, Increment) and other.delta == self.delta

    def __repr__(self) -> str:
        return f"Increment({self.delta!r})"


class WriteOperation(BaseModel):
    """One write inside a batch."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: Literal["set", "update", "delete"]
    collection: Collection
    document_id: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    merge: bool = False


class WriteBatch:
    """
    A group of writes applied all-or-nothing by `commit`.

    Usage:
        batch = WriteBatch()
        batch.set(Collection.TRANSACTIONS, tx_id, tx.to_document())
        batch.increment(Collection.CUSTOMERS, customer_id, "totalDue", due)
        await store.commit(batch)
    """

    def __init__(self):
        self._operations: list[WriteOperation] = []

    def set(
        self,
        collection: Collection,
        document_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> "WriteBatch":
        self._operations.append(WriteOperation(
            kind="set",
            collection=collection,
            document_id=document_id,
            data=data,
            merge=merge,
        ))
        return self

    def update(
        self,
        collection: Collection,
        document_id: str,
        data: dict[str, Any],
    ) -> "WriteBatch":
        """Partial update. The whole batch fails if the document is missing."""
        self._operations.append(WriteOperation(
            kind="update",
            collection=collection,
            document_id=document_id,
            data=data,
        ))
        return self

    def increment(
        self,
        collection: Collection,
        document_id: str,
        field: str,
        delta: Union[int, Decimal],
    ) -> "WriteBatch":
        return self.update(collection, document_id, {field: Increment(delta)})

    def delete(self, collection: Collection, document_id: str) -> "WriteBatch":
        self._operations.append(WriteOperation(
            kind="delete",
            collection=collection,
            document_id=document_id,
        ))
        return self

    @property
    def operations(self) -> list[WriteOperation]:
        return list(self._operations)

    def __len__(self) -> int:
        return len(self._operations)


DocumentsCallback = Callable[[list[StoredDocument]], None]
SettingsCallback = Callable[[Optional[dict[str, Any]]], None]
Unsubscribe = Callable[[], None]


class DocumentStoreInterface(ABC):
    """
    Abstract interface for an account-scoped document store.

    Any storage implementation (Firestore, in-memory, etc.)
    must implement these methods.
    """

    @property
    @abstractmethod
    def account_id(self) -> str:
        """The account every collection is scoped to."""
        pass

    @abstractmethod
    def new_document_id(self, collection: Collection) -> str:
        """Generate an id for a document that will be written in a batch."""
        pass

    @abstractmethod
    async def get_document(
        self,
        collection: Collection,
        document_id: str,
    ) -> Optional[dict[str, Any]]:
        """
        Retrieve one document.

        Returns:
            The document data if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_documents(
        self,
        collection: Collection,
        where: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[StoredDocument]:
        """
        List documents in a collection.

        Args:
            collection: Collection to read
            where: Equality filters, {field: value}
            order_by: Field to sort by
            descending: Sort direction

        Returns:
            Matching documents
        """
        pass

    @abstractmethod
    async def add_document(
        self,
        collection: Collection,
        data: dict[str, Any],
    ) -> str:
        """
        Create a document with a generated id.

        Returns:
            The new document id
        """
        pass

    @abstractmethod
    async def set_document(
        self,
        collection: Collection,
        document_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Create or overwrite a document (or merge fields into it)."""
        pass

    @abstractmethod
    async def update_document(
        self,
        collection: Collection,
        document_id: str,
        data: dict[str, Any],
    ) -> None:
        """
        Partially update an existing document.

        Raises:
            NotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def delete_document(
        self,
        collection: Collection,
        document_id: str,
    ) -> bool:
        """
        Delete a document.

        Returns:
            True if a document was deleted
        """
        pass

    @abstractmethod
    async def commit(self, batch: WriteBatch) -> None:
        """
        Apply every operation in the batch atomically.

        Raises:
            CommitError: If the store rejects the batch. Nothing is applied.
        """
        pass

    @abstractmethod
    async def get_settings(self) -> Optional[dict[str, Any]]:
        """Read the account's settings singleton."""
        pass

    @abstractmethod
    async def set_settings(self, data: dict[str, Any], merge: bool = True) -> None:
        """Write the settings singleton (merged by default)."""
        pass

    @abstractmethod
    def subscribe(
        self,
        collection: Collection,
        callback: DocumentsCallback,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Unsubscribe:
        """
        Receive the full, ordered collection every time it changes.

        The callback fires once immediately with the current contents.

        Returns:
            A callable that stops the subscription
        """
        pass

    @abstractmethod
    def subscribe_settings(self, callback: SettingsCallback) -> Unsubscribe:
        """Receive the settings document every time it changes."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class CommitError(StorageError):
    """An atomic batch was rejected. None of its writes were applied."""
    pass
