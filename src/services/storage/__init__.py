"""
Storage Services Package

Provides the abstract document store interface and its implementations.
Firestore is the production backend; the in-memory store backs tests and
offline runs.
"""

from src.services.storage.interface import (
    AuditStorageInterface,
    Collection,
    CommitError,
    ConnectionError,
    DocumentStoreInterface,
    Increment,
    NotFoundError,
    StorageError,
    StoredDocument,
    WriteBatch,
    WriteOperation,
)
from src.services.storage.firestore import FirestoreClient, FirestoreDocumentStore
from src.services.storage.memory import InMemoryDocumentStore
from src.services.storage.audit_storage import DocumentAuditStorage

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DocumentStoreInterface",
    # Batches
    "Collection",
    "Increment",
    "StoredDocument",
    "WriteBatch",
    "WriteOperation",
    # Exceptions
    "CommitError",
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "DocumentAuditStorage",
    "FirestoreClient",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
]
