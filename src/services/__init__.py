"""Services package."""

from src.services.auth import (
    AuthError,
    AuthErrorCode,
    AuthSession,
    FirebaseAuthService,
)
from src.services.documents import DocumentRenderError, PdfRenderer
from src.services.image import (
    CloudinaryLogoService,
    InvalidLogoError,
    LogoError,
    LogoUploadError,
)
from src.services.storage import (
    AuditStorageInterface,
    CommitError,
    ConnectionError,
    DocumentAuditStorage,
    DocumentStoreInterface,
    FirestoreClient,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Identity
    "AuthError",
    "AuthErrorCode",
    "AuthSession",
    "FirebaseAuthService",
    # Documents
    "DocumentRenderError",
    "PdfRenderer",
    # Logo services
    "CloudinaryLogoService",
    "InvalidLogoError",
    "LogoError",
    "LogoUploadError",
    # Storage services
    "AuditStorageInterface",
    "CommitError",
    "ConnectionError",
    "DocumentAuditStorage",
    "DocumentStoreInterface",
    "FirestoreClient",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "NotFoundError",
    "StorageError",
]
