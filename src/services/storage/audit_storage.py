"""
Audit Log Storage

Audit events live in the account's own `auditLog` collection, next to
the data they describe, so any document store backend can hold them.
"""

from typing import Optional
from uuid import UUID

import structlog

from src.models.audit import AuditEvent
from src.services.storage.interface import (
    AuditStorageInterface,
    Collection,
    DocumentStoreInterface,
    StorageError,
)

logger = structlog.get_logger(__name__)


class DocumentAuditStorage(AuditStorageInterface):
    """
    Audit storage on top of a document store.

    Audit events are append-only.
    """

    def __init__(self, store: DocumentStoreInterface):
        self._store = store

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            await self._store.add_document(Collection.AUDIT_LOG, event.to_document())
            return True
        except StorageError as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning(
                "audit_append_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def _events(self, where: Optional[dict] = None) -> list[AuditEvent]:
        documents = await self._store.list_documents(
            Collection.AUDIT_LOG,
            where=where,
            order_by="timestamp",
        )
        events = []
        for document in documents:
            try:
                events.append(AuditEvent.from_document(document.data))
            except (KeyError, ValueError):
                continue  # Skip malformed rows
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        return await self._events({"correlationId": str(correlation_id)})

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        return await self._events({"entityType": entity_type, "entityId": entity_id})

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        events = await self._events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
