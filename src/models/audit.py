"""
Audit Models for Amar Hisab

Every significant action in the system is logged for audit purposes.
This provides:
1. Complete traceability of balance and stock changes
2. Debugging information when things go wrong
3. A way to explain how a customer's balance got where it is

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from src.models.ledger import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every ledger operation and account-level change has its own event type.
    """
    # Identity
    SIGN_IN_SUCCEEDED = "sign_in_succeeded"
    SIGN_IN_FAILED = "sign_in_failed"
    SIGN_UP_SUCCEEDED = "sign_up_succeeded"

    # Ledger
    SALE_RECORDED = "sale_recorded"
    PAYMENT_RECORDED = "payment_recorded"
    OPENING_BALANCE_RECORDED = "opening_balance_recorded"
    TRANSACTION_IMPORTED = "transaction_imported"
    LEDGER_VALIDATION_FAILED = "ledger_validation_failed"
    LEDGER_COMMIT_FAILED = "ledger_commit_failed"
    STOCK_CLAMPED = "stock_clamped"
    BALANCE_REPAIRED = "balance_repaired"

    # Customers
    CUSTOMER_CREATED = "customer_created"
    CUSTOMER_UPDATED = "customer_updated"
    CUSTOMER_DELETED = "customer_deleted"
    CUSTOMER_ARCHIVED = "customer_archived"

    # Products
    PRODUCT_CREATED = "product_created"
    PRODUCT_UPDATED = "product_updated"
    PRODUCT_DELETED = "product_deleted"
    STOCK_ADJUSTED = "stock_adjusted"

    # Personal ledger
    PERSONAL_ENTRY_ADDED = "personal_entry_added"
    PERSONAL_ENTRY_DELETED = "personal_entry_deleted"

    # Settings
    SETTINGS_UPDATED = "settings_updated"
    LOGO_UPLOADED = "logo_uploaded"

    # Import / export
    IMPORT_COMPLETED = "import_completed"
    EXPORT_COMPLETED = "export_completed"
    DEMO_DATA_LOADED = "demo_data_loaded"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'customer', 'product', 'transaction')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Document id of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all rows of one import)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    # User action tracking
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_document(self) -> dict:
        """
        Convert to a document for the account's audit collection.

        IDs are stored as strings, details as a nested map.
        """
        return {
            "eventId": str(self.event_id),
            "timestamp": self.timestamp,
            "eventType": self.event_type.value,
            "severity": self.severity.value,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "correlationId": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
            "isUserAction": self.is_user_action,
        }

    @classmethod
    def from_document(cls, data: dict) -> "AuditEvent":
        """Rebuild an event from its stored document."""
        return cls(
            event_id=UUID(data["eventId"]),
            timestamp=data["timestamp"],
            event_type=AuditEventType(data["eventType"]),
            severity=AuditSeverity(data.get("severity", "info")),
            entity_type=data.get("entityType"),
            entity_id=data.get("entityId"),
            correlation_id=UUID(data["correlationId"]) if data.get("correlationId") else None,
            description=data.get("description", ""),
            details=data.get("details") or {},
            error_code=data.get("errorCode"),
            error_message=data.get("errorMessage"),
            is_user_action=bool(data.get("isUserAction", False)),
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.sale_recorded(transaction_id, customer_id, ...)
        event = AuditEventBuilder.payment_recorded(transaction_id, customer_id, amount, ...)
    """

    @staticmethod
    def sale_recorded(
        transaction_id: str,
        customer_id: str,
        total_amount: str,
        due_amount: str,
        line_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SALE_RECORDED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Sale recorded: total {total_amount}, due delta {due_amount}",
            details={
                "customer_id": customer_id,
                "total_amount": total_amount,
                "due_amount": due_amount,
                "line_count": line_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def payment_recorded(
        transaction_id: str,
        customer_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_RECORDED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Payment recorded: {amount}",
            details={
                "customer_id": customer_id,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def ledger_entry_recorded(
        event_type: AuditEventType,
        transaction_id: str,
        customer_id: str,
        due_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        """Opening balances and imported rows."""
        return AuditEvent(
            event_type=event_type,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Ledger entry recorded: due delta {due_amount}",
            details={
                "customer_id": customer_id,
                "due_amount": due_amount,
            },
        )

    @staticmethod
    def ledger_validation_failed(
        customer_id: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="customer",
            entity_id=customer_id,
            correlation_id=correlation_id,
            description=f"Ledger request rejected with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def ledger_commit_failed(
        customer_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_COMMIT_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="customer",
            entity_id=customer_id,
            correlation_id=correlation_id,
            description="Atomic ledger commit rejected by the store",
            error_message=error_message,
        )

    @staticmethod
    def stock_clamped(
        product_id: str,
        requested: int,
        available: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STOCK_CLAMPED,
            severity=AuditSeverity.WARNING,
            entity_type="product",
            entity_id=product_id,
            correlation_id=correlation_id,
            description=f"Sold {requested} units with only {available} in stock",
            details={
                "requested": requested,
                "available": available,
            },
        )

    @staticmethod
    def entity_changed(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        """Create/update/delete of customers, products, settings and personal entries."""
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} {event_type.value.rsplit('_', 1)[-1]}",
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def import_completed(
        kind: str,
        imported: int,
        skipped: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_COMPLETED,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"{kind} import: {imported} imported, {skipped} skipped",
            details={
                "kind": kind,
                "imported": imported,
                "skipped": skipped,
            },
            is_user_action=True,
        )

    @staticmethod
    def sign_in_failed(
        email: str,
        error_code: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGN_IN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            description="Sign-in failed",
            error_code=error_code,
            details={"email": email},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
