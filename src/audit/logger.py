"""
Audit Logger

DESIGN DECISION: Every balance or stock change in the system is logged.
This provides:
1. Complete traceability of how a customer's due got to its value
2. Debugging capability when a commit is rejected
3. A record of oversells that were clamped at zero

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events (e.g. one CSV import)
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from src.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(ensure_ascii=False)
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The account's audit collection (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # -------------------------------------------------------------------------
    # Ledger events
    # -------------------------------------------------------------------------

    async def log_sale_recorded(
        self,
        transaction_id: str,
        customer_id: str,
        total_amount: Decimal,
        due_amount: Decimal,
        line_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a committed sale."""
        event = AuditEventBuilder.sale_recorded(
            transaction_id=transaction_id,
            customer_id=customer_id,
            total_amount=str(total_amount),
            due_amount=str(due_amount),
            line_count=line_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_payment_recorded(
        self,
        transaction_id: str,
        customer_id: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a committed payment."""
        event = AuditEventBuilder.payment_recorded(
            transaction_id=transaction_id,
            customer_id=customer_id,
            amount=str(amount),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_ledger_entry(
        self,
        event_type: AuditEventType,
        transaction_id: str,
        customer_id: str,
        due_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.ledger_entry_recorded(
            event_type=event_type,
            transaction_id=transaction_id,
            customer_id=customer_id,
            due_amount=str(due_amount),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        customer_id: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a ledger request rejected before any write."""
        event = AuditEventBuilder.ledger_validation_failed(
            customer_id=customer_id,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_commit_failed(
        self,
        customer_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a batch the store rejected."""
        event = AuditEventBuilder.ledger_commit_failed(
            customer_id=customer_id,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_stock_clamped(
        self,
        product_id: str,
        requested: int,
        available: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an oversell that floored stock at zero."""
        event = AuditEventBuilder.stock_clamped(
            product_id=product_id,
            requested=requested,
            available=available,
            correlation_id=correlation_id,
        )
        await self.log(event)

    # -------------------------------------------------------------------------
    # Account events
    # -------------------------------------------------------------------------

    async def log_entity_changed(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a create/update/delete of a customer, product, setting or personal entry."""
        event = AuditEventBuilder.entity_changed(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_import_completed(
        self,
        kind: str,
        imported: int,
        skipped: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.import_completed(
            kind=kind,
            imported=imported,
            skipped=skipped,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_sign_in_failed(self, email: str, error_code: str) -> None:
        await self.log(AuditEventBuilder.sign_in_failed(email=email, error_code=error_code))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step user action (e.g., a CSV import).
    Pass it through all subsequent operations.
    """
    return uuid4()
