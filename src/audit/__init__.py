"""Audit trail: structured local logs plus the per-account audit collection."""

from src.audit.logger import AuditLogger, create_correlation_id

__all__ = ["AuditLogger", "create_correlation_id"]
