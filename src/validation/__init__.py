"""Ledger request validation."""

from src.validation.validator import (
    LedgerValidationError,
    LedgerValidator,
    requested_quantities,
)

__all__ = ["LedgerValidationError", "LedgerValidator", "requested_quantities"]
