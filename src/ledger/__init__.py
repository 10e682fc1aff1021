"""Ledger engine: atomic sales, payments and imported history."""

from src.ledger.engine import LedgerEngine

__all__ = ["LedgerEngine"]
