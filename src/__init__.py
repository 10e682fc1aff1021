"""
Amar Hisab - Source Package

A bookkeeping backend for small shops: customers on credit, stock,
sales and payments, invoices, and a personal income/expense ledger.

DESIGN PRINCIPLES:
1. Balances are derived from an append-only ledger
2. One request, one atomic batch
3. Fail early, fail visibly
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Amar Hisab Team"
