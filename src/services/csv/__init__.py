"""CSV import/export for customers, products and sales reports."""

from src.services.csv.codec import (
    CustomerRow,
    TransactionRow,
    export_customers,
    export_products,
    export_transactions,
    parse_customers,
    parse_products,
    parse_transactions,
)

__all__ = [
    "CustomerRow",
    "TransactionRow",
    "export_customers",
    "export_products",
    "export_transactions",
    "parse_customers",
    "parse_products",
    "parse_transactions",
]
