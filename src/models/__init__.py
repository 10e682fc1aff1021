"""
Data Models Package

This package contains all Pydantic models used in Amar Hisab.
All data flowing through the system must conform to these schemas.
"""

from src.models.ledger import (
    Customer,
    CustomerCreate,
    CustomerUpdate,
    PersonalTransaction,
    PersonalTransactionCreate,
    PersonalTransactionType,
    Product,
    ProductCreate,
    ProductUpdate,
    SaleItem,
    SaleLineRequest,
    StockPolicy,
    StoreSettings,
    StoreSettingsUpdate,
    Transaction,
    TransactionKind,
    ValidationIssue,
    ValidationResult,
    to_money,
    utc_now,
)
from src.models.reports import (
    BalanceCheck,
    DailySales,
    DashboardSummary,
    ImportResult,
    LedgerSummary,
    MonthlySummary,
    PersonalSummary,
    ProductSalesStats,
    StockStatusBreakdown,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Customer",
    "CustomerCreate",
    "CustomerUpdate",
    "PersonalTransaction",
    "PersonalTransactionCreate",
    "PersonalTransactionType",
    "Product",
    "ProductCreate",
    "ProductUpdate",
    "SaleItem",
    "SaleLineRequest",
    "StockPolicy",
    "StoreSettings",
    "StoreSettingsUpdate",
    "Transaction",
    "TransactionKind",
    "ValidationIssue",
    "ValidationResult",
    "to_money",
    "utc_now",
    # Report models
    "BalanceCheck",
    "DailySales",
    "DashboardSummary",
    "ImportResult",
    "LedgerSummary",
    "MonthlySummary",
    "PersonalSummary",
    "ProductSalesStats",
    "StockStatusBreakdown",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
