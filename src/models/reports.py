"""
Report Models

Read-side shapes produced by the reporting aggregator and the balance
check. None of these are stored; they are recomputed on every read.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from src.models.ledger import Product


class LedgerSummary(BaseModel):
    """All-time totals over the transaction log."""

    total_sell: Decimal = Decimal("0")
    total_profit: Decimal = Decimal("0")
    total_buy: Decimal = Decimal("0")
    total_due: Decimal = Decimal("0")
    transaction_count: int = 0


class MonthlySummary(BaseModel):
    """Totals for one calendar month."""

    key: str = Field(..., pattern=r"^\d{4}-\d{2}$", description="YYYY-MM")
    label: str = Field(..., description="Display label, e.g. 'March 2025'")
    sell: Decimal = Decimal("0")
    profit: Decimal = Decimal("0")
    buy: Decimal = Decimal("0")
    due: Decimal = Decimal("0")
    count: int = 0


class DailySales(BaseModel):
    day: date
    label: str
    sales: Decimal = Decimal("0")


class ProductSalesStats(BaseModel):
    """How one product has sold over the whole log."""

    product_id: str
    total_sold_qty: int = 0
    total_revenue: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")

    @property
    def profit(self) -> Decimal:
        return self.total_revenue - self.total_cost


class StockStatusBreakdown(BaseModel):
    in_stock: int = 0
    low_stock: int = 0
    out_of_stock: int = 0


class PersonalSummary(BaseModel):
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")

    @property
    def balance(self) -> Decimal:
        return self.income - self.expense


class DashboardSummary(BaseModel):
    """Headline numbers for the landing screen."""

    customer_count: int = 0
    total_sales: Decimal = Decimal("0")
    total_profit: Decimal = Decimal("0")
    total_due: Decimal = Decimal("0")
    customers_with_due: int = 0
    low_stock: list[Product] = Field(default_factory=list)
    last_days: list[DailySales] = Field(default_factory=list)
    is_empty: bool = False


class BalanceCheck(BaseModel):
    """Stored balance compared with the balance derived from history."""

    customer_id: str
    stored_due: Decimal
    derived_due: Decimal
    transaction_count: int

    @property
    def is_consistent(self) -> bool:
        return self.stored_due == self.derived_due

    @property
    def drift(self) -> Decimal:
        return self.stored_due - self.derived_due


class ImportResult(BaseModel):
    """Outcome of a CSV import. Row-level errors are not reported."""

    imported: int = 0
    skipped: int = 0

    @property
    def total_rows(self) -> int:
        return self.imported + self.skipped
