"""
Reporting Aggregator

DESIGN DECISION: Reports are DETERMINISTIC functions of the stored
documents. Nothing here reads from or writes to the store; callers pass
the lists they already hold (usually from a live subscription), and every
number is recomputed from them.

Two different "total due" figures exist on purpose:
- the dashboard sums customer.total_due (the materialized balances)
- the ledger summary sums transaction.due_amount (the history)
They agree whenever the balance invariant holds; check_balance in the
ledger engine reports where they don't.

Days and months are bucketed in the report timezone, not UTC, so a sale
made at 01:00 local time lands on the right day.
"""

import calendar
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from src.models.ledger import (
    Customer,
    PersonalTransaction,
    PersonalTransactionType,
    Product,
    Transaction,
    TransactionKind,
)
from src.models.reports import (
    DailySales,
    DashboardSummary,
    LedgerSummary,
    MonthlySummary,
    PersonalSummary,
    ProductSalesStats,
    StockStatusBreakdown,
)

ZERO = Decimal("0")


def _local(moment: datetime, tz: Optional[ZoneInfo]) -> datetime:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz) if tz else moment


def month_key(moment: datetime, tz: Optional[ZoneInfo] = None) -> str:
    """Calendar month of a timestamp as YYYY-MM."""
    local = _local(moment, tz)
    return f"{local.year:04d}-{local.month:02d}"


def month_label(key: str) -> str:
    year, month = key.split("-")
    return f"{calendar.month_name[int(month)]} {year}"


# =============================================================================
# Transaction reports
# =============================================================================

def monthly_summaries(
    transactions: Iterable[Transaction],
    tz: Optional[ZoneInfo] = None,
) -> list[MonthlySummary]:
    """
    Partition transactions by calendar month.

    Every entry counts, payments included: their total is zero and their
    negative due reduces the month's due.

    Returns:
        One summary per month that has entries, newest month first
    """
    buckets: dict[str, MonthlySummary] = {}

    for transaction in transactions:
        key = month_key(transaction.date, tz)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = MonthlySummary(key=key, label=month_label(key))

        bucket.sell += transaction.total_amount
        bucket.profit += transaction.profit
        bucket.due += transaction.due_amount
        bucket.buy += transaction.buy_amount
        bucket.count += 1

    return sorted(buckets.values(), key=lambda b: b.key, reverse=True)


def ledger_summary(transactions: Iterable[Transaction]) -> LedgerSummary:
    """All-time totals over the transaction log."""
    summary = LedgerSummary()
    for transaction in transactions:
        summary.total_sell += transaction.total_amount
        summary.total_profit += transaction.profit
        summary.total_due += transaction.due_amount
        summary.transaction_count += 1
    summary.total_buy = summary.total_sell - summary.total_profit
    return summary


def daily_sales(
    transactions: Iterable[Transaction],
    days: int = 7,
    today: Optional[date] = None,
    tz: Optional[ZoneInfo] = None,
) -> list[DailySales]:
    """
    Sales total per day for the last `days` days, ending today.

    Days without sales are present with zero. Oldest day first.
    """
    if today is None:
        today = _local(datetime.now(timezone.utc), tz).date()

    window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    totals: dict[date, Decimal] = {day: ZERO for day in window}

    for transaction in transactions:
        day = _local(transaction.date, tz).date()
        if day in totals:
            totals[day] += transaction.total_amount

    return [
        DailySales(day=day, label=day.strftime("%a"), sales=totals[day])
        for day in window
    ]


def product_sales_stats(
    transactions: Iterable[Transaction],
) -> dict[str, ProductSalesStats]:
    """Units sold, revenue and cost per product id, over sale entries only."""
    stats: dict[str, ProductSalesStats] = {}

    for transaction in transactions:
        if transaction.kind != TransactionKind.SALE:
            continue
        for item in transaction.items:
            entry = stats.get(item.product_id)
            if entry is None:
                entry = stats[item.product_id] = ProductSalesStats(product_id=item.product_id)
            entry.total_sold_qty += item.quantity
            entry.total_revenue += item.total_price
            entry.total_cost += item.quantity * item.unit_buying_price

    return stats


def customer_history(
    transactions: Iterable[Transaction],
    customer_id: str,
) -> list[Transaction]:
    """A customer's entries, newest first."""
    history = [t for t in transactions if t.customer_id == customer_id]
    history.sort(key=lambda t: _local(t.date, None), reverse=True)
    return history


# =============================================================================
# Stock reports
# =============================================================================

def stock_status(
    products: Iterable[Product],
    low_threshold: int = 10,
) -> StockStatusBreakdown:
    """
    Count products by stock level.

    in stock: quantity >= low_threshold
    low:      0 < quantity < low_threshold
    out:      quantity == 0
    """
    breakdown = StockStatusBreakdown()
    for product in products:
        if product.quantity == 0:
            breakdown.out_of_stock += 1
        elif product.quantity < low_threshold:
            breakdown.low_stock += 1
        else:
            breakdown.in_stock += 1
    return breakdown


def low_stock_products(
    products: Iterable[Product],
    threshold: int = 5,
) -> list[Product]:
    """Products with quantity below `threshold`, lowest first."""
    low = [p for p in products if p.quantity < threshold]
    low.sort(key=lambda p: (p.quantity, p.name))
    return low


# =============================================================================
# Personal ledger
# =============================================================================

def filter_personal(
    entries: Iterable[PersonalTransaction],
    entry_type: Optional[PersonalTransactionType] = None,
) -> list[PersonalTransaction]:
    """All entries, or only incomes / only expenses."""
    if entry_type is None:
        return list(entries)
    return [e for e in entries if e.type == entry_type]


def personal_summary(entries: Iterable[PersonalTransaction]) -> PersonalSummary:
    summary = PersonalSummary()
    for entry in entries:
        if entry.type == PersonalTransactionType.INCOME:
            summary.income += entry.amount
        else:
            summary.expense += entry.amount
    return summary


# =============================================================================
# Dashboard
# =============================================================================

def dashboard_summary(
    customers: list[Customer],
    products: list[Product],
    transactions: list[Transaction],
    low_stock_threshold: int = 5,
    days: int = 7,
    today: Optional[date] = None,
    tz: Optional[ZoneInfo] = None,
) -> DashboardSummary:
    """Headline numbers for the landing screen."""
    active = [c for c in customers if not c.archived]

    return DashboardSummary(
        customer_count=len(active),
        total_sales=sum((t.total_amount for t in transactions), ZERO),
        total_profit=sum((t.profit for t in transactions), ZERO),
        total_due=sum((c.total_due for c in customers), ZERO),
        customers_with_due=sum(1 for c in customers if c.owes_money),
        low_stock=low_stock_products(products, low_stock_threshold),
        last_days=daily_sales(transactions, days=days, today=today, tz=tz),
        is_empty=not (customers or products or transactions),
    )
