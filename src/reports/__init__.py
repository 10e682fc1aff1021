"""Read-side reports computed from stored documents."""

from src.reports.aggregator import (
    customer_history,
    daily_sales,
    dashboard_summary,
    filter_personal,
    ledger_summary,
    low_stock_products,
    month_key,
    monthly_summaries,
    personal_summary,
    product_sales_stats,
    stock_status,
)

__all__ = [
    "customer_history",
    "daily_sales",
    "dashboard_summary",
    "filter_personal",
    "ledger_summary",
    "low_stock_products",
    "month_key",
    "monthly_summaries",
    "personal_summary",
    "product_sales_stats",
    "stock_status",
]
