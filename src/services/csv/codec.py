"""
CSV Import / Export

File format (kept compatible with files exported by earlier versions):
- UTF-8 with a byte order mark, so spreadsheet apps detect Bengali text
- comma-delimited, text fields double-quoted, numbers bare
- one header row, always skipped on import

    customers:     name, phone, area, due
    products:      name, category, quantity, buying price
    transactions:  date, customer name, total, paid, due, profit

IMPORTANT: Import never stops on a bad row. Malformed rows are skipped and
counted; the caller reports how many rows made it in and how many didn't,
with no per-row detail.
"""

import csv
import io
from datetime import datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable, Iterator, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from src.models.ledger import Customer, Product, ProductCreate, Transaction, to_money

BOM = "\ufeff"

CUSTOMER_HEADERS = ["নাম", "ফোন", "উপজেলা", "বকেয়া (৳)"]
PRODUCT_HEADERS = ["পণ্যের নাম", "ক্যাটাগরি", "স্টক পরিমাণ", "ক্রয়মূল্য (৳)"]
TRANSACTION_HEADERS = ["তারিখ", "কাস্টমারের নাম", "মোট বিল", "পরিশোধিত", "বকেয়া", "লাভ"]

DEFAULT_AREA = "N/A"


class CustomerRow(BaseModel):
    """A parsed customer row."""

    name: str = Field(..., min_length=1)
    phone: str = ""
    upazila: str = DEFAULT_AREA
    due: Decimal = Decimal("0")


class TransactionRow(BaseModel):
    """A parsed row of a sales report."""

    date: datetime
    customer_name: str = Field(..., min_length=1)
    total_amount: Decimal = Field(..., ge=0)
    paid_amount: Decimal = Field(..., ge=0)
    due_amount: Decimal
    profit: Decimal = Decimal("0")


# =============================================================================
# Helpers
# =============================================================================

def _number(value: Decimal) -> Union[int, float]:
    """Numbers are written bare; whole amounts without a decimal point."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _write(headers: list[str], rows: Iterable[list]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return (BOM + buffer.getvalue()).encode("utf-8")


def _read(data: Union[bytes, str]) -> Iterator[list[str]]:
    """Data rows with cells stripped. Header and blank lines are dropped."""
    text = data.decode("utf-8-sig") if isinstance(data, bytes) else data.lstrip(BOM)
    reader = csv.reader(io.StringIO(text))
    next(reader, None)
    for row in reader:
        cells = [cell.strip() for cell in row]
        if any(cells):
            yield cells


def _decimal(value: str) -> Decimal:
    """Parse a money cell. Raises ValueError on anything that isn't a finite number."""
    try:
        number = Decimal(value.replace(",", "") if value else "0")
    except InvalidOperation:
        raise ValueError(f"Not a number: {value!r}")
    if not number.is_finite():
        raise ValueError(f"Not a number: {value!r}")
    return to_money(number)


def _date(value: str) -> datetime:
    """
    Parse a date cell.

    Plain dates (as exported) are taken as UTC midnight; full ISO timestamps
    are kept, and naive ones are assumed to be UTC.
    """
    if not value:
        raise ValueError("Missing date")
    if len(value) == 10:
        parsed = datetime.combine(datetime.strptime(value, "%Y-%m-%d").date(), time())
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# Customers
# =============================================================================

def export_customers(customers: Iterable[Customer]) -> bytes:
    return _write(
        CUSTOMER_HEADERS,
        ([c.name, c.phone, c.upazila, _number(c.total_due)] for c in customers),
    )


def parse_customers(data: Union[bytes, str]) -> tuple[list[CustomerRow], int]:
    """
    Parse a customer list.

    A row needs at least a name and a phone column. Area defaults to
    'N/A' and due to zero.

    Returns:
        (parsed rows, number of skipped rows)
    """
    rows, skipped = [], 0
    for cells in _read(data):
        try:
            if len(cells) < 2:
                raise ValueError("Too few columns")
            rows.append(CustomerRow(
                name=cells[0],
                phone=cells[1],
                upazila=cells[2] if len(cells) > 2 and cells[2] else DEFAULT_AREA,
                due=_decimal(cells[3]) if len(cells) > 3 else Decimal("0"),
            ))
        except (ValueError, ValidationError):
            skipped += 1
    return rows, skipped


# =============================================================================
# Products
# =============================================================================

def export_products(products: Iterable[Product]) -> bytes:
    return _write(
        PRODUCT_HEADERS,
        ([p.name, p.category, p.quantity, _number(p.buying_price)] for p in products),
    )


def parse_products(data: Union[bytes, str]) -> tuple[list[ProductCreate], int]:
    """
    Parse an inventory list.

    A row needs a name and numeric quantity and buying price.
    """
    rows, skipped = [], 0
    for cells in _read(data):
        try:
            if len(cells) < 4:
                raise ValueError("Too few columns")
            quantity = Decimal(cells[2])
            if quantity != quantity.to_integral_value():
                raise ValueError("Quantity must be a whole number")
            rows.append(ProductCreate(
                name=cells[0],
                category=cells[1],
                quantity=int(quantity),
                buying_price=_decimal(cells[3]),
            ))
        except (ValueError, ArithmeticError, ValidationError):
            skipped += 1
    return rows, skipped


# =============================================================================
# Transactions
# =============================================================================

def export_transactions(transactions: Iterable[Transaction]) -> bytes:
    def row(t: Transaction) -> list:
        day = t.date.astimezone(timezone.utc).date().isoformat()
        return [
            day,
            t.customer_name,
            _number(t.total_amount),
            _number(t.paid_amount),
            _number(t.due_amount),
            _number(t.profit),
        ]

    return _write(TRANSACTION_HEADERS, (row(t) for t in transactions))


def parse_transactions(
    data: Union[bytes, str],
    default_date: Optional[datetime] = None,
) -> tuple[list[TransactionRow], int]:
    """
    Parse a raw sales report.

    A row needs a date, a customer name, total, paid and due. Profit is
    optional and defaults to zero.
    """
    rows, skipped = [], 0
    for cells in _read(data):
        try:
            if len(cells) < 5:
                raise ValueError("Too few columns")
            date = _date(cells[0]) if cells[0] or default_date is None else default_date
            rows.append(TransactionRow(
                date=date,
                customer_name=cells[1],
                total_amount=_decimal(cells[2]),
                paid_amount=_decimal(cells[3]),
                due_amount=_decimal(cells[4]),
                profit=_decimal(cells[5]) if len(cells) > 5 else Decimal("0"),
            ))
        except (ValueError, ValidationError):
            skipped += 1
    return rows, skipped
