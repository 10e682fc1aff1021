"""
Core Data Models for Amar Hisab

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for the document store and logging
4. Keep the ledger invariants visible in one place

DESIGN DECISION: Python attributes are snake_case, stored documents are
camelCase (totalDue, customerId, createdAt). The alias generator does the
translation so existing documents keep their field names.

LEDGER INVARIANTS:
- customer.total_due == sum(transaction.due_amount for that customer)
- product.quantity == initial quantity - units sold (floored at zero)
Both fields are only ever changed by atomic increments issued by the
ledger engine (or an explicit stock adjustment).
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def to_money(value: Decimal) -> Decimal:
    """Quantize an amount to two decimal places."""
    return Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


Money = Annotated[Decimal, AfterValidator(to_money)]

# Sentinel product ids used by documents written before transactions had a kind
LEGACY_PAYMENT_PRODUCT_ID = "payment_adjustment"
LEGACY_IMPORTED_PRODUCT_ID = "imported"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionKind(str, Enum):
    """
    What a ledger entry represents.

    Every kind contributes its due_amount to the customer's balance.
    Only SALE touches product stock.
    """
    SALE = "sale"
    PAYMENT = "payment"
    OPENING_BALANCE = "opening_balance"  # Literal due carried in by a customer import
    IMPORTED = "imported"                # Raw row from a sales report import


class PersonalTransactionType(str, Enum):
    """Direction of a personal ledger entry."""
    INCOME = "income"
    EXPENSE = "expense"


class StockPolicy(str, Enum):
    """What a sale does when it asks for more units than are in stock."""
    CLAMP = "clamp"    # Sale goes through, stock floors at zero
    REJECT = "reject"  # Sale fails validation before any write


# =============================================================================
# BASE MODELS
# =============================================================================

class LedgerBaseModel(BaseModel):
    """Shared config: camelCase aliases for storage, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class DocumentModel(LedgerBaseModel):
    """
    A model stored as one document in an account collection.

    The document id lives in the path, not in the document body.
    """

    id: str = Field(
        default="",
        description="Document id (empty until stored)"
    )

    def to_document(self) -> dict[str, Any]:
        """Convert to a document body for the store."""
        return self.model_dump(by_alias=True, exclude={"id"})

    @classmethod
    def from_document(cls, document_id: str, data: dict[str, Any]):
        """Build a model from a stored document."""
        return cls.model_validate({**data, "id": document_id})


# =============================================================================
# CUSTOMERS AND PRODUCTS
# =============================================================================

class Customer(DocumentModel):
    """
    A customer with a running credit balance.

    total_due is positive when the customer owes money.
    """

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Customer name"
    )
    phone: str = Field(
        default="",
        max_length=50,
        description="Contact number"
    )
    upazila: str = Field(
        default="N/A",
        max_length=200,
        description="Area / upazila"
    )
    total_due: Money = Field(
        default=Decimal("0"),
        description="Outstanding balance, maintained by the ledger engine only"
    )
    created_at: datetime = Field(default_factory=utc_now)

    # Soft delete: customers with history are archived instead of removed
    archived: bool = False
    archived_at: Optional[datetime] = None

    @property
    def owes_money(self) -> bool:
        return self.total_due > 0


class Product(DocumentModel):
    """A stocked product."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Product name"
    )
    category: str = Field(
        default="",
        max_length=100,
        description="Free-text category"
    )
    quantity: int = Field(
        default=0,
        ge=0,
        description="Units in stock"
    )
    buying_price: Money = Field(
        default=Decimal("0"),
        ge=0,
        description="Current unit cost"
    )
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# TRANSACTIONS
# =============================================================================

class SaleItem(LedgerBaseModel):
    """
    One line of a stored sale.

    product_name and unit_buying_price are snapshots taken at the time of
    sale so that historical profit does not move when prices change.
    """

    product_id: str = Field(..., min_length=1)
    product_name: str = Field(default="")
    quantity: int = Field(..., gt=0)
    unit_buying_price: Money = Field(..., ge=0)
    unit_selling_price: Money = Field(..., ge=0)
    total_price: Money = Field(...)

    @property
    def profit(self) -> Decimal:
        return to_money(self.quantity * (self.unit_selling_price - self.unit_buying_price))


class Transaction(DocumentModel):
    """
    An immutable ledger entry.

    CRITICAL: due_amount is the signed delta applied to the customer's
    balance (positive increases debt, negative reduces it).
    """

    kind: TransactionKind = Field(
        default=TransactionKind.SALE,
        description="Tag of the entry"
    )
    customer_id: str = Field(..., min_length=1)
    customer_name: str = Field(default="", description="Snapshot of the customer name")
    customer_phone: str = Field(default="", description="Snapshot of the customer phone")

    items: list[SaleItem] = Field(default_factory=list)

    total_amount: Money = Field(default=Decimal("0"), ge=0)
    paid_amount: Money = Field(default=Decimal("0"), ge=0)
    due_amount: Money = Field(default=Decimal("0"))
    profit: Money = Field(default=Decimal("0"))

    date: datetime = Field(default_factory=utc_now)

    @model_validator(mode="before")
    @classmethod
    def infer_legacy_kind(cls, data: Any) -> Any:
        """
        Documents written before the kind tag existed encode payments and
        imports as a single sentinel line item. Translate them on read.
        """
        if not isinstance(data, dict) or data.get("kind"):
            return data

        items = data.get("items") or []
        first_id = None
        if items and isinstance(items[0], dict):
            first_id = items[0].get("productId", items[0].get("product_id"))

        data = dict(data)
        if first_id == LEGACY_PAYMENT_PRODUCT_ID:
            data["kind"] = TransactionKind.PAYMENT
            data["items"] = []
        elif first_id == LEGACY_IMPORTED_PRODUCT_ID:
            data["kind"] = TransactionKind.IMPORTED
            data["items"] = []
        else:
            data["kind"] = TransactionKind.SALE
        return data

    @model_validator(mode="after")
    def validate_shape(self) -> "Transaction":
        """Only sales carry line items."""
        if self.kind == TransactionKind.SALE and not self.items:
            raise ValueError("A sale must have at least one line item")
        if self.kind != TransactionKind.SALE and self.items:
            raise ValueError(f"A {self.kind.value} entry cannot have line items")
        if self.kind == TransactionKind.PAYMENT:
            if self.total_amount != 0 or self.profit != 0:
                raise ValueError("A payment has no sale amount or profit")
            if self.due_amount != -self.paid_amount:
                raise ValueError("A payment must reduce the due by exactly the paid amount")
        return self

    @property
    def is_payment(self) -> bool:
        return self.kind == TransactionKind.PAYMENT

    @property
    def buy_amount(self) -> Decimal:
        """Cost of goods for this entry."""
        return to_money(self.total_amount - self.profit)


class PersonalTransaction(DocumentModel):
    """A personal income or expense entry. Independent of the shop ledger."""

    type: PersonalTransactionType
    amount: Money = Field(..., gt=0)
    category: str = Field(..., min_length=1, max_length=100)
    note: str = Field(default="", max_length=1000)
    date: datetime = Field(default_factory=utc_now)

    @property
    def signed_amount(self) -> Decimal:
        if self.type == PersonalTransactionType.INCOME:
            return self.amount
        return -self.amount


# =============================================================================
# STORE SETTINGS
# =============================================================================

DEFAULT_STORE_NAME = "Amar Hisab"
DEFAULT_STORE_ADDRESS = "Dhaka, Bangladesh"
DEFAULT_INVOICE_COLOR = "#4f46e5"
DEFAULT_INVOICE_FONT = "'Hind Siliguri', sans-serif"


class StoreSettings(LedgerBaseModel):
    """
    Branding used on invoices. One per account, last write wins.
    """

    name: str = Field(default=DEFAULT_STORE_NAME, max_length=200)
    address: str = Field(default=DEFAULT_STORE_ADDRESS, max_length=500)
    phone: str = Field(default="", max_length=50)
    logo: str = Field(default="", description="Logo URL in the blob store")
    color: str = Field(
        default=DEFAULT_INVOICE_COLOR,
        pattern=r"^#[0-9a-fA-F]{6}$",
        description="Invoice accent color"
    )
    font: str = Field(
        default=DEFAULT_INVOICE_FONT,
        max_length=200,
        description="CSS font-family for web invoices; PDFs use PDF_FONT_PATH instead",
    )

    @model_validator(mode="before")
    @classmethod
    def drop_empty_values(cls, data: Any) -> Any:
        """Blank stored values fall back to defaults."""
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v not in (None, "")}
        return data

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# =============================================================================
# REQUEST MODELS - what callers may ask for
# =============================================================================

class SaleLineRequest(LedgerBaseModel):
    """One requested line of a sale."""

    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    unit_selling_price: Money = Field(..., ge=0)


class CustomerCreate(LedgerBaseModel):
    """Input for a new customer. Balance always starts at zero."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(default="", max_length=50)
    upazila: str = Field(default="N/A", max_length=200)


class CustomerUpdate(LedgerBaseModel):
    """
    Editable customer fields.

    CRITICAL: total_due is deliberately absent. Balances change only
    through the ledger engine; extra="forbid" turns an attempt to set it
    into a validation error.
    """

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    upazila: Optional[str] = Field(default=None, max_length=200)


class ProductCreate(LedgerBaseModel):
    """Input for a new product."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(default="", max_length=100)
    quantity: int = Field(default=0, ge=0)
    buying_price: Money = Field(default=Decimal("0"), ge=0)


class ProductUpdate(LedgerBaseModel):
    """Editable product fields. Stock changes go through adjust_stock."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, max_length=100)
    buying_price: Optional[Money] = Field(default=None, ge=0)


class PersonalTransactionCreate(LedgerBaseModel):
    """Input for a personal ledger entry."""

    model_config = ConfigDict(extra="forbid")

    type: PersonalTransactionType
    amount: Money = Field(..., gt=0)
    category: str = Field(..., min_length=1, max_length=100)
    note: str = Field(default="", max_length=1000)


class StoreSettingsUpdate(LedgerBaseModel):
    """Partial settings update, merged into the stored document."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, max_length=200)
    address: Optional[str] = Field(default=None, max_length=500)
    phone: Optional[str] = Field(default=None, max_length=50)
    logo: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")
    font: Optional[str] = Field(default=None, max_length=200)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'not_found', 'insufficient_stock')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """Result of validating a ledger request before any write."""

    validated_at: datetime = Field(default_factory=utc_now)

    is_valid: bool = Field(
        ...,
        description="Overall validation result"
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    # Warnings don't block but should be shown
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]
