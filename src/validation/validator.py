"""
Two-Stage Ledger Validation

DESIGN DECISION: Every ledger request is validated before anything is
written, in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Amounts are non-negative (payments strictly positive)
- Every line has a product id, a positive quantity and a price
- This catches malformed requests regardless of store contents

STAGE 2 - SEMANTIC VALIDATION:
- The customer exists and is not archived
- Every product id resolves
- Requested quantities against available stock (stock policy)
- Absurd amount detection
- This needs the documents resolved from the store

Stage 2 is skipped when stage 1 fails.

IMPORTANT: Validation NEVER silently fixes issues. A clamped oversell is
still reported, as a warning, so the caller can show it.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Optional

from src.config import get_settings
from src.models.ledger import (
    Customer,
    Product,
    SaleLineRequest,
    StockPolicy,
    ValidationIssue,
    ValidationResult,
)


class LedgerValidationError(Exception):
    """A ledger request failed validation. Nothing was written."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(issue.message for issue in result.errors)
        super().__init__(messages or "Ledger request is invalid")

    @property
    def issues(self) -> list[ValidationIssue]:
        return self.result.issues


def requested_quantities(lines: list[SaleLineRequest]) -> dict[str, int]:
    """Total requested units per product, in first-seen order."""
    totals: dict[str, int] = defaultdict(int)
    for line in lines:
        totals[line.product_id] += line.quantity
    return dict(totals)


class LedgerValidator:
    """
    Validates ledger requests through a two-stage pipeline.

    Stage 1: Schema validation (no store access needed)
    Stage 2: Semantic validation against the resolved customer and products
    """

    def __init__(
        self,
        stock_policy: Optional[StockPolicy] = None,
        max_transaction_amount: Optional[Decimal] = None,
    ):
        """
        Initialize validator.

        Args:
            stock_policy: Oversell policy. Defaults to the configured one.
            max_transaction_amount: Totals above this get a sanity warning.
        """
        if stock_policy is None or max_transaction_amount is None:
            settings = get_settings().app
            if stock_policy is None:
                stock_policy = StockPolicy(settings.stock_policy)
            if max_transaction_amount is None:
                max_transaction_amount = Decimal(str(settings.max_transaction_amount))

        self.stock_policy = stock_policy
        self._max_amount = max_transaction_amount

    # -------------------------------------------------------------------------
    # Stage 1
    # -------------------------------------------------------------------------

    def _validate_sale_schema(
        self,
        lines: list[SaleLineRequest],
        paid_amount: Decimal,
    ) -> list[ValidationIssue]:
        issues = []

        if not lines:
            issues.append(ValidationIssue(
                field="line_items",
                issue_type="missing",
                message="A sale needs at least one line item",
                severity="error",
                suggested_fix="Record a payment instead if no goods were sold",
            ))

        for index, line in enumerate(lines):
            if line.quantity <= 0:
                issues.append(ValidationIssue(
                    field=f"line_items[{index}].quantity",
                    issue_type="invalid_value",
                    message="Quantity must be greater than zero",
                    severity="error",
                ))
            if line.unit_selling_price < 0:
                issues.append(ValidationIssue(
                    field=f"line_items[{index}].unit_selling_price",
                    issue_type="invalid_value",
                    message="Selling price cannot be negative",
                    severity="error",
                ))

        if paid_amount < 0:
            issues.append(ValidationIssue(
                field="paid_amount",
                issue_type="invalid_value",
                message="Paid amount cannot be negative",
                severity="error",
            ))

        return issues

    @staticmethod
    def _validate_amount(field: str, amount: Decimal) -> list[ValidationIssue]:
        if amount <= 0:
            return [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            )]
        return []

    # -------------------------------------------------------------------------
    # Stage 2
    # -------------------------------------------------------------------------

    @staticmethod
    def _validate_customer(
        customer_id: str,
        customer: Optional[Customer],
    ) -> list[ValidationIssue]:
        if customer is None:
            return [ValidationIssue(
                field="customer_id",
                issue_type="not_found",
                message=f"Customer {customer_id} does not exist",
                severity="error",
                suggested_fix="Pick an existing customer or add one first",
            )]
        if customer.archived:
            return [ValidationIssue(
                field="customer_id",
                issue_type="archived",
                message=f"Customer {customer.name} is archived",
                severity="error",
                suggested_fix="Archived customers cannot receive new entries",
            )]
        return []

    def _validate_stock(
        self,
        lines: list[SaleLineRequest],
        products: dict[str, Product],
    ) -> list[ValidationIssue]:
        issues = []

        for product_id, requested in requested_quantities(lines).items():
            product = products.get(product_id)
            if product is None:
                issues.append(ValidationIssue(
                    field="product_id",
                    issue_type="not_found",
                    message=f"Product {product_id} does not exist",
                    severity="error",
                ))
                continue

            if requested > product.quantity:
                clamp = self.stock_policy == StockPolicy.CLAMP
                issues.append(ValidationIssue(
                    field="quantity",
                    issue_type="insufficient_stock",
                    message=(
                        f"{product.name}: {requested} requested, "
                        f"{product.quantity} in stock"
                    ),
                    severity="warning" if clamp else "error",
                    suggested_fix=(
                        "Stock will be set to zero"
                        if clamp else "Reduce the quantity or restock first"
                    ),
                ))

        return issues

    def _validate_semantic_amounts(
        self,
        total_amount: Decimal,
        paid_amount: Decimal,
    ) -> list[ValidationIssue]:
        issues = []

        if total_amount > self._max_amount:
            issues.append(ValidationIssue(
                field="total_amount",
                issue_type="suspicious_value",
                message=f"Total ({total_amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify quantities and prices",
            ))

        if paid_amount > total_amount:
            issues.append(ValidationIssue(
                field="paid_amount",
                issue_type="overpayment",
                message=(
                    f"Paid ({paid_amount:,.2f}) exceeds the total "
                    f"({total_amount:,.2f}); the difference reduces the due"
                ),
                severity="warning",
            ))

        return issues

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @staticmethod
    def _result(issues: list[ValidationIssue]) -> ValidationResult:
        return ValidationResult(
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
            warnings=[issue.message for issue in issues if issue.severity == "warning"],
        )

    def validate_sale(
        self,
        customer_id: str,
        customer: Optional[Customer],
        lines: list[SaleLineRequest],
        products: dict[str, Product],
        paid_amount: Decimal,
    ) -> ValidationResult:
        """
        Run full two-stage validation for a sale.

        Args:
            customer_id: Requested customer id
            customer: The resolved customer, or None if it doesn't exist
            lines: Requested sale lines
            products: Resolved products keyed by id (missing ids absent)
            paid_amount: Amount paid at the counter

        Returns:
            ValidationResult with all issues found
        """
        issues = self._validate_sale_schema(lines, paid_amount)
        if any(issue.severity == "error" for issue in issues):
            return self._result(issues)

        issues.extend(self._validate_customer(customer_id, customer))
        issues.extend(self._validate_stock(lines, products))

        total = sum((line.quantity * line.unit_selling_price for line in lines), Decimal("0"))
        issues.extend(self._validate_semantic_amounts(total, paid_amount))

        return self._result(issues)

    def validate_payment(
        self,
        customer_id: str,
        customer: Optional[Customer],
        amount: Decimal,
    ) -> ValidationResult:
        """Validate a payment-only entry."""
        issues = self._validate_amount("amount", amount)
        if not issues:
            issues.extend(self._validate_customer(customer_id, customer))
        return self._result(issues)

    def validate_entry(
        self,
        customer_id: str,
        customer: Optional[Customer],
    ) -> ValidationResult:
        """Validate an opening balance or imported entry (amounts are literal)."""
        return self._result(self._validate_customer(customer_id, customer))

    def validate_stock_adjustment(
        self,
        product_id: str,
        product: Optional[Product],
        delta: int,
    ) -> ValidationResult:
        """A manual restock or write-off may not take stock below zero."""
        if product is None:
            return self._result([ValidationIssue(
                field="product_id",
                issue_type="not_found",
                message=f"Product {product_id} does not exist",
                severity="error",
            )])
        if product.quantity + delta < 0:
            return self._result([ValidationIssue(
                field="quantity",
                issue_type="insufficient_stock",
                message=(
                    f"{product.name}: cannot remove {-delta} units, "
                    f"only {product.quantity} in stock"
                ),
                severity="error",
            )])
        return self._result([])

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show next to the sale form.
        """
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []

        if not result.is_valid:
            lines.append("This entry cannot be saved:")
            for issue in result.errors:
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please note:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
