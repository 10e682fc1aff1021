"""Tests for the two-stage ledger validator."""

from decimal import Decimal

import pytest

from src.models.ledger import Customer, Product, SaleLineRequest, StockPolicy
from src.validation import LedgerValidationError, LedgerValidator, requested_quantities


@pytest.fixture
def customer():
    return Customer(id="c1", name="Karim", phone="01887654321")


@pytest.fixture
def products():
    return {
        "p1": Product(id="p1", name="Headphone Pro", quantity=5, buying_price=Decimal("800")),
    }


def lines(quantity=1, price="1000"):
    return [SaleLineRequest(product_id="p1", quantity=quantity, unit_selling_price=Decimal(price))]


class TestSaleValidation:
    """Schema and semantic checks for sales."""

    def test_valid_sale(self, validator, customer, products):
        result = validator.validate_sale("c1", customer, lines(), products, Decimal("500"))

        assert result.is_valid
        assert result.issues == []

    def test_empty_sale_fails_schema_stage(self, validator, customer, products):
        result = validator.validate_sale("c1", None, [], products, Decimal("0"))

        assert not result.is_valid
        # Semantic stage is skipped, so the missing customer is not reported
        assert [i.issue_type for i in result.issues] == ["missing"]

    def test_negative_paid_amount(self, validator, customer, products):
        result = validator.validate_sale("c1", customer, lines(), products, Decimal("-1"))

        assert not result.is_valid
        assert result.errors[0].field == "paid_amount"

    def test_missing_customer(self, validator, products):
        result = validator.validate_sale("c9", None, lines(), products, Decimal("0"))

        assert not result.is_valid
        assert result.errors[0].issue_type == "not_found"

    def test_archived_customer(self, validator, customer, products):
        archived = customer.model_copy(update={"archived": True})

        result = validator.validate_sale("c1", archived, lines(), products, Decimal("0"))

        assert result.errors[0].issue_type == "archived"

    def test_oversell_warns_under_clamp(self, validator, customer, products):
        result = validator.validate_sale("c1", customer, lines(quantity=7), products, Decimal("0"))

        assert result.is_valid
        assert result.issues[0].issue_type == "insufficient_stock"
        assert result.issues[0].severity == "warning"
        assert "7 requested, 5 in stock" in result.warnings[0]

    def test_oversell_fails_under_reject(self, customer, products):
        validator = LedgerValidator(StockPolicy.REJECT, Decimal("10000000"))

        result = validator.validate_sale("c1", customer, lines(quantity=7), products, Decimal("0"))

        assert not result.is_valid
        assert result.errors[0].issue_type == "insufficient_stock"

    def test_oversell_counts_all_lines_for_a_product(self, customer, products):
        validator = LedgerValidator(StockPolicy.REJECT, Decimal("10000000"))
        split = lines(quantity=3) + lines(quantity=3)

        result = validator.validate_sale("c1", customer, split, products, Decimal("0"))

        assert not result.is_valid

    def test_high_total_warns(self, customer, products):
        validator = LedgerValidator(StockPolicy.CLAMP, Decimal("1000"))

        result = validator.validate_sale("c1", customer, lines(quantity=2), products, Decimal("0"))

        assert result.is_valid
        assert result.issues[0].issue_type == "suspicious_value"

    def test_overpayment_warns(self, validator, customer, products):
        result = validator.validate_sale("c1", customer, lines(), products, Decimal("1500"))

        assert result.is_valid
        assert result.issues[0].issue_type == "overpayment"


class TestOtherEntries:

    def test_payment_must_be_positive(self, validator, customer):
        assert not validator.validate_payment("c1", customer, Decimal("0")).is_valid
        assert validator.validate_payment("c1", customer, Decimal("10")).is_valid

    def test_stock_adjustment_cannot_go_negative(self, validator, products):
        assert validator.validate_stock_adjustment("p1", products["p1"], -5).is_valid
        assert not validator.validate_stock_adjustment("p1", products["p1"], -6).is_valid
        assert not validator.validate_stock_adjustment("p9", None, 3).is_valid


class TestHelpers:

    def test_requested_quantities_merges_lines(self):
        merged = requested_quantities([
            SaleLineRequest(product_id="a", quantity=2, unit_selling_price=Decimal("1")),
            SaleLineRequest(product_id="b", quantity=1, unit_selling_price=Decimal("1")),
            SaleLineRequest(product_id="a", quantity=3, unit_selling_price=Decimal("2")),
        ])
        assert merged == {"a": 5, "b": 1}

    def test_error_carries_result(self, validator):
        result = validator.validate_payment("c1", None, Decimal("10"))
        error = LedgerValidationError(result)

        assert error.result is result
        assert "does not exist" in str(error)

    def test_user_friendly_summary(self, validator, customer, products):
        ok = validator.validate_sale("c1", customer, lines(), products, Decimal("0"))
        assert validator.get_user_friendly_summary(ok) == "All checks passed."

        warned = validator.validate_sale("c1", customer, lines(quantity=7), products, Decimal("0"))
        summary = validator.get_user_friendly_summary(warned)
        assert summary.startswith("Please note:")

        failed = validator.validate_payment("c1", customer, Decimal("0"))
        assert "cannot be saved" in validator.get_user_friendly_summary(failed)
