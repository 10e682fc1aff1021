"""
Ledger Engine

Turns sale and payment requests into ledger entries and applies them as
ONE atomic batch per request.

DESIGN DECISION: A sale touches three kinds of documents:
1. The new transaction document
2. The customer's totalDue (incremented by the entry's dueAmount)
3. Each sold product's quantity (decremented, floored at zero)

All three go into the same WriteBatch. Balance and stock are changed with
server-side increments rather than read-modify-write, so two sales for
the same customer or product commute instead of overwriting each other.

INVARIANTS (for every customer, after every successful commit):
- customer.total_due == sum(t.due_amount for t in customer's transactions)
- product.quantity == initial - units sold, floored at zero

The zero floor is enforced by decrementing min(requested, available),
where `available` is the stock read during validation. Two sessions
racing for the last units can both pass that read; the floor is then
best-effort. Nothing is retried automatically: a rejected batch is
reported and the caller re-submits.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from src.audit import AuditLogger
from src.models.audit import AuditEventType
from src.models.ledger import (
    Customer,
    CustomerCreate,
    Product,
    SaleItem,
    SaleLineRequest,
    Transaction,
    TransactionKind,
    ValidationResult,
    to_money,
    utc_now,
)
from src.models.reports import BalanceCheck
from src.services.storage import (
    Collection,
    CommitError,
    DocumentStoreInterface,
    WriteBatch,
)
from src.validation import LedgerValidationError, LedgerValidator, requested_quantities

logger = structlog.get_logger(__name__)


class LedgerEngine:
    """
    Records ledger entries for one account.

    Usage:
        engine = LedgerEngine(store)
        sale, result = await engine.record_transaction(
            customer_id,
            [SaleLineRequest(product_id=pid, quantity=2, unit_selling_price=100)],
            paid_amount=Decimal("150"),
        )
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._validator = validator or LedgerValidator()
        self._audit_logger = audit_logger

    @property
    def validator(self) -> LedgerValidator:
        return self._validator

    # =========================================================================
    # Loading
    # =========================================================================

    async def _load_customer(self, customer_id: str) -> Optional[Customer]:
        data = await self._store.get_document(Collection.CUSTOMERS, customer_id)
        return Customer.from_document(customer_id, data) if data is not None else None

    async def _load_products(self, product_ids: list[str]) -> dict[str, Product]:
        products = {}
        for product_id in product_ids:
            data = await self._store.get_document(Collection.PRODUCTS, product_id)
            if data is not None:
                products[product_id] = Product.from_document(product_id, data)
        return products

    async def _ensure_valid(
        self,
        customer_id: str,
        result: ValidationResult,
        correlation_id: Optional[UUID],
    ) -> None:
        if result.is_valid:
            return
        if self._audit_logger:
            await self._audit_logger.log_validation_failed(
                customer_id=customer_id,
                issues=[issue.model_dump() for issue in result.errors],
                correlation_id=correlation_id,
            )
        raise LedgerValidationError(result)

    async def _commit(
        self,
        batch: WriteBatch,
        customer_id: str,
        correlation_id: Optional[UUID],
    ) -> None:
        try:
            await self._store.commit(batch)
        except CommitError as e:
            logger.error(
                "ledger_commit_failed",
                account_id=self._store.account_id,
                customer_id=customer_id,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_commit_failed(
                    customer_id=customer_id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

    def _stage_entry(
        self,
        batch: WriteBatch,
        transaction: Transaction,
    ) -> Transaction:
        """Add the transaction document and the balance increment to a batch."""
        transaction_id = self._store.new_document_id(Collection.TRANSACTIONS)
        transaction = transaction.model_copy(update={"id": transaction_id})
        batch.set(Collection.TRANSACTIONS, transaction_id, transaction.to_document())
        if transaction.due_amount != 0:
            batch.increment(
                Collection.CUSTOMERS,
                transaction.customer_id,
                "totalDue",
                transaction.due_amount,
            )
        return transaction

    # =========================================================================
    # Sales and payments
    # =========================================================================

    async def record_transaction(
        self,
        customer_id: str,
        line_items: list[SaleLineRequest],
        paid_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, ValidationResult]:
        """
        Record a sale, or a payment when there are no line items.

        Args:
            customer_id: Customer the entry belongs to
            line_items: Requested lines (empty for a payment)
            paid_amount: Amount paid now

        Returns:
            Tuple of (stored transaction with its id, validation result).
            The result carries non-blocking warnings such as a clamped
            oversell.

        Raises:
            LedgerValidationError: Request rejected before any write
            CommitError: The store rejected the batch; nothing was applied
        """
        if not line_items:
            return await self._record_payment(customer_id, paid_amount, correlation_id)
        return await self.record_sale(customer_id, line_items, paid_amount, correlation_id)

    async def record_sale(
        self,
        customer_id: str,
        line_items: list[SaleLineRequest],
        paid_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, ValidationResult]:
        """
        Record a sale in one atomic batch.

        Buying price and product name are snapshotted from the product at
        the time of sale.
        """
        paid_amount = to_money(paid_amount)
        requested = requested_quantities(line_items)

        customer = await self._load_customer(customer_id)
        products = await self._load_products(list(requested))

        result = self._validator.validate_sale(
            customer_id=customer_id,
            customer=customer,
            lines=line_items,
            products=products,
            paid_amount=paid_amount,
        )
        await self._ensure_valid(customer_id, result, correlation_id)

        items = []
        for line in line_items:
            product = products[line.product_id]
            items.append(SaleItem(
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                unit_buying_price=product.buying_price,
                unit_selling_price=line.unit_selling_price,
                total_price=line.quantity * line.unit_selling_price,
            ))

        total_amount = to_money(sum((item.total_price for item in items), Decimal("0")))
        profit = to_money(sum((item.profit for item in items), Decimal("0")))

        transaction = Transaction(
            kind=TransactionKind.SALE,
            customer_id=customer_id,
            customer_name=customer.name,
            customer_phone=customer.phone,
            items=items,
            total_amount=total_amount,
            paid_amount=paid_amount,
            due_amount=total_amount - paid_amount,
            profit=profit,
        )

        batch = WriteBatch()
        transaction = self._stage_entry(batch, transaction)

        clamped = []
        for product_id, quantity in requested.items():
            available = products[product_id].quantity
            decrement = min(quantity, available)
            if decrement:
                batch.increment(Collection.PRODUCTS, product_id, "quantity", -decrement)
            if quantity > available:
                clamped.append((product_id, quantity, available))

        await self._commit(batch, customer_id, correlation_id)

        logger.info(
            "sale_recorded",
            account_id=self._store.account_id,
            transaction_id=transaction.id,
            customer_id=customer_id,
            total_amount=str(total_amount),
            due_amount=str(transaction.due_amount),
        )

        if self._audit_logger:
            await self._audit_logger.log_sale_recorded(
                transaction_id=transaction.id,
                customer_id=customer_id,
                total_amount=total_amount,
                due_amount=transaction.due_amount,
                line_count=len(items),
                correlation_id=correlation_id,
            )
            for product_id, quantity, available in clamped:
                await self._audit_logger.log_stock_clamped(
                    product_id=product_id,
                    requested=quantity,
                    available=available,
                    correlation_id=correlation_id,
                )

        return transaction, result

    async def record_payment(
        self,
        customer_id: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """Record a payment that reduces the customer's due by `amount`."""
        transaction, _ = await self._record_payment(customer_id, amount, correlation_id)
        return transaction

    async def _record_payment(
        self,
        customer_id: str,
        amount: Decimal,
        correlation_id: Optional[UUID],
    ) -> tuple[Transaction, ValidationResult]:
        amount = to_money(amount)
        customer = await self._load_customer(customer_id)

        result = self._validator.validate_payment(customer_id, customer, amount)
        await self._ensure_valid(customer_id, result, correlation_id)

        batch = WriteBatch()
        transaction = self._stage_entry(batch, Transaction(
            kind=TransactionKind.PAYMENT,
            customer_id=customer_id,
            customer_name=customer.name,
            customer_phone=customer.phone,
            total_amount=Decimal("0"),
            paid_amount=amount,
            due_amount=-amount,
            profit=Decimal("0"),
        ))
        await self._commit(batch, customer_id, correlation_id)

        logger.info(
            "payment_recorded",
            account_id=self._store.account_id,
            transaction_id=transaction.id,
            customer_id=customer_id,
            amount=str(amount),
        )

        if self._audit_logger:
            await self._audit_logger.log_payment_recorded(
                transaction_id=transaction.id,
                customer_id=customer_id,
                amount=amount,
                correlation_id=correlation_id,
            )

        return transaction, result

    # =========================================================================
    # Imported history
    # =========================================================================

    async def record_opening_balance(
        self,
        customer_id: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Transaction]:
        """
        Carry a literal due into an existing customer's ledger.

        A zero amount writes nothing and returns None.
        """
        amount = to_money(amount)
        if amount == 0:
            return None

        customer = await self._load_customer(customer_id)
        result = self._validator.validate_entry(customer_id, customer)
        await self._ensure_valid(customer_id, result, correlation_id)

        batch = WriteBatch()
        transaction = self._stage_entry(batch, Transaction(
            kind=TransactionKind.OPENING_BALANCE,
            customer_id=customer_id,
            customer_name=customer.name,
            customer_phone=customer.phone,
            due_amount=amount,
        ))
        await self._commit(batch, customer_id, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_ledger_entry(
                event_type=AuditEventType.OPENING_BALANCE_RECORDED,
                transaction_id=transaction.id,
                customer_id=customer_id,
                due_amount=amount,
                correlation_id=correlation_id,
            )
        return transaction

    async def create_customer(
        self,
        data: CustomerCreate,
        opening_due: Decimal = Decimal("0"),
        correlation_id: Optional[UUID] = None,
    ) -> Customer:
        """
        Create a customer, optionally with an opening balance.

        The customer document and its opening_balance entry are written in
        one batch, so the new balance is backed by history from the start.
        """
        opening_due = to_money(opening_due)
        customer_id = self._store.new_document_id(Collection.CUSTOMERS)
        customer = Customer(
            id=customer_id,
            name=data.name,
            phone=data.phone,
            upazila=data.upazila,
            total_due=opening_due,
        )

        batch = WriteBatch()
        batch.set(Collection.CUSTOMERS, customer_id, customer.to_document())
        if opening_due != 0:
            transaction_id = self._store.new_document_id(Collection.TRANSACTIONS)
            entry = Transaction(
                id=transaction_id,
                kind=TransactionKind.OPENING_BALANCE,
                customer_id=customer_id,
                customer_name=customer.name,
                customer_phone=customer.phone,
                due_amount=opening_due,
            )
            batch.set(Collection.TRANSACTIONS, transaction_id, entry.to_document())

        await self._commit(batch, customer_id, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_entity_changed(
                event_type=AuditEventType.CUSTOMER_CREATED,
                entity_type="customer",
                entity_id=customer_id,
                details={"opening_due": str(opening_due)},
                correlation_id=correlation_id,
            )
        return customer

    def _imported_entry(
        self,
        customer: Customer,
        date: datetime,
        total_amount: Decimal,
        paid_amount: Decimal,
        due_amount: Decimal,
        profit: Decimal,
    ) -> Transaction:
        return Transaction(
            kind=TransactionKind.IMPORTED,
            customer_id=customer.id,
            customer_name=customer.name,
            customer_phone=customer.phone,
            total_amount=total_amount,
            paid_amount=paid_amount,
            due_amount=due_amount,
            profit=profit,
            date=date,
        )

    async def record_imported(
        self,
        customer_id: str,
        date: datetime,
        total_amount: Decimal,
        paid_amount: Decimal,
        due_amount: Decimal,
        profit: Decimal = Decimal("0"),
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Record a row from an imported sales report.

        Amounts are taken literally. Imported entries never touch stock.
        """
        customer = await self._load_customer(customer_id)
        result = self._validator.validate_entry(customer_id, customer)
        await self._ensure_valid(customer_id, result, correlation_id)

        batch = WriteBatch()
        transaction = self._stage_entry(batch, self._imported_entry(
            customer, date, total_amount, paid_amount, due_amount, profit,
        ))
        await self._commit(batch, customer_id, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_ledger_entry(
                event_type=AuditEventType.TRANSACTION_IMPORTED,
                transaction_id=transaction.id,
                customer_id=customer_id,
                due_amount=transaction.due_amount,
                correlation_id=correlation_id,
            )
        return transaction

    async def record_imported_for_new_customer(
        self,
        data: CustomerCreate,
        date: datetime,
        total_amount: Decimal,
        paid_amount: Decimal,
        due_amount: Decimal,
        profit: Decimal = Decimal("0"),
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Customer, Transaction]:
        """
        Create a customer together with its first imported entry.

        Both documents go into one batch: a row that fails to build or
        commit leaves no customer behind.
        """
        customer = Customer(
            id=self._store.new_document_id(Collection.CUSTOMERS),
            name=data.name,
            phone=data.phone,
            upazila=data.upazila,
            total_due=to_money(due_amount),
        )
        transaction = self._imported_entry(
            customer, date, total_amount, paid_amount, due_amount, profit,
        ).model_copy(update={"id": self._store.new_document_id(Collection.TRANSACTIONS)})

        batch = WriteBatch()
        batch.set(Collection.CUSTOMERS, customer.id, customer.to_document())
        batch.set(Collection.TRANSACTIONS, transaction.id, transaction.to_document())
        await self._commit(batch, customer.id, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_entity_changed(
                event_type=AuditEventType.CUSTOMER_CREATED,
                entity_type="customer",
                entity_id=customer.id,
                details={"opening_due": "0"},
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_ledger_entry(
                event_type=AuditEventType.TRANSACTION_IMPORTED,
                transaction_id=transaction.id,
                customer_id=customer.id,
                due_amount=transaction.due_amount,
                correlation_id=correlation_id,
            )
        return customer, transaction

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def customer_transactions(self, customer_id: str) -> list[Transaction]:
        """All entries for a customer, newest first."""
        documents = await self._store.list_documents(
            Collection.TRANSACTIONS,
            where={"customerId": customer_id},
            order_by="date",
            descending=True,
        )
        return [Transaction.from_document(d.id, d.data) for d in documents]

    async def check_balance(self, customer_id: str) -> BalanceCheck:
        """Compare the stored totalDue with the sum of the customer's history."""
        customer = await self._load_customer(customer_id)
        if customer is None:
            raise LedgerValidationError(
                self._validator.validate_entry(customer_id, None)
            )

        transactions = await self.customer_transactions(customer_id)
        derived = to_money(sum((t.due_amount for t in transactions), Decimal("0")))

        return BalanceCheck(
            customer_id=customer_id,
            stored_due=customer.total_due,
            derived_due=derived,
            transaction_count=len(transactions),
        )

    async def repair_balance(
        self,
        customer_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> BalanceCheck:
        """
        Overwrite a drifted totalDue with the value derived from history.

        Returns the check taken before the repair. A consistent balance is
        left untouched.
        """
        check = await self.check_balance(customer_id)
        if check.is_consistent:
            return check

        batch = WriteBatch().update(
            Collection.CUSTOMERS,
            customer_id,
            {"totalDue": check.derived_due},
        )
        await self._commit(batch, customer_id, correlation_id)

        logger.warning(
            "balance_repaired",
            account_id=self._store.account_id,
            customer_id=customer_id,
            stored_due=str(check.stored_due),
            derived_due=str(check.derived_due),
        )

        if self._audit_logger:
            await self._audit_logger.log_entity_changed(
                event_type=AuditEventType.BALANCE_REPAIRED,
                entity_type="customer",
                entity_id=customer_id,
                details={
                    "stored_due": str(check.stored_due),
                    "derived_due": str(check.derived_due),
                },
                correlation_id=correlation_id,
            )
        return check
