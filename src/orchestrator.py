"""
Main Orchestrator for Amar Hisab

This module ties together all the components and defines the
account-scoped flows a UI calls into:
1. Customers (add, edit, archive/delete, history, payments)
2. Inventory (add, edit, restock, delete)
3. Sales (record sales and payments, invoices, receipts, statements)
4. Personal ledger (income and expense entries)
5. Store settings (branding, logo upload)
6. Reports and CSV import/export, demo data
7. Live subscriptions that deliver model lists

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every flow is bound to ONE account's store, built once per sign-in
- Balances and stock change only through the ledger engine
- Ledger history is never edited or deleted
- Every write is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from enum import Enum
from typing import Callable, Optional, TypeVar
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog
from pydantic import ValidationError

from src.audit import AuditLogger, create_correlation_id
from src.config import get_settings
from src.ledger import LedgerEngine
from src.models.audit import AuditEventType
from src.models.ledger import (
    Customer,
    CustomerCreate,
    CustomerUpdate,
    DocumentModel,
    PersonalTransaction,
    PersonalTransactionCreate,
    PersonalTransactionType,
    Product,
    ProductCreate,
    ProductUpdate,
    SaleLineRequest,
    StoreSettings,
    StoreSettingsUpdate,
    Transaction,
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
from src.reports import aggregator
from src.services.auth import AuthError, AuthSession, FirebaseAuthService
from src.services.csv import codec
from src.services.documents import PdfRenderer
from src.services.image import CloudinaryLogoService
from src.services.storage import (
    Collection,
    DocumentAuditStorage,
    DocumentStoreInterface,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    StoredDocument,
    WriteBatch,
)
from src.validation import LedgerValidationError, LedgerValidator

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=DocumentModel)

DEMO_CUSTOMERS = [
    CustomerCreate(name="রহিম উল্লাহ", phone="01712345678", upazila="মিরপুর"),
    CustomerCreate(name="করিম শেখ", phone="01887654321", upazila="উত্তরা"),
]
DEMO_PRODUCTS = [
    ProductCreate(name="স্মার্টফোন X", category="ইলেকট্রনিক্স", quantity=15, buying_price=12000),
    ProductCreate(name="হেডফোন প্রো", category="এক্সেসরিজ", quantity=5, buying_price=800),
]
DEMO_STORE = StoreSettingsUpdate(
    name="স্মার্ট ইলেকট্রনিক্স",
    address="ঢাকা, বাংলাদেশ",
    phone="০১xxxxxxxxx",
)

IMPORTED_CUSTOMER_PHONE = "N/A"
IMPORTED_CUSTOMER_AREA = "Imported"


class CustomerArchivedError(Exception):
    """The customer is archived and cannot be changed."""
    pass


class DeleteOutcome(str, Enum):
    """What delete_customer actually did."""
    DELETED = "deleted"    # No history, document removed
    ARCHIVED = "archived"  # Has history, hidden but kept


def _parse_documents(
    model: type[ModelT],
    documents: list[StoredDocument],
) -> list[ModelT]:
    """Build models from documents, skipping any that don't validate."""
    parsed = []
    for document in documents:
        try:
            parsed.append(model.from_document(document.id, document.data))
        except ValidationError as e:
            logger.warning(
                "malformed_document_skipped",
                model=model.__name__,
                document_id=document.id,
                error=str(e),
            )
    return parsed


async def _load(
    store: DocumentStoreInterface,
    collection: Collection,
    model: type[ModelT],
    order_by: str,
    where: Optional[dict] = None,
) -> list[ModelT]:
    documents = await store.list_documents(
        collection,
        where=where,
        order_by=order_by,
        descending=True,
    )
    return _parse_documents(model, documents)


class CustomerFlow:
    """
    Orchestrates customer management.

    Balances are read-only here: total_due moves only through the ledger
    engine, and CustomerUpdate has no field for it.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        ledger: LedgerEngine,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._ledger = ledger
        self._audit_logger = audit_logger

    async def list_customers(self, include_archived: bool = False) -> list[Customer]:
        """Customers, newest first. Archived ones are hidden by default."""
        customers = await _load(self._store, Collection.CUSTOMERS, Customer, "createdAt")
        if include_archived:
            return customers
        return [c for c in customers if not c.archived]

    async def search_customers(self, term: str) -> list[Customer]:
        """Active customers whose name or phone contains `term`."""
        term = term.strip().lower()
        return [
            c for c in await self.list_customers()
            if term in c.name.lower() or term in c.phone
        ]

    async def get_customer(self, customer_id: str) -> Customer:
        data = await self._store.get_document(Collection.CUSTOMERS, customer_id)
        if data is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        return Customer.from_document(customer_id, data)

    async def add_customer(self, data: CustomerCreate) -> Customer:
        """Add a customer with a zero balance."""
        return await self._ledger.create_customer(data)

    async def update_customer(
        self,
        customer_id: str,
        updates: CustomerUpdate,
    ) -> Customer:
        """Edit name, phone or area."""
        customer = await self.get_customer(customer_id)
        if customer.archived:
            raise CustomerArchivedError(f"Customer {customer.name} is archived")

        changes = updates.model_dump(by_alias=True, exclude_none=True)
        if not changes:
            return customer

        await self._store.update_document(Collection.CUSTOMERS, customer_id, changes)

        if self._audit_logger:
            await self._audit_logger.log_entity_changed(
                event_type=AuditEventType.CUSTOMER_UPDATED,
                entity_type="customer",
                entity_id=customer_id,
                details={"fields": sorted(changes)},
            )
        return customer.model_copy(update=updates.model_dump(exclude_none=True))

    async def delete_customer(self, customer_id: str) -> DeleteOutcome:
        """
        Remove a customer without touching ledger history.

        A customer with no entries is deleted outright. A customer with
        entries is archived: hidden from lists, closed to new entries, and
        their history stays queryable by customer id.
        """
        customer = await self.get_customer(customer_id)
        history = await self._store.list_documents(
            Collection.TRANSACTIONS,
            where={"customerId": customer_id},
        )

        if not history:
            await self._store.delete_document(Collection.CUSTOMERS, customer_id)
            outcome, event_type = DeleteOutcome.DELETED, AuditEventType.CUSTOMER_DELETED
        else:
            if not customer.archived:
                await self._store.update_document(
                    Collection.CUSTOMERS,
                    customer_id,
                    {"archived": True, "archivedAt": utc_now()},
                )
            outcome, event_type = DeleteOutcome.ARCHIVED, AuditEventType.CUSTOMER_ARCHIVED

        if self._audit_logger:
            await self._audit_logger.log_entity_changed(
                event_type=event_type,
                entity_type="customer",
                entity_id=customer_id,
                details={"transaction_count": len(history)},
            )
        return outcome

    async def history(self, customer_id: str) -> list[Transaction]:
        """The customer's entries, newest first."""
        return await self._ledger.customer_transactions(customer_id)

    async def record_payment(self, customer_id: str, amount) -> Transaction:
        return await self._ledger.record_payment(customer_id, amount)

    async def check_balance(self, customer_id: str) -> BalanceCheck:
        return await self._ledger.check_balance(customer_id)

    async def repair_balance(self, customer_id: str) -> BalanceCheck:
        return await self._ledger.repair_balance(customer_id)


class InventoryFlow:
    """
    Orchestrates product management.

    Quantity is set on creation, then changed only by sales (through the
    ledger engine) or by adjust_stock.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        validator: LedgerValidator,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._validator = validator
        self._audit_logger = audit_logger

    async def list_products(self) -> list[Product]:
        return await _load(self._store, Collection.PRODUCTS, Product, "createdAt")

    async def search_products(self, term: str) -> list[Product]:
        """Products whose name or category contains `term`."""
        term = term.strip().lower()
        return [
            p for p in await self.list_products()
            if term in p.name.lower() or term in p.category.lower()
        ]

    async def get_product(self, product_id: str) -> Product:
        data = await self._store.get_document(Collection.PRODUCTS, product_id)
        if data is None:
            raise NotFoundError(f"Product {product_id} not found")
        return Product.from_document(product_id, data)

    async def add_product(self, data: ProductCreate) -> Product:
        product = Product(**data.model_dump())
        product_id = await self._store.add_document(Collection.PRODUCTS, product.to_document())
        product = product.model_copy(update={"id": product_id})

        if self._audit_logger:
            await self._audit_logger.log_entity_changed(
                event_type=AuditEventType.PRODUCT_CREATED,
                entity_type="product",
                entity_id=product_id,
                details={"quantity": product.quantity},
            )
        return product

    async def update_product(self, product_id: str, updates: ProductUpdate) -> Product:
        """Edit name, category or buying price. Past sales keep their snapshot."""
        product = await self.get_product(product_id)
        changes = updates.model_dump(by_alias=True, exclude_none=True)
        if not changes:
            return product

        await self._store.update_document(Collection.PRODUCTS, product_id, changes)

        if self._audit_logger:
            await self._audit_logger.log_entity_changed(
                event_type=AuditEventType.PRODUCT_UPDATED,
                entity_type="product",
                entity_id=product_id,
                details={"fields": sorted(changes)},
            )
        return product.model_copy(update=updates.model_dump(exclude_none=True))

    async def adjust_stock(self, product_id: str, delta: int) -> Product:
        """
        Restock (positive delta) or write off (negative delta).

        Raises:
            LedgerValidationError: If the product is missing or the result
                would be negative
        """
        data = await self._store.get_document(Collection.PRODUCTS, product_id)
        product = Product.from_document(product_id, data) if data is not None else None

        result = self._validator.validate_stock_adjustment(product_id, product, delta)
        if not result.is_valid:
            raise LedgerValidationError(result)
        if delta == 0:
            return product

        await self._store.commit(
            WriteBatch().increment(Collection.PRODUCTS, product_id, "quantity", delta)
        )

        if self._audit_logger:
            await self._audit_logger.log_entity_changed(
                event_type=AuditEventType.STOCK_ADJUSTED,
                entity_type="product",
                entity_id=product_id,
                details={"delta": delta, "previous_quantity": product.quantity},
            )
        return product.model_copy(update={"quantity": product.quantity + delta})

    async def delete_product(self, product_id: str) -> bool:
        """Delete a product. Sale lines keep the product name they snapshotted."""
        deleted = await self._store.delete_document(Collection.PRODUCTS, product_id)
        if deleted and self._audit_logger:
            await self._audit_logger.log_entity_changed(
                event_type=AuditEventType.PRODUCT_DELETED,
                entity_type="product",
                entity_id=product_id,
            )
        return deleted


class SettingsFlow:
    """Store branding: one merged settings document per account."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        logo_service: Optional[CloudinaryLogoService] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._logo_service = logo_service
        self._audit_logger = audit_logger

    async def get_settings(self) -> StoreSettings:
        """Stored settings, with defaults for anything never set."""
        return StoreSettings.model_validate(await self._store.get_settings() or {})

    async def update_settings(self, updates: StoreSettingsUpdate) -> StoreSettings:
        """Merge the given fields into the stored settings. Last write wins."""
        changes = updates.model_dump(by_alias=True, exclude_none=True)
        if changes:
            await self._store.set_settings(changes, merge=True)
            if self._audit_logger:
                await self._audit_logger.log_entity_changed(
                    event_type=AuditEventType.SETTINGS_UPDATED,
                    entity_type="settings",
                    entity_id=self._store.account_id,
                    details={"fields": sorted(changes)},
                )
        return await self.get_settings()

    async def upload_logo(self, image_bytes: bytes, filename: str) -> StoreSettings:
        """
        Upload a logo and point the settings at it.

        Raises:
            InvalidLogoError: If the file is not an acceptable image
            LogoUploadError: If the upload fails (settings are unchanged)
        """
        if self._logo_service is None:
            self._logo_service = CloudinaryLogoService()

        try:
            url = await self._logo_service.upload_logo(
                self._store.account_id,
                image_bytes,
                filename,
            )
        except Exception as e:
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="cloudinary",
                    error_message=str(e),
                )
            raise

        await self._store.set_settings({"logo": url}, merge=True)

        if self._audit_logger:
            await self._audit_logger.log_entity_changed(
                event_type=AuditEventType.LOGO_UPLOADED,
                entity_type="settings",
                entity_id=self._store.account_id,
                details={"url": url},
            )
        return await self.get_settings()


class SalesFlow:
    """
    Orchestrates the point of sale.

    Flow:
    1. Validate → customer, products, stock policy (nothing written on failure)
    2. Commit → transaction + balance + stock in one atomic batch
    3. Document → invoice or receipt rendered from the stored entry
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        ledger: LedgerEngine,
        settings_flow: SettingsFlow,
    ):
        self._store = store
        self._ledger = ledger
        self._settings_flow = settings_flow

    async def record_transaction(
        self,
        customer_id: str,
        line_items: list[SaleLineRequest],
        paid_amount,
    ) -> tuple[Transaction, ValidationResult, str]:
        """
        Record a sale, or a payment when line_items is empty.

        Returns:
            Tuple of (transaction, validation result, user-facing summary).
            A clamped oversell still saves the sale; its warning is in the
            result and the summary.
        """
        transaction, result = await self._ledger.record_transaction(
            customer_id,
            line_items,
            to_money(paid_amount),
        )
        summary = self._ledger.validator.get_user_friendly_summary(result)
        return transaction, result, summary

    async def record_payment(self, customer_id: str, amount) -> Transaction:
        return await self._ledger.record_payment(customer_id, amount)

    async def get_transaction(self, transaction_id: str) -> Transaction:
        data = await self._store.get_document(Collection.TRANSACTIONS, transaction_id)
        if data is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return Transaction.from_document(transaction_id, data)

    async def list_transactions(self) -> list[Transaction]:
        """The whole ledger, newest first."""
        return await _load(self._store, Collection.TRANSACTIONS, Transaction, "date")

    async def previous_due(self, transaction: Transaction):
        """
        The customer's due just before `transaction` was recorded.

        Derived from history: the sum of every earlier entry's due delta.
        """
        history = await self._ledger.customer_transactions(transaction.customer_id)
        history.reverse()
        total = to_money(0)
        for entry in history:
            if entry.id == transaction.id:
                break
            total += entry.due_amount
        return total

    async def _renderer(self, logo: Optional[bytes]) -> PdfRenderer:
        return PdfRenderer(await self._settings_flow.get_settings(), logo=logo)

    async def render_invoice(
        self,
        transaction_id: str,
        logo: Optional[bytes] = None,
    ) -> bytes:
        """Invoice PDF for a sale, with previous and net due."""
        transaction = await self.get_transaction(transaction_id)
        renderer = await self._renderer(logo)
        return renderer.render_invoice(transaction, await self.previous_due(transaction))

    async def render_receipt(
        self,
        transaction_id: str,
        logo: Optional[bytes] = None,
    ) -> bytes:
        """Receipt PDF for a payment."""
        transaction = await self.get_transaction(transaction_id)
        renderer = await self._renderer(logo)
        return renderer.render_receipt(transaction, await self.previous_due(transaction))

    async def render_statement(
        self,
        customer_id: str,
        logo: Optional[bytes] = None,
    ) -> bytes:
        """Statement PDF of a customer's full history."""
        data = await self._store.get_document(Collection.CUSTOMERS, customer_id)
        if data is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        customer = Customer.from_document(customer_id, data)
        history = await self._ledger.customer_transactions(customer_id)
        renderer = await self._renderer(logo)
        return renderer.render_statement(customer, history)


class PersonalFlow:
    """Personal income and expense entries. Independent of the shop ledger."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger

    async def add_entry(self, data: PersonalTransactionCreate) -> PersonalTransaction:
        entry = PersonalTransaction(**data.model_dump())
        entry_id = await self._store.add_document(
            Collection.PERSONAL_TRANSACTIONS,
            entry.to_document(),
        )

        if self._audit_logger:
            await self._audit_logger.log_entity_changed(
                event_type=AuditEventType.PERSONAL_ENTRY_ADDED,
                entity_type="personal_transaction",
                entity_id=entry_id,
                details={"type": entry.type.value, "amount": str(entry.amount)},
            )
        return entry.model_copy(update={"id": entry_id})

    async def delete_entry(self, entry_id: str) -> bool:
        deleted = await self._store.delete_document(Collection.PERSONAL_TRANSACTIONS, entry_id)
        if deleted and self._audit_logger:
            await self._audit_logger.log_entity_changed(
                event_type=AuditEventType.PERSONAL_ENTRY_DELETED,
                entity_type="personal_transaction",
                entity_id=entry_id,
            )
        return deleted

    async def list_entries(
        self,
        entry_type: Optional[PersonalTransactionType] = None,
    ) -> list[PersonalTransaction]:
        """All entries or one type, newest first."""
        entries = await _load(
            self._store,
            Collection.PERSONAL_TRANSACTIONS,
            PersonalTransaction,
            "date",
        )
        return aggregator.filter_personal(entries, entry_type)

    async def summary(self) -> PersonalSummary:
        return aggregator.personal_summary(await self.list_entries())


class ReportsFlow:
    """Reports over the current account's documents."""

    def __init__(self, store: DocumentStoreInterface):
        self._store = store
        app = get_settings().app
        self._tz = ZoneInfo(app.report_timezone)
        self._low_stock_threshold = app.low_stock_threshold
        self._stock_status_threshold = app.stock_status_threshold

    async def _transactions(self) -> list[Transaction]:
        return await _load(self._store, Collection.TRANSACTIONS, Transaction, "date")

    async def _products(self) -> list[Product]:
        return await _load(self._store, Collection.PRODUCTS, Product, "createdAt")

    async def dashboard(self) -> DashboardSummary:
        customers = await _load(self._store, Collection.CUSTOMERS, Customer, "createdAt")
        return aggregator.dashboard_summary(
            customers,
            await self._products(),
            await self._transactions(),
            low_stock_threshold=self._low_stock_threshold,
            tz=self._tz,
        )

    async def monthly(self) -> list[MonthlySummary]:
        return aggregator.monthly_summaries(await self._transactions(), self._tz)

    async def ledger_summary(self) -> LedgerSummary:
        return aggregator.ledger_summary(await self._transactions())

    async def daily_sales(self, days: int = 7) -> list[DailySales]:
        return aggregator.daily_sales(await self._transactions(), days=days, tz=self._tz)

    async def product_stats(self) -> dict[str, ProductSalesStats]:
        return aggregator.product_sales_stats(await self._transactions())

    async def stock_status(self) -> StockStatusBreakdown:
        return aggregator.stock_status(await self._products(), self._stock_status_threshold)


class DataFlow:
    """
    CSV import/export and demo data.

    Imports go row by row through the same paths as manual entry, so
    every imported balance is backed by a ledger entry.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        ledger: LedgerEngine,
        customers: CustomerFlow,
        inventory: InventoryFlow,
        settings_flow: SettingsFlow,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._ledger = ledger
        self._customers = customers
        self._inventory = inventory
        self._settings_flow = settings_flow
        self._audit_logger = audit_logger

    async def _export_done(self, kind: str, count: int) -> None:
        if self._audit_logger:
            await self._audit_logger.log_entity_changed(
                event_type=AuditEventType.EXPORT_COMPLETED,
                entity_type="export",
                entity_id=kind,
                details={"rows": count},
            )

    async def _import_done(self, kind: str, result: ImportResult, correlation_id: UUID) -> None:
        logger.info(
            "import_completed",
            account_id=self._store.account_id,
            kind=kind,
            imported=result.imported,
            skipped=result.skipped,
        )
        if self._audit_logger:
            await self._audit_logger.log_import_completed(
                kind=kind,
                imported=result.imported,
                skipped=result.skipped,
                correlation_id=correlation_id,
            )

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    async def export_customers(self) -> bytes:
        customers = await self._customers.list_customers()
        await self._export_done("customers", len(customers))
        return codec.export_customers(customers)

    async def export_products(self) -> bytes:
        products = await self._inventory.list_products()
        await self._export_done("products", len(products))
        return codec.export_products(products)

    async def export_transactions(self) -> bytes:
        transactions = await _load(self._store, Collection.TRANSACTIONS, Transaction, "date")
        await self._export_done("transactions", len(transactions))
        return codec.export_transactions(transactions)

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    async def import_customers(self, data: bytes) -> ImportResult:
        """
        Add every customer in the file.

        A non-zero due column becomes an opening_balance entry written
        together with the customer.
        """
        correlation_id = create_correlation_id()
        rows, skipped = codec.parse_customers(data)
        result = ImportResult(skipped=skipped)

        for row in rows:
            try:
                create = CustomerCreate(name=row.name, phone=row.phone, upazila=row.upazila)
            except ValidationError:
                result.skipped += 1
                continue
            await self._ledger.create_customer(create, row.due, correlation_id)
            result.imported += 1

        await self._import_done("customers", result, correlation_id)
        return result

    async def import_products(self, data: bytes) -> ImportResult:
        correlation_id = create_correlation_id()
        rows, skipped = codec.parse_products(data)
        result = ImportResult(skipped=skipped)

        for row in rows:
            await self._inventory.add_product(row)
            result.imported += 1

        await self._import_done("products", result, correlation_id)
        return result

    async def import_transactions(self, data: bytes) -> ImportResult:
        """
        Add every row of a sales report as an imported entry.

        Customers are matched by exact name among active customers; an
        unknown name creates a customer with placeholder contact details,
        written in the same batch as its first entry.
        Imported entries never touch stock.
        """
        correlation_id = create_correlation_id()
        rows, skipped = codec.parse_transactions(data)
        result = ImportResult(skipped=skipped)

        by_name = {}
        for customer in reversed(await self._customers.list_customers()):
            by_name.setdefault(customer.name, customer.id)

        for row in rows:
            amounts = {
                "date": row.date,
                "total_amount": row.total_amount,
                "paid_amount": row.paid_amount,
                "due_amount": row.due_amount,
                "profit": row.profit,
                "correlation_id": correlation_id,
            }
            customer_id = by_name.get(row.customer_name)
            try:
                if customer_id is None:
                    create = CustomerCreate(
                        name=row.customer_name,
                        phone=IMPORTED_CUSTOMER_PHONE,
                        upazila=IMPORTED_CUSTOMER_AREA,
                    )
                    customer, _ = await self._ledger.record_imported_for_new_customer(create, **amounts)
                    by_name[row.customer_name] = customer.id
                else:
                    await self._ledger.record_imported(customer_id, **amounts)
            except (LedgerValidationError, ValidationError):
                result.skipped += 1
                continue
            result.imported += 1

        await self._import_done("transactions", result, correlation_id)
        return result

    # -------------------------------------------------------------------------
    # Demo data
    # -------------------------------------------------------------------------

    async def load_demo_data(self) -> None:
        """Two customers and two products in one batch, plus store details."""
        batch = WriteBatch()
        for data in DEMO_CUSTOMERS:
            customer = Customer(**data.model_dump())
            batch.set(
                Collection.CUSTOMERS,
                self._store.new_document_id(Collection.CUSTOMERS),
                customer.to_document(),
            )
        for data in DEMO_PRODUCTS:
            product = Product(**data.model_dump())
            batch.set(
                Collection.PRODUCTS,
                self._store.new_document_id(Collection.PRODUCTS),
                product.to_document(),
            )
        await self._store.commit(batch)
        await self._settings_flow.update_settings(DEMO_STORE)

        if self._audit_logger:
            await self._audit_logger.log_entity_changed(
                event_type=AuditEventType.DEMO_DATA_LOADED,
                entity_type="account",
                entity_id=self._store.account_id,
                details={
                    "customers": len(DEMO_CUSTOMERS),
                    "products": len(DEMO_PRODUCTS),
                },
            )


class AccountSession:
    """
    Every flow for one signed-in account, sharing one store.

    Build it with create_account_session() after sign-in and drop it on
    sign-out; nothing outside it holds account state.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        auth_session: Optional[AuthSession] = None,
        validator: Optional[LedgerValidator] = None,
        logo_service: Optional[CloudinaryLogoService] = None,
    ):
        self.store = store
        self.auth_session = auth_session
        self.audit_logger = audit_logger

        validator = validator or LedgerValidator()
        self.ledger = LedgerEngine(store, validator, audit_logger)
        self.customers = CustomerFlow(store, self.ledger, audit_logger)
        self.inventory = InventoryFlow(store, validator, audit_logger)
        self.settings = SettingsFlow(store, logo_service, audit_logger)
        self.sales = SalesFlow(store, self.ledger, self.settings)
        self.personal = PersonalFlow(store, audit_logger)
        self.reports = ReportsFlow(store)
        self.data = DataFlow(
            store,
            self.ledger,
            self.customers,
            self.inventory,
            self.settings,
            audit_logger,
        )

    @property
    def account_id(self) -> str:
        return self.store.account_id

    # -------------------------------------------------------------------------
    # Live subscriptions
    # -------------------------------------------------------------------------

    def _subscribe(
        self,
        collection: Collection,
        model: type[ModelT],
        order_by: str,
        callback: Callable[[list[ModelT]], None],
    ) -> Callable[[], None]:
        return self.store.subscribe(
            collection,
            lambda documents: callback(_parse_documents(model, documents)),
            order_by=order_by,
            descending=True,
        )

    def subscribe_customers(self, callback: Callable[[list[Customer]], None]) -> Callable[[], None]:
        return self._subscribe(Collection.CUSTOMERS, Customer, "createdAt", callback)

    def subscribe_products(self, callback: Callable[[list[Product]], None]) -> Callable[[], None]:
        return self._subscribe(Collection.PRODUCTS, Product, "createdAt", callback)

    def subscribe_transactions(
        self,
        callback: Callable[[list[Transaction]], None],
    ) -> Callable[[], None]:
        return self._subscribe(Collection.TRANSACTIONS, Transaction, "date", callback)

    def subscribe_personal(
        self,
        callback: Callable[[list[PersonalTransaction]], None],
    ) -> Callable[[], None]:
        return self._subscribe(
            Collection.PERSONAL_TRANSACTIONS,
            PersonalTransaction,
            "date",
            callback,
        )

    def subscribe_settings(self, callback: Callable[[StoreSettings], None]) -> Callable[[], None]:
        return self.store.subscribe_settings(
            lambda data: callback(StoreSettings.model_validate(data or {}))
        )


def create_account_session(
    auth_session: Optional[AuthSession] = None,
    use_storage: bool = True,
    store: Optional[DocumentStoreInterface] = None,
) -> AccountSession:
    """
    Factory function to create all components for one account.

    Args:
        auth_session: The signed-in account. Its uid scopes every path.
        use_storage: Whether to connect to Firestore.
                    Set to False for offline runs and tests.
        store: Use this store instead of building one.

    Returns:
        AccountSession with every flow bound to the account's store
    """
    account_id = auth_session.uid if auth_session else "local"

    if store is None:
        if use_storage:
            try:
                firestore_store = FirestoreDocumentStore(account_id)
                firestore_store.new_document_id(Collection.CUSTOMERS)  # Forces connect
                store = firestore_store
            except Exception as e:
                # Storage not configured - continue in memory
                logger.warning("storage_not_configured", error=str(e))
                store = InMemoryDocumentStore(account_id)
        else:
            store = InMemoryDocumentStore(account_id)

    audit_logger = AuditLogger(DocumentAuditStorage(store))
    return AccountSession(store, audit_logger=audit_logger, auth_session=auth_session)


async def sign_in(
    email: str,
    password: str,
    create_account: bool = False,
    auth_service: Optional[FirebaseAuthService] = None,
    use_storage: bool = True,
) -> AccountSession:
    """
    Sign in (or sign up) and build the account's session.

    A service passed in stays open for the caller; one created here is
    closed before returning.

    Raises:
        AuthError: With a typed code and a user-facing message
    """
    owns_service = auth_service is None
    auth_service = auth_service or FirebaseAuthService()
    try:
        if create_account:
            auth_session = await auth_service.sign_up(email, password)
        else:
            auth_session = await auth_service.sign_in(email, password)
    except AuthError as e:
        await AuditLogger().log_sign_in_failed(email, e.code.value)
        raise
    finally:
        if owns_service:
            await auth_service.close()

    session = create_account_session(auth_session, use_storage=use_storage)
    await session.audit_logger.log_entity_changed(
        event_type=(
            AuditEventType.SIGN_UP_SUCCEEDED if create_account
            else AuditEventType.SIGN_IN_SUCCEEDED
        ),
        entity_type="account",
        entity_id=auth_session.uid,
    )
    return session
