"""
Integration tests for the account flows, against the in-memory store.
"""

from decimal import Decimal

import httpx
import pytest
from pydantic import ValidationError

from src.config import FirebaseAuthSettings
from src.models.ledger import (
    CustomerCreate,
    CustomerUpdate,
    PersonalTransactionCreate,
    PersonalTransactionType,
    ProductCreate,
    ProductUpdate,
    SaleLineRequest,
    StoreSettingsUpdate,
    TransactionKind,
)
from src.orchestrator import (
    AccountSession,
    CustomerArchivedError,
    DeleteOutcome,
    create_account_session,
    sign_in,
)
from src.services.auth import AuthError, AuthErrorCode, AuthSession, FirebaseAuthService
from src.services.csv import codec
from src.services.image import LogoUploadError
from src.services.storage import (
    Collection,
    CommitError,
    DocumentAuditStorage,
    InMemoryDocumentStore,
    NotFoundError,
)
from src.validation import LedgerValidationError


async def new_customer(session, name="Rahim", phone="01712345678"):
    return await session.customers.add_customer(
        CustomerCreate(name=name, phone=phone, upazila="Mirpur")
    )


async def new_product(session, name="Smartphone X", quantity=10, buying_price="60"):
    return await session.inventory.add_product(
        ProductCreate(name=name, category="Phones", quantity=quantity, buying_price=Decimal(buying_price))
    )


def line(product_id, quantity=1, price="100"):
    return SaleLineRequest(product_id=product_id, quantity=quantity, unit_selling_price=Decimal(price))


class TestCustomerFlow:

    @pytest.mark.asyncio
    async def test_add_list_and_search(self, session):
        await new_customer(session, "Rahim", "01712345678")
        await new_customer(session, "Karim", "01887654321")

        customers = await session.customers.list_customers()
        assert {c.name for c in customers} == {"Rahim", "Karim"}
        assert all(c.total_due == 0 for c in customers)

        found = await session.customers.search_customers("0188")
        assert [c.name for c in found] == ["Karim"]
        assert [c.name for c in await session.customers.search_customers("rah")] == ["Rahim"]

    @pytest.mark.asyncio
    async def test_update_changes_profile_only(self, session, store):
        customer = await new_customer(session)

        updated = await session.customers.update_customer(
            customer.id,
            CustomerUpdate(name="Rahim Ullah"),
        )

        assert updated.name == "Rahim Ullah"
        stored = await store.get_document(Collection.CUSTOMERS, customer.id)
        assert stored["name"] == "Rahim Ullah"
        assert stored["phone"] == "01712345678"

    def test_update_model_rejects_balance(self):
        with pytest.raises(ValidationError):
            CustomerUpdate.model_validate({"name": "X", "totalDue": 0})

    @pytest.mark.asyncio
    async def test_delete_without_history_removes_customer(self, session, store):
        customer = await new_customer(session)

        outcome = await session.customers.delete_customer(customer.id)

        assert outcome == DeleteOutcome.DELETED
        assert await store.get_document(Collection.CUSTOMERS, customer.id) is None

    @pytest.mark.asyncio
    async def test_delete_with_history_archives_and_keeps_ledger(self, session, store):
        customer = await new_customer(session)
        product = await new_product(session)
        await session.sales.record_transaction(customer.id, [line(product.id)], Decimal("40"))

        outcome = await session.customers.delete_customer(customer.id)

        assert outcome == DeleteOutcome.ARCHIVED
        assert await session.customers.list_customers() == []
        archived = await session.customers.list_customers(include_archived=True)
        assert archived[0].archived
        assert archived[0].archived_at is not None
        assert archived[0].total_due == Decimal("60")

        history = await session.customers.history(customer.id)
        assert len(history) == 1

        with pytest.raises(LedgerValidationError):
            await session.customers.record_payment(customer.id, Decimal("10"))
        with pytest.raises(CustomerArchivedError):
            await session.customers.update_customer(customer.id, CustomerUpdate(name="New"))

    @pytest.mark.asyncio
    async def test_delete_is_audited(self, session, store):
        customer = await new_customer(session)
        await session.customers.delete_customer(customer.id)

        events = await DocumentAuditStorage(store).get_events_by_entity("customer", customer.id)

        assert [e.event_type.value for e in events] == ["customer_created", "customer_deleted"]

    @pytest.mark.asyncio
    async def test_get_unknown_customer(self, session):
        with pytest.raises(NotFoundError):
            await session.customers.get_customer("nobody")


class TestInventoryFlow:

    @pytest.mark.asyncio
    async def test_add_update_and_search(self, session):
        product = await new_product(session, "হেডফোন প্রো", quantity=5, buying_price="800")

        updated = await session.inventory.update_product(
            product.id,
            ProductUpdate(buying_price=Decimal("850")),
        )

        assert updated.buying_price == Decimal("850")
        assert updated.quantity == 5
        assert [p.id for p in await session.inventory.search_products("phones")] == [product.id]

    @pytest.mark.asyncio
    async def test_adjust_stock(self, session, store):
        product = await new_product(session, quantity=5)

        restocked = await session.inventory.adjust_stock(product.id, 10)
        assert restocked.quantity == 15

        with pytest.raises(LedgerValidationError):
            await session.inventory.adjust_stock(product.id, -20)

        stored = await store.get_document(Collection.PRODUCTS, product.id)
        assert stored["quantity"] == 15

    @pytest.mark.asyncio
    async def test_delete_product_keeps_sale_snapshot(self, session):
        customer = await new_customer(session)
        product = await new_product(session)
        sale, _, _ = await session.sales.record_transaction(customer.id, [line(product.id)], Decimal("0"))

        assert await session.inventory.delete_product(product.id)
        assert await session.inventory.delete_product(product.id) is False

        stored = await session.sales.get_transaction(sale.id)
        assert stored.items[0].product_name == "Smartphone X"


class TestSalesFlow:

    @pytest.mark.asyncio
    async def test_sale_then_payment(self, session):
        customer = await new_customer(session)
        product = await new_product(session, quantity=10, buying_price="60")

        sale, _, _ = await session.sales.record_transaction(customer.id, [line(product.id, 2, "100")], 150)
        payment, _, _ = await session.sales.record_transaction(customer.id, [], 50)

        assert sale.due_amount == Decimal("50")
        assert payment.kind == TransactionKind.PAYMENT
        assert (await session.customers.get_customer(customer.id)).total_due == Decimal("0")
        assert (await session.inventory.get_product(product.id)).quantity == 8
        assert (await session.customers.check_balance(customer.id)).is_consistent

    @pytest.mark.asyncio
    async def test_clamped_sale_returns_warning(self, session):
        customer = await new_customer(session)
        product = await new_product(session, quantity=1)

        sale, result, summary = await session.sales.record_transaction(
            customer.id, [line(product.id, 3, "100")], 0
        )

        assert sale.total_amount == Decimal("300")
        assert (await session.inventory.get_product(product.id)).quantity == 0
        assert result.warnings == ["Smartphone X: 3 requested, 1 in stock"]
        assert summary.startswith("Please note:")
        assert "Smartphone X: 3 requested, 1 in stock" in summary

    @pytest.mark.asyncio
    async def test_clean_sale_summary(self, session):
        customer = await new_customer(session)
        product = await new_product(session)

        _, result, summary = await session.sales.record_transaction(customer.id, [line(product.id)], 100)

        assert result.warnings == []
        assert summary == "All checks passed."

    @pytest.mark.asyncio
    async def test_previous_due(self, session):
        customer = await session.ledger.create_customer(
            CustomerCreate(name="Rahim", phone="017"),
            Decimal("100"),
        )
        product = await new_product(session)

        sale, _, _ = await session.sales.record_transaction(customer.id, [line(product.id, 1, "200")], 0)

        assert await session.sales.previous_due(sale) == Decimal("100")

    @pytest.mark.asyncio
    async def test_documents_render(self, session):
        customer = await new_customer(session)
        product = await new_product(session)
        sale, _, _ = await session.sales.record_transaction(customer.id, [line(product.id)], 20)
        payment = await session.sales.record_payment(customer.id, Decimal("30"))

        assert (await session.sales.render_invoice(sale.id)).startswith(b"%PDF")
        assert (await session.sales.render_receipt(payment.id)).startswith(b"%PDF")
        assert (await session.sales.render_statement(customer.id)).startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, session):
        with pytest.raises(NotFoundError):
            await session.sales.render_invoice("missing")


class TestPersonalFlow:

    @pytest.mark.asyncio
    async def test_entries_and_summary(self, session):
        income = await session.personal.add_entry(PersonalTransactionCreate(
            type=PersonalTransactionType.INCOME, amount=Decimal("1000"), category="Salary",
        ))
        await session.personal.add_entry(PersonalTransactionCreate(
            type=PersonalTransactionType.EXPENSE, amount=Decimal("300"), category="Rent", note="March",
        ))

        summary = await session.personal.summary()
        assert summary.balance == Decimal("700")
        expenses = await session.personal.list_entries(PersonalTransactionType.EXPENSE)
        assert [e.note for e in expenses] == ["March"]

        assert await session.personal.delete_entry(income.id)
        assert (await session.personal.summary()).income == Decimal("0")


class FakeLogoService:

    def __init__(self, url=None, error=None):
        self.url = url
        self.error = error

    async def upload_logo(self, account_id, image_bytes, filename):
        if self.error:
            raise self.error
        return self.url


class TestSettingsFlow:

    @pytest.mark.asyncio
    async def test_defaults_then_merge(self, session):
        defaults = await session.settings.get_settings()
        assert defaults.name == "Amar Hisab"

        await session.settings.update_settings(StoreSettingsUpdate(name="Smart Electronics"))
        merged = await session.settings.update_settings(StoreSettingsUpdate(phone="017"))

        assert merged.name == "Smart Electronics"
        assert merged.phone == "017"

    @pytest.mark.asyncio
    async def test_logo_upload_sets_url(self, store):
        session = AccountSession(
            store,
            logo_service=FakeLogoService(url="https://res.cloudinary.com/demo/logo.png"),
        )

        settings = await session.settings.upload_logo(b"png", "logo.png")

        assert settings.logo == "https://res.cloudinary.com/demo/logo.png"

    @pytest.mark.asyncio
    async def test_failed_upload_leaves_settings(self, store):
        session = AccountSession(
            store,
            logo_service=FakeLogoService(error=LogoUploadError("timeout")),
        )

        with pytest.raises(LogoUploadError):
            await session.settings.upload_logo(b"png", "logo.png")

        assert (await session.settings.get_settings()).logo == ""


class TestReportsFlow:

    @pytest.mark.asyncio
    async def test_dashboard(self, session):
        customer = await new_customer(session)
        product = await new_product(session, quantity=3)
        await session.sales.record_transaction(customer.id, [line(product.id, 1, "100")], 40)

        dashboard = await session.reports.dashboard()

        assert dashboard.customer_count == 1
        assert dashboard.total_sales == Decimal("100")
        assert dashboard.total_due == Decimal("60")
        assert [p.name for p in dashboard.low_stock] == ["Smartphone X"]
        assert dashboard.last_days[-1].sales == Decimal("100")

        summary = await session.reports.ledger_summary()
        assert summary.total_due == dashboard.total_due
        assert len(await session.reports.monthly()) == 1
        assert (await session.reports.product_stats())[product.id].total_sold_qty == 1
        assert (await session.reports.stock_status()).low_stock == 1


class TestDataFlow:

    @pytest.mark.asyncio
    async def test_import_customers_with_due(self, session):
        data = codec.export_customers([]) + "\"Rahim\",\"017\",\"Mirpur\",500\n\"\",\"018\"\n".encode()

        result = await session.data.import_customers(data)

        assert result.imported == 1
        assert result.skipped == 1
        customer = (await session.customers.list_customers())[0]
        assert customer.total_due == Decimal("500")
        history = await session.customers.history(customer.id)
        assert [t.kind for t in history] == [TransactionKind.OPENING_BALANCE]
        assert (await session.customers.check_balance(customer.id)).is_consistent

    @pytest.mark.asyncio
    async def test_import_products(self, session):
        data = "name,category,qty,price\nCable,Accessories,20,50\nBroken,,x,1\n"

        result = await session.data.import_products(data.encode())

        assert (result.imported, result.skipped) == (1, 1)
        assert (await session.inventory.list_products())[0].quantity == 20

    @pytest.mark.asyncio
    async def test_import_transactions_creates_unknown_customers(self, session):
        known = await new_customer(session, "Rahim")
        data = (
            "date,customer,total,paid,due,profit\n"
            "2024-03-05,Rahim,1000,600,400,150\n"
            "2024-03-06,Nasir,500,200,300,50\n"
            "2024-03-07,Nasir,100,100,0,10\n"
        )

        result = await session.data.import_transactions(data.encode())

        assert (result.imported, result.skipped) == (3, 0)
        customers = {c.name: c for c in await session.customers.list_customers()}
        assert customers["Rahim"].id == known.id
        assert customers["Rahim"].total_due == Decimal("400")
        assert customers["Nasir"].total_due == Decimal("300")
        assert customers["Nasir"].phone == "N/A"
        assert (await session.customers.check_balance(customers["Nasir"].id)).is_consistent

    @pytest.mark.asyncio
    async def test_failed_import_row_leaves_no_placeholder_customer(self):
        class LedgerWritesFail(InMemoryDocumentStore):
            async def commit(self, batch):
                if any(op.collection == Collection.TRANSACTIONS for op in batch.operations):
                    raise CommitError("Batch rejected")
                await super().commit(batch)

        session = AccountSession(LedgerWritesFail("acct-3"))
        data = "date,customer,total,paid,due,profit\n2024-03-06,Nasir,500,200,300,50\n"

        with pytest.raises(CommitError):
            await session.data.import_transactions(data.encode())

        assert await session.customers.list_customers(include_archived=True) == []

    @pytest.mark.asyncio
    async def test_import_is_audited_under_one_correlation_id(self, session, store):
        await session.data.import_customers(b"h\nA,1,X,10\nB,2,Y,20\n")

        audit = DocumentAuditStorage(store)
        completed = [
            e for e in await audit.get_recent_events()
            if e.event_type.value == "import_completed"
        ]
        assert len(completed) == 1
        related = await audit.get_events_by_correlation_id(completed[0].correlation_id)
        assert len(related) == 3

    @pytest.mark.asyncio
    async def test_export_round_trip_counts(self, session):
        await new_customer(session, "Rahim")
        exported = await session.data.export_customers()

        rows, skipped = codec.parse_customers(exported)

        assert [r.name for r in rows] == ["Rahim"]
        assert skipped == 0

    @pytest.mark.asyncio
    async def test_customers_survive_export_and_import(self, session):
        await new_customer(session, "Rahim", "01712345678")
        await session.ledger.create_customer(
            CustomerCreate(name="করিম শেখ", phone="01887654321", upazila="উত্তরা"),
            Decimal("250.50"),
        )
        owing = await new_customer(session, "Salma, Mirpur-10", "01911111111")
        product = await new_product(session)
        await session.sales.record_transaction(owing.id, [line(product.id, 2, "100")], 50)

        exported = await session.data.export_customers()
        fresh = AccountSession(InMemoryDocumentStore("acct-2"))
        result = await fresh.data.import_customers(exported)

        def profiles(customers):
            return {(c.name, c.phone, c.upazila, c.total_due) for c in customers}

        originals = await session.customers.list_customers()
        imported = await fresh.customers.list_customers()
        assert (result.imported, result.skipped) == (3, 0)
        assert profiles(imported) == profiles(originals)
        for customer in imported:
            assert (await fresh.customers.check_balance(customer.id)).is_consistent

    @pytest.mark.asyncio
    async def test_demo_data(self, session):
        await session.data.load_demo_data()

        customers = await session.customers.list_customers()
        products = await session.inventory.list_products()
        settings = await session.settings.get_settings()

        assert {c.name for c in customers} == {"রহিম উল্লাহ", "করিম শেখ"}
        assert {p.name: p.quantity for p in products} == {"স্মার্টফোন X": 15, "হেডফোন প্রো": 5}
        assert settings.name == "স্মার্ট ইলেকট্রনিক্স"
        assert all(c.total_due == 0 for c in customers)


class TestSubscriptions:

    @pytest.mark.asyncio
    async def test_customers_subscription_delivers_models(self, session, store):
        received = []
        unsubscribe = session.subscribe_customers(received.append)
        assert received == [[]]

        await new_customer(session)
        assert [c.name for c in received[-1]] == ["Rahim"]

        # Malformed documents are skipped, not fatal
        await store.add_document(Collection.CUSTOMERS, {"name": ""})
        assert len(received[-1]) == 1

        unsubscribe()
        await new_customer(session, "Karim")
        assert len(received[-1]) == 1

    @pytest.mark.asyncio
    async def test_settings_subscription(self, session):
        received = []
        session.subscribe_settings(received.append)

        await session.settings.update_settings(StoreSettingsUpdate(name="Shop"))

        assert received[0].name == "Amar Hisab"
        assert received[-1].name == "Shop"


class TestSessions:

    def test_offline_session(self):
        session = create_account_session(
            AuthSession(uid="u1", email="a@b.c", id_token="t", refresh_token="r", expires_in=3600),
            use_storage=False,
        )

        assert session.account_id == "u1"
        assert isinstance(session.store, InMemoryDocumentStore)

    def test_sessions_do_not_share_data(self):
        first = create_account_session(use_storage=False)
        second = create_account_session(use_storage=False)

        assert first.store is not second.store

    @pytest.mark.asyncio
    async def test_sign_in_failure_propagates(self):
        class FailingAuth:
            async def sign_in(self, email, password):
                raise AuthError(AuthErrorCode.INVALID_CREDENTIAL)

        with pytest.raises(AuthError) as exc_info:
            await sign_in("a@b.c", "wrong", auth_service=FailingAuth(), use_storage=False)

        assert exc_info.value.code == AuthErrorCode.INVALID_CREDENTIAL

    @pytest.mark.asyncio
    async def test_sign_up_builds_session(self):
        class Auth:
            async def sign_up(self, email, password):
                return AuthSession(uid="new", email=email, id_token="t", refresh_token="r", expires_in=3600)

        session = await sign_in("a@b.c", "secret1", create_account=True, auth_service=Auth(), use_storage=False)

        assert session.account_id == "new"
        events = await DocumentAuditStorage(session.store).get_recent_events()
        assert events[0].event_type.value == "sign_up_succeeded"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, body", [
        (200, {"localId": "uid-1", "idToken": "t"}),
        (400, {"error": {"message": "INVALID_PASSWORD"}}),
    ])
    async def test_sign_in_closes_its_own_client(self, monkeypatch, status, body):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(status, json=body)))
        monkeypatch.setattr(
            "src.orchestrator.FirebaseAuthService",
            lambda: FirebaseAuthService(settings=FirebaseAuthSettings(api_key="k"), client=client),
        )

        try:
            await sign_in("a@b.c", "secret1", use_storage=False)
        except AuthError as e:
            assert e.code == AuthErrorCode.WRONG_PASSWORD

        assert client.is_closed

    @pytest.mark.asyncio
    async def test_sign_in_leaves_callers_service_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"localId": "uid-1", "idToken": "t"})
        ))
        service = FirebaseAuthService(settings=FirebaseAuthSettings(api_key="k"), client=client)

        session = await sign_in("a@b.c", "secret1", auth_service=service, use_storage=False)

        assert session.account_id == "uid-1"
        assert not client.is_closed
        await service.close()
