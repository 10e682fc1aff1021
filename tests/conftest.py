"""
Shared fixtures.

Everything runs against the in-memory store; no test talks to Firestore,
Cloudinary or the identity provider.
"""

from decimal import Decimal

import pytest

from src.audit import AuditLogger
from src.ledger import LedgerEngine
from src.models.ledger import CustomerCreate, Product, StockPolicy
from src.orchestrator import AccountSession
from src.services.storage import (
    Collection,
    CommitError,
    DocumentAuditStorage,
    InMemoryDocumentStore,
)
from src.validation import LedgerValidator


class FlakyStore(InMemoryDocumentStore):
    """In-memory store whose batches can be made to fail on demand."""

    def __init__(self, account_id: str = "acct-1"):
        super().__init__(account_id)
        self.reject_commits = False

    async def commit(self, batch) -> None:
        if self.reject_commits:
            raise CommitError("Batch rejected: store unavailable")
        await super().commit(batch)


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def validator():
    return LedgerValidator(StockPolicy.CLAMP, Decimal("10000000"))


@pytest.fixture
def engine(store, validator):
    return LedgerEngine(store, validator)


@pytest.fixture
def audit_logger(store):
    return AuditLogger(DocumentAuditStorage(store))


@pytest.fixture
def session(store, validator, audit_logger):
    return AccountSession(store, audit_logger=audit_logger, validator=validator)


@pytest.fixture
def add_customer(engine):
    async def _add(name="Rahim", phone="01712345678", upazila="Mirpur", due=Decimal("0")):
        return await engine.create_customer(
            CustomerCreate(name=name, phone=phone, upazila=upazila),
            due,
        )
    return _add


@pytest.fixture
def add_product(store):
    async def _add(name="Smartphone X", quantity=10, buying_price=Decimal("60"), category="Phones"):
        product = Product(
            name=name,
            category=category,
            quantity=quantity,
            buying_price=buying_price,
        )
        product_id = await store.add_document(Collection.PRODUCTS, product.to_document())
        return product.model_copy(update={"id": product_id})
    return _add
