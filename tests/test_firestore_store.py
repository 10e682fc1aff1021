"""
Tests for the Firestore store that don't need a live project.

The client is replaced with MagicMock; only the translation from our
batches and values into Firestore calls is checked.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from src.models.ledger import TransactionKind
from src.services.storage import Collection, CommitError, FirestoreDocumentStore, Increment, WriteBatch
from src.services.storage.firestore import _encode


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def firestore_store(client):
    return FirestoreDocumentStore("uid-1", client=client)


class TestEncode:

    def test_nested_values(self):
        encoded = _encode({
            "kind": TransactionKind.SALE,
            "totalAmount": Decimal("200.50"),
            "items": [{"unitSellingPrice": Decimal("100.25"), "quantity": 2}],
        })

        assert encoded == {
            "kind": "sale",
            "totalAmount": 200.5,
            "items": [{"unitSellingPrice": 100.25, "quantity": 2}],
        }

    def test_increment(self):
        encoded = _encode(Increment(Decimal("-30.00")))

        assert isinstance(encoded, firestore.Increment)


class TestFirestoreStore:

    def test_requires_account(self, client):
        with pytest.raises(ValueError):
            FirestoreDocumentStore("", client=client)

    @pytest.mark.asyncio
    async def test_commit_builds_one_batch(self, firestore_store, client):
        batch = (
            WriteBatch()
            .set(Collection.TRANSACTIONS, "t1", {"dueAmount": Decimal("50")})
            .increment(Collection.CUSTOMERS, "c1", "totalDue", Decimal("50"))
            .delete(Collection.PRODUCTS, "p9")
        )

        await firestore_store.commit(batch)

        firestore_batch = client.connect.return_value.batch.return_value
        firestore_batch.set.assert_called_once()
        assert firestore_batch.set.call_args.args[1] == {"dueAmount": 50.0}
        firestore_batch.update.assert_called_once()
        firestore_batch.delete.assert_called_once()
        firestore_batch.commit.assert_called_once_with()
        client.account_document.assert_called_with("uid-1")

    @pytest.mark.asyncio
    async def test_rejected_batch_raises_commit_error(self, firestore_store, client):
        firestore_batch = client.connect.return_value.batch.return_value
        firestore_batch.commit.side_effect = google_exceptions.Aborted("contention")

        with pytest.raises(CommitError):
            await firestore_store.commit(WriteBatch().delete(Collection.CUSTOMERS, "c1"))
