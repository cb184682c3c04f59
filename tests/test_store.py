"""Tests for the document stores."""

from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions

from cafe_ledger.store import (
    Collection,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    PermissionDeniedError,
    PersistenceError,
)


class TestInMemoryDocumentStore:
    """Tests for the process-local store."""

    def test_subscribe_pushes_current_collection(self, store):
        received = []

        store.subscribe(Collection.MATERIALS, received.append)

        assert len(received) == 1
        assert set(received[0]) == {"1", "2", "60"}

    @pytest.mark.asyncio
    async def test_set_replaces_whole_document(self):
        store = InMemoryDocumentStore()
        await store.set_document(Collection.EXPENSES, "e1", {"id": "e1", "amount": 1, "note": "x"})

        await store.set_document(Collection.EXPENSES, "e1", {"id": "e1", "amount": 2})

        docs = await store.list_documents(Collection.EXPENSES)
        assert docs == {"e1": {"id": "e1", "amount": 2}}

    @pytest.mark.asyncio
    async def test_subscribers_notified_after_write(self):
        store = InMemoryDocumentStore()
        received = []
        unsubscribe = store.subscribe(Collection.SALES, received.append)

        await store.set_document(Collection.SALES, "a", {"id": "a"})
        unsubscribe()
        await store.set_document(Collection.SALES, "b", {"id": "b"})

        assert received == [{}, {"a": {"id": "a"}}]

    @pytest.mark.asyncio
    async def test_snapshots_are_copies(self):
        store = InMemoryDocumentStore()
        doc = {"id": "a", "records": [1]}
        await store.set_document(Collection.SALES, "a", doc)

        doc["records"].append(2)
        listed = await store.list_documents(Collection.SALES)
        listed["a"]["records"].append(3)

        assert (await store.list_documents(Collection.SALES))["a"]["records"] == [1]

    @pytest.mark.asyncio
    async def test_batch_is_all_or_nothing(self):
        store = InMemoryDocumentStore()
        received = []
        store.subscribe(Collection.MATERIALS, received.append)

        with pytest.raises(PersistenceError):
            await store.batch_set(Collection.MATERIALS, [("1", {"id": 1}), ("", {"id": 2})])
        assert await store.list_documents(Collection.MATERIALS) == {}

        await store.batch_set(Collection.MATERIALS, [("1", {"id": 1}), ("2", {"id": 2})])
        assert len(received) == 2
        assert set(received[-1]) == {"1", "2"}

    @pytest.mark.asyncio
    async def test_delete_missing_key_is_noop(self):
        store = InMemoryDocumentStore()

        await store.delete_document(Collection.EXPENSES, "nope")

        assert await store.list_documents(Collection.EXPENSES) == {}

    @pytest.mark.asyncio
    async def test_denied_access(self, store):
        errors = []
        store.deny_access()

        store.subscribe(Collection.MATERIALS, lambda docs: None, errors.append)

        assert isinstance(errors[0], PermissionDeniedError)
        assert errors[0].code == "permission-denied"
        with pytest.raises(PermissionDeniedError):
            await store.set_document(Collection.MATERIALS, "9", {"id": 9})

    def test_failing_subscriber_does_not_break_store(self, store):
        def broken(docs):
            raise RuntimeError("boom")

        store.subscribe(Collection.MATERIALS, broken)  # logged, not raised


class TestFirestoreDocumentStore:
    """Tests for the Firestore-backed store with a mocked client."""

    def _doc(self, key, data):
        doc = MagicMock()
        doc.id = key
        doc.to_dict.return_value = data
        return doc

    @pytest.mark.asyncio
    async def test_set_document(self):
        client = MagicMock()
        store = FirestoreDocumentStore(client=client)

        await store.set_document(Collection.BUSINESS_RESULTS, "2026-01-02", {"date": "2026-01-02"})

        client.collection.assert_called_with("business_results")
        client.collection.return_value.document.assert_called_with("2026-01-02")
        client.collection.return_value.document.return_value.set.assert_called_once_with(
            {"date": "2026-01-02"}
        )

    @pytest.mark.asyncio
    async def test_batch_set_commits_once(self):
        client = MagicMock()
        store = FirestoreDocumentStore(client=client)

        await store.batch_set(Collection.MATERIALS, [("1", {"id": 1}), ("2", {"id": 2})])

        batch = client.batch.return_value
        assert batch.set.call_count == 2
        batch.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_list_documents(self):
        client = MagicMock()
        client.collection.return_value.stream.return_value = [
            self._doc("1", {"id": 1}),
            self._doc("2", {"id": 2}),
        ]
        store = FirestoreDocumentStore(client=client)

        docs = await store.list_documents(Collection.MATERIALS)

        assert docs == {"1": {"id": 1}, "2": {"id": 2}}

    @pytest.mark.asyncio
    async def test_permission_denied_translated(self):
        client = MagicMock()
        ref = client.collection.return_value.document.return_value
        ref.delete.side_effect = google_exceptions.PermissionDenied("Missing or insufficient permissions")
        store = FirestoreDocumentStore(client=client)

        with pytest.raises(PermissionDeniedError):
            await store.delete_document(Collection.EXPENSES, "e1")

    @pytest.mark.asyncio
    async def test_denied_listen_surfaces_on_list(self):
        client = MagicMock()
        client.collection.return_value.stream.side_effect = google_exceptions.PermissionDenied(
            "Missing or insufficient permissions"
        )
        store = FirestoreDocumentStore(client=client)
        errors = []

        store.subscribe(Collection.MATERIALS, lambda docs: None, errors.append)

        assert errors == []
        with pytest.raises(PermissionDeniedError):
            await store.list_documents(Collection.MATERIALS)

    @pytest.mark.asyncio
    async def test_other_errors_wrapped(self):
        client = MagicMock()
        client.batch.return_value.commit.side_effect = google_exceptions.ServiceUnavailable("down")
        store = FirestoreDocumentStore(client=client)

        with pytest.raises(PersistenceError) as exc_info:
            await store.batch_set(Collection.SALES, [("a", {"id": "a"})])

        assert not isinstance(exc_info.value, PermissionDeniedError)

    def test_subscribe_uses_snapshot_listener(self):
        client = MagicMock()
        store = FirestoreDocumentStore(client=client)
        received = []

        unsubscribe = store.subscribe(Collection.STAFF, received.append)
        handler = client.collection.return_value.on_snapshot.call_args.args[0]
        handler([self._doc("Thủy", {"name": "Thủy"})], [], None)

        assert received == [{"Thủy": {"name": "Thủy"}}]
        assert unsubscribe is client.collection.return_value.on_snapshot.return_value.unsubscribe

    def test_subscribe_error_reported(self):
        client = MagicMock()
        client.collection.return_value.on_snapshot.side_effect = google_exceptions.PermissionDenied(
            "denied"
        )
        store = FirestoreDocumentStore(client=client)
        errors = []

        store.subscribe(Collection.STAFF, lambda docs: None, errors.append)

        assert isinstance(errors[0], PermissionDeniedError)

    def test_default_client_from_settings(self):
        with patch("cafe_ledger.store.init_firestore") as init:
            store = FirestoreDocumentStore()

        init.assert_called_once_with(None, None)
        assert store._client is init.return_value
