"""Document store collaborator.

Every component reads and writes whole documents keyed by a natural id:

    business_results/<date>      staff_payroll/<name>
    materials/<id>               inventory_sessions/<date>
    expenses/<id>                sales_details/<id>

Writes replace the entire document (no field-level merge). Subscribers are
pushed the full collection after every committed change; there is no
versioning or locking, so concurrent writers resolve as last write wins.
"""

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

import firebase_admin
import structlog
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions

from cafe_ledger.config import get_settings

logger = structlog.get_logger(__name__)

Document = dict[str, Any]
ChangeCallback = Callable[[dict[str, Document]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class Collection(str, Enum):
    """Collections held by the store."""

    BUSINESS_RESULTS = "business_results"
    STAFF = "staff_payroll"
    MATERIALS = "materials"
    INVENTORY_SESSIONS = "inventory_sessions"
    EXPENSES = "expenses"
    SALES = "sales_details"


class PersistenceError(Exception):
    """Base exception for document store failures."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class PermissionDeniedError(PersistenceError):
    """The store rejected access; the session cannot continue."""

    def __init__(self, message: str = "Missing or insufficient permissions"):
        super().__init__(message, code="permission-denied")


class DocumentStore(Protocol):
    """Operations the back office needs from a document store."""

    def subscribe(
        self,
        collection: Collection,
        on_change: ChangeCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe: ...

    async def set_document(self, collection: Collection, key: str, value: Document) -> None: ...

    async def delete_document(self, collection: Collection, key: str) -> None: ...

    async def batch_set(
        self, collection: Collection, items: list[tuple[str, Document]]
    ) -> None: ...

    async def list_documents(self, collection: Collection) -> dict[str, Document]: ...


def _validate_batch(collection: Collection, items: list[tuple[str, Document]]) -> None:
    for key, value in items:
        if not key:
            raise PersistenceError(f"{collection.value}: document key cannot be empty")
        if not isinstance(value, dict):
            raise PersistenceError(f"{collection.value}/{key}: document must be a mapping")


class InMemoryDocumentStore:
    """Process-local document store with push subscriptions.

    Subscribers receive the current collection once on subscribe and again
    after every committed write. ``deny_access()`` makes every operation fail
    with ``PermissionDeniedError``.
    """

    def __init__(self, initial: dict[Collection, dict[str, Document]] | None = None):
        self._collections: dict[Collection, dict[str, Document]] = defaultdict(dict)
        for collection, docs in (initial or {}).items():
            self._collections[collection] = copy.deepcopy(docs)
        self._subscribers: dict[
            Collection, list[tuple[ChangeCallback, ErrorCallback | None]]
        ] = defaultdict(list)
        self._denied = False
        self._logger = logger.bind(component="memory_store")

    def deny_access(self, denied: bool = True) -> None:
        self._denied = denied

    def _check_access(self) -> None:
        if self._denied:
            raise PermissionDeniedError()

    def subscribe(
        self,
        collection: Collection,
        on_change: ChangeCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        entry = (on_change, on_error)

        if self._denied:
            if on_error:
                on_error(PermissionDeniedError())
            return lambda: None

        self._subscribers[collection].append(entry)
        self._deliver(collection, on_change, self._snapshot(collection))

        def unsubscribe() -> None:
            if entry in self._subscribers[collection]:
                self._subscribers[collection].remove(entry)

        return unsubscribe

    def _snapshot(self, collection: Collection) -> dict[str, Document]:
        return copy.deepcopy(self._collections[collection])

    def _deliver(
        self,
        collection: Collection,
        callback: ChangeCallback,
        snapshot: dict[str, Document],
    ) -> None:
        try:
            callback(snapshot)
        except Exception as e:
            self._logger.error(
                "subscriber_error", collection=collection.value, error=str(e)
            )

    def _notify(self, collection: Collection) -> None:
        for on_change, _ in list(self._subscribers[collection]):
            self._deliver(collection, on_change, self._snapshot(collection))

    async def set_document(self, collection: Collection, key: str, value: Document) -> None:
        self._check_access()
        _validate_batch(collection, [(key, value)])
        self._collections[collection][key] = copy.deepcopy(value)
        self._logger.debug("document_set", collection=collection.value, key=key)
        self._notify(collection)

    async def delete_document(self, collection: Collection, key: str) -> None:
        self._check_access()
        self._collections[collection].pop(key, None)
        self._logger.debug("document_deleted", collection=collection.value, key=key)
        self._notify(collection)

    async def batch_set(
        self, collection: Collection, items: list[tuple[str, Document]]
    ) -> None:
        self._check_access()
        _validate_batch(collection, items)
        docs = self._collections[collection]
        for key, value in items:
            docs[key] = copy.deepcopy(value)
        self._logger.debug("batch_committed", collection=collection.value, count=len(items))
        self._notify(collection)

    async def list_documents(self, collection: Collection) -> dict[str, Document]:
        self._check_access()
        return self._snapshot(collection)


def init_firestore(credentials_path: Path | None = None, project_id: str | None = None) -> Any:
    """Return a Firestore client, initialising the default firebase app once.

    Uses a service-account file when given, otherwise application default
    credentials.
    """
    if firebase_admin._apps:
        return firestore.client()

    options = {"projectId": project_id} if project_id else None
    if credentials_path:
        cred = credentials.Certificate(str(credentials_path))
        firebase_admin.initialize_app(cred, options)
    else:
        firebase_admin.initialize_app(options=options)
    return firestore.client()


def _translate_error(exc: Exception) -> PersistenceError:
    if isinstance(exc, google_exceptions.PermissionDenied):
        return PermissionDeniedError(str(exc))
    return PersistenceError(str(exc))


class FirestoreDocumentStore:
    """Document store backed by Cloud Firestore via ``firebase_admin``.

    The Firestore client is synchronous; writes run in a worker thread so the
    caller's event loop is never blocked. Snapshot listeners fire on the
    client's watch thread.
    """

    def __init__(
        self,
        client: Any | None = None,
        credentials_path: Path | None = None,
        project_id: str | None = None,
    ):
        if client is None:
            settings = get_settings()
            client = init_firestore(
                credentials_path or settings.firebase_credentials,
                project_id or settings.firebase_project_id,
            )
        self._client = client
        self._logger = logger.bind(component="firestore_store")

    def subscribe(
        self,
        collection: Collection,
        on_change: ChangeCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        """Attach a snapshot listener to ``collection``.

        ``on_error`` only sees failures raised while registering the listener.
        The SDK reports a rejected listen (permission denied included) on its
        watch thread and just stops delivering; it never calls back. That
        failure surfaces on the next ``list_documents`` or write as
        ``PermissionDeniedError``, which is how ``BackOffice.seed_if_empty``
        detects a blocked session at startup.
        """

        def handle_snapshot(col_snapshot: Any, changes: Any, read_time: Any) -> None:
            docs = {doc.id: doc.to_dict() for doc in col_snapshot}
            try:
                on_change(docs)
            except Exception as e:
                self._logger.error(
                    "subscriber_error", collection=collection.value, error=str(e)
                )

        try:
            watch = self._client.collection(collection.value).on_snapshot(handle_snapshot)
        except Exception as e:
            error = _translate_error(e)
            self._logger.error("subscribe_failed", collection=collection.value, error=str(e))
            if on_error:
                on_error(error)
                return lambda: None
            raise error from e
        return watch.unsubscribe

    async def _run(self, action: str, collection: Collection, fn: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except Exception as e:
            self._logger.error(
                "firestore_error", action=action, collection=collection.value, error=str(e)
            )
            raise _translate_error(e) from e

    async def set_document(self, collection: Collection, key: str, value: Document) -> None:
        ref = self._client.collection(collection.value).document(key)
        await self._run("set", collection, lambda: ref.set(value))

    async def delete_document(self, collection: Collection, key: str) -> None:
        ref = self._client.collection(collection.value).document(key)
        await self._run("delete", collection, ref.delete)

    async def batch_set(
        self, collection: Collection, items: list[tuple[str, Document]]
    ) -> None:
        _validate_batch(collection, items)

        def commit() -> None:
            batch = self._client.batch()
            col = self._client.collection(collection.value)
            for key, value in items:
                batch.set(col.document(key), value)
            batch.commit()

        await self._run("batch_set", collection, commit)

    async def list_documents(self, collection: Collection) -> dict[str, Document]:
        def fetch() -> dict[str, Document]:
            return {
                doc.id: doc.to_dict()
                for doc in self._client.collection(collection.value).stream()
            }

        return await self._run("list", collection, fetch)
