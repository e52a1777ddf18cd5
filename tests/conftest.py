"""Shared test fixtures."""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest

from fridge_share.adapters.openfoodfacts_client import ProductLookupClient
from fridge_share.adapters.supabase_auth_client import AuthClient, SessionCallback
from fridge_share.config import Settings
from fridge_share.containers import AppContainer, build_services
from fridge_share.domain.documents import Document, FieldFilter, WriteBatch, split_path
from fridge_share.domain.errors import ConflictError
from fridge_share.domain.models import AuthUser
from fridge_share.services.barcodes import BarcodeService
from fridge_share.services.cache import InMemoryCache
from fridge_share.services.documents import to_iso
from fridge_share.services.store import (
    CollectionCallback,
    DocumentCallback,
    DocumentStore,
    ErrorCallback,
)

NOW = datetime(2025, 1, 8, 12, 0, tzinfo=UTC)


def fixed_clock() -> datetime:
    return NOW


@dataclass
class FakeWatch:
    """Live query registered on the in-memory store."""

    target: str
    is_collection: bool
    on_snapshot: Callable[[object], None]
    on_error: ErrorCallback
    closed: bool = False

    def close(self) -> None:
        self.closed = True


@dataclass
class InMemoryDocumentStore(DocumentStore):
    """In-memory document store with atomic batches for tests."""

    docs: dict[str, dict[str, object]] = field(default_factory=dict)
    now: datetime = NOW
    commits: list[WriteBatch] = field(default_factory=list)
    watches: list[FakeWatch] = field(default_factory=list)
    fail_next_commit: Exception | None = None
    before_commit: Callable[[WriteBatch], None] | None = None

    def seed(self, path: str, data: dict[str, object]) -> None:
        split_path(path)
        self.docs[path] = dict(data)

    def data(self, path: str) -> dict[str, object] | None:
        return self.docs.get(path)

    def paths(self, collection: str) -> list[str]:
        return [path for path in self.docs if split_path(path)[0] == collection]

    def active_watches(self) -> list[FakeWatch]:
        return [watch for watch in self.watches if not watch.closed]

    def fail_watch(self, target: str, exc: Exception) -> None:
        for watch in self.active_watches():
            if watch.target == target:
                watch.on_error(exc)

    async def get(self, path: str) -> Document | None:
        return self._document(path)

    async def list(
        self,
        collection: str,
        filters: list[FieldFilter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        docs = self._collection(collection)
        for item in filters or []:
            docs = [doc for doc in docs if doc.data.get(item.field) == item.value]
        if order_by:
            present = [doc for doc in docs if doc.data.get(order_by) is not None]
            missing = [doc for doc in docs if doc.data.get(order_by) is None]
            present.sort(key=lambda doc: str(doc.data[order_by]), reverse=descending)
            docs = present + missing
        if limit is not None:
            docs = docs[:limit]
        return docs

    async def commit(self, batch: WriteBatch) -> None:
        if self.before_commit is not None:
            hook, self.before_commit = self.before_commit, None
            hook(batch)
        if self.fail_next_commit is not None:
            exc, self.fail_next_commit = self.fail_next_commit, None
            raise exc

        staged = copy.deepcopy(self.docs)
        stamp = to_iso(self.now)
        touched: set[str] = set()
        for operation in batch.operations:
            path = operation.path
            body = dict(operation.data)
            body.update({name: stamp for name in operation.server_timestamps})
            current = staged.get(path)
            if operation.precondition is not None and (
                current is None
                or any(
                    current.get(key) != value
                    for key, value in operation.precondition.items()
                )
            ):
                raise ConflictError(f"precondition failed: {path}")
            if operation.kind == "create":
                if current is not None:
                    raise ConflictError(f"document exists: {path}")
                staged[path] = body
            elif operation.kind == "set":
                merged = {**current, **body} if current else body
                staged[path] = merged if operation.merge else body
            elif operation.kind == "update":
                if current is None:
                    raise ConflictError(f"document missing: {path}")
                staged[path] = {**current, **body}
            else:
                staged.pop(path, None)
            touched.add(operation.collection)

        self.docs = staged
        self.commits.append(batch)
        self.now += timedelta(seconds=1)
        self._notify(touched)

    def watch_document(
        self, path: str, on_snapshot: DocumentCallback, on_error: ErrorCallback
    ) -> FakeWatch:
        watch = FakeWatch(path, False, on_snapshot, on_error)
        self.watches.append(watch)
        on_snapshot(self._document(path))
        return watch

    def watch_collection(
        self,
        collection: str,
        on_snapshot: CollectionCallback,
        on_error: ErrorCallback,
    ) -> FakeWatch:
        watch = FakeWatch(collection, True, on_snapshot, on_error)
        self.watches.append(watch)
        on_snapshot(self._collection(collection))
        return watch

    def _document(self, path: str) -> Document | None:
        data = self.docs.get(path)
        if data is None:
            return None
        collection, doc_id = split_path(path)
        return Document(collection=collection, id=doc_id, data=copy.deepcopy(data))

    def _collection(self, collection: str) -> list[Document]:
        docs = [self._document(path) for path in self.paths(collection)]
        return [doc for doc in docs if doc is not None]

    def _notify(self, collections: set[str]) -> None:
        for watch in list(self.watches):
            if watch.closed:
                continue
            if watch.is_collection and watch.target in collections:
                watch.on_snapshot(self._collection(watch.target))
            elif not watch.is_collection and split_path(watch.target)[0] in collections:
                watch.on_snapshot(self._document(watch.target))


@dataclass
class FakeAuthClient(AuthClient):
    """Auth client that resolves tokens from a dict."""

    tokens: dict[str, AuthUser] = field(default_factory=dict)
    user: AuthUser | None = None
    callbacks: list[SessionCallback] = field(default_factory=list)
    sign_outs: int = 0

    async def verify_token(self, access_token: str) -> AuthUser | None:
        return self.tokens.get(access_token)

    async def current_user(self) -> AuthUser | None:
        return self.user

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        self.callbacks.append(callback)
        return lambda: self.callbacks.remove(callback)

    async def sign_out(self) -> None:
        self.sign_outs += 1
        self.user = None

    def emit(self, user: AuthUser | None) -> None:
        self.user = user
        for callback in list(self.callbacks):
            callback(user)


@dataclass
class FakeProductClient(ProductLookupClient):
    """Product client returning canned products by barcode."""

    products: dict[str, dict[str, object]] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)
    error: Exception | None = None

    async def get_product(self, barcode: str) -> dict[str, object]:
        self.calls.append(barcode)
        if self.error is not None:
            raise self.error
        return self.products.get(barcode, {})


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="header.payload.signature",
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def auth_client() -> FakeAuthClient:
    return FakeAuthClient()


@pytest.fixture
def product_client() -> FakeProductClient:
    return FakeProductClient()


@pytest.fixture
def container(
    settings: Settings,
    store: InMemoryDocumentStore,
    auth_client: FakeAuthClient,
    product_client: FakeProductClient,
) -> AppContainer:
    barcode_service = BarcodeService(
        store=store,
        product_client=product_client,
        cache=InMemoryCache(),
        cache_ttl_seconds=settings.barcode_cache_ttl_seconds,
    )

    async def close_resources() -> None:
        return None

    container = build_services(
        settings, store, auth_client, barcode_service, close_resources
    )
    container.inventory_service.clock = fixed_clock
    container.shopping_service.clock = fixed_clock
    return container


async def sign_up(
    container: AppContainer, user_id: str, display_name: str | None = None
) -> AuthUser:
    """Create the profile of a test user."""
    user = AuthUser(
        id=user_id, email=f"{user_id}@example.com", display_name=display_name
    )
    await container.profile_service.ensure_profile(user)
    return user
