"""Supabase-backed document store.

Documents live in one ``documents`` table keyed by ``(collection, id)`` with a
``jsonb`` body. Batches are applied by the ``commit_documents`` Postgres
function in a single transaction; live queries use realtime
``postgres_changes`` channels filtered by collection.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from postgrest.exceptions import APIError
from supabase import AsyncClient

from fridge_share.domain.documents import Document, FieldFilter, WriteBatch, split_path
from fridge_share.domain.errors import ConflictError, TransientError
from fridge_share.services.store import (
    CollectionCallback,
    DocumentCallback,
    DocumentStore,
    ErrorCallback,
)

TABLE = "documents"
COMMIT_FUNCTION = "commit_documents"
# SQLSTATE raised by commit_documents when a create target exists or a
# precondition does not hold.
CONFLICT_SQLSTATE = "FS409"

_logger = logging.getLogger(__name__)


def _to_document(row: dict[str, object]) -> Document:
    data = row.get("data")
    return Document(
        collection=str(row["collection"]),
        id=str(row["id"]),
        data=dict(data) if isinstance(data, dict) else {},
    )


def _filter_value(value: object) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class _RealtimeSubscription:
    """Live query backed by one realtime channel."""

    client: AsyncClient
    topic: str
    collection: str
    refresh: Callable[[], Awaitable[None]]
    on_error: ErrorCallback
    channel: object | None = None
    closed: bool = False
    _tasks: set[asyncio.Task[None]] = field(default_factory=set)
    _dirty: bool = field(default=False, init=False, repr=False)
    _refreshing: bool = field(default=False, init=False, repr=False)

    def start(self) -> None:
        self._spawn(self._open())

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for task in list(self._tasks):
            task.cancel()
        if self.channel is not None:
            asyncio.get_running_loop().create_task(
                self.client.remove_channel(self.channel)
            )

    async def _open(self) -> None:
        channel = self.client.channel(self.topic)
        channel.on_postgres_changes(
            "*",
            callback=lambda _payload: self._request_refresh(),
            table=TABLE,
            schema="public",
            filter=f"collection=eq.{self.collection}",
        )
        self.channel = channel
        try:
            await channel.subscribe()
        except Exception as exc:  # noqa: BLE001
            self._fail(exc)
            return
        self._request_refresh()

    def _request_refresh(self) -> None:
        self._dirty = True
        if self._refreshing or self.closed:
            return
        self._refreshing = True
        self._spawn(self._refresh_loop())

    async def _refresh_loop(self) -> None:
        # One fetch in flight; changes seen meanwhile trigger a single refetch.
        try:
            while self._dirty and not self.closed:
                self._dirty = False
                try:
                    await self.refresh()
                except TransientError as exc:
                    self._fail(exc)
                    return
        finally:
            self._refreshing = False

    def _fail(self, exc: Exception) -> None:
        if self.closed:
            return
        _logger.warning("Realtime subscription %s failed: %s", self.topic, exc)
        self.on_error(
            exc
            if isinstance(exc, TransientError)
            else TransientError("Live updates are unavailable.")
        )

    def _spawn(self, coro: Awaitable[None]) -> None:
        if self.closed:
            return
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


@dataclass
class SupabaseDocumentStore(DocumentStore):
    """Supabase implementation of the document store."""

    client: AsyncClient
    _topic_counter: int = field(default=0, init=False, repr=False)

    async def get(self, path: str) -> Document | None:
        collection, doc_id = split_path(path)
        try:
            response = (
                await self.client.table(TABLE)
                .select("collection, id, data")
                .eq("collection", collection)
                .eq("id", doc_id)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            raise TransientError("Could not load data. Please try again.") from exc
        if not response.data:
            return None
        return _to_document(response.data[0])

    async def list(
        self,
        collection: str,
        filters: list[FieldFilter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        query = (
            self.client.table(TABLE)
            .select("collection, id, data")
            .eq("collection", collection)
        )
        for item in filters or []:
            query = query.eq(f"data->>{item.field}", _filter_value(item.value))
        if order_by:
            query = query.order(f"data->>{order_by}", desc=descending)
        if limit is not None:
            query = query.limit(limit)
        try:
            response = await query.execute()
        except Exception as exc:
            raise TransientError("Could not load data. Please try again.") from exc
        return [_to_document(row) for row in response.data or []]

    async def commit(self, batch: WriteBatch) -> None:
        if not len(batch):
            return
        payload = [operation.to_payload() for operation in batch.operations]
        try:
            await self.client.rpc(COMMIT_FUNCTION, {"operations": payload}).execute()
        except APIError as exc:
            if exc.code == CONFLICT_SQLSTATE:
                raise ConflictError(
                    "Someone else changed this just now. Please try again."
                ) from exc
            _logger.warning("Batch commit failed: %s", exc.message)
            raise TransientError("Could not save changes. Please try again.") from exc
        except Exception as exc:
            _logger.warning("Batch commit failed: %s", exc)
            raise TransientError("Could not save changes. Please try again.") from exc

    def watch_document(
        self, path: str, on_snapshot: DocumentCallback, on_error: ErrorCallback
    ) -> _RealtimeSubscription:
        collection, _ = split_path(path)

        async def refresh() -> None:
            on_snapshot(await self.get(path))

        return self._watch(collection, refresh, on_error)

    def watch_collection(
        self,
        collection: str,
        on_snapshot: CollectionCallback,
        on_error: ErrorCallback,
    ) -> _RealtimeSubscription:
        async def refresh() -> None:
            on_snapshot(await self.list(collection))

        return self._watch(collection, refresh, on_error)

    def _watch(
        self,
        collection: str,
        refresh: Callable[[], Awaitable[None]],
        on_error: ErrorCallback,
    ) -> _RealtimeSubscription:
        self._topic_counter += 1
        subscription = _RealtimeSubscription(
            client=self.client,
            topic=f"{TABLE}:{collection}:{self._topic_counter}",
            collection=collection,
            refresh=refresh,
            on_error=on_error,
        )
        subscription.start()
        return subscription
