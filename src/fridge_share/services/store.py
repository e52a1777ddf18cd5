"""Document store interface used by every service."""

from collections.abc import Callable
from typing import Protocol

from fridge_share.domain.documents import Document, FieldFilter, WriteBatch

DocumentCallback = Callable[[Document | None], None]
CollectionCallback = Callable[[list[Document]], None]
ErrorCallback = Callable[[Exception], None]


class Subscription(Protocol):
    """Handle for a live query."""

    def close(self) -> None:
        """Stop delivering snapshots. Safe to call more than once."""


class DocumentStore(Protocol):
    """Hierarchical document store with atomic batches and live queries."""

    async def get(self, path: str) -> Document | None:
        """Return the document at ``path``, if present."""

    async def list(
        self,
        collection: str,
        filters: list[FieldFilter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        """Return documents of a collection matching every equality filter."""

    async def commit(self, batch: WriteBatch) -> None:
        """Apply every operation of ``batch`` atomically.

        Raises ``ConflictError`` when a ``create`` target already exists or a
        precondition no longer holds, ``TransientError`` on any other failure.
        Nothing is applied in either case.
        """

    def watch_document(
        self, path: str, on_snapshot: DocumentCallback, on_error: ErrorCallback
    ) -> Subscription:
        """Deliver the current document and every later change."""

    def watch_collection(
        self,
        collection: str,
        on_snapshot: CollectionCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        """Deliver the full collection now and after every change."""
