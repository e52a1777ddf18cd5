"""Live view of a signed-in user's fridges.

A ``LiveSession`` owns every subscription opened on behalf of one user: their
profile, their membership list and, per joined fridge, the fridge record,
member roster, stock, shopping list and recent history. State held here only
ever mirrors the latest snapshot the store confirmed.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime

from fridge_share.domain.documents import Document
from fridge_share.domain.inventory import DisplayGroup, HistoryEntry, StockItem
from fridge_share.domain.models import Fridge, Membership, UserProfile
from fridge_share.domain.shopping import ShoppingEntry
from fridge_share.services.documents import (
    fridge_path,
    history_collection,
    members_collection,
    memberships_collection,
    parse_fridge,
    parse_fridge_member,
    parse_history_entry,
    parse_profile,
    parse_shopping_entry,
    parse_stock_item,
    parse_user_membership,
    shopping_collection,
    stock_collection,
    user_path,
)
from fridge_share.services.inventory import SOON_WINDOW, aggregate, utc_now
from fridge_share.services.store import DocumentStore, Subscription

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiveChange:
    """Notification that part of the session state was replaced."""

    kind: str
    fridge_id: str | None = None
    message: str | None = None


ChangeListener = Callable[[LiveChange], None]


@dataclass
class FridgeState:
    """Latest confirmed data for one fridge."""

    fridge: Fridge | None = None
    members: list[Membership] = field(default_factory=list)
    stock: list[StockItem] = field(default_factory=list)
    shopping: list[ShoppingEntry] = field(default_factory=list)
    history: list[HistoryEntry] = field(default_factory=list)


@dataclass
class _FridgeFeed:
    state: FridgeState = field(default_factory=FridgeState)
    subscriptions: list[Subscription] = field(default_factory=list)

    def close(self) -> None:
        for subscription in self.subscriptions:
            subscription.close()
        self.subscriptions.clear()


class LiveSession:
    """Session-scoped registry of live subscriptions for one user."""

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        *,
        history_limit: int = 50,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.history_limit = history_limit
        self.clock = clock
        self.profile: UserProfile | None = None
        self.memberships: dict[str, Membership] = {}
        self._feeds: dict[str, _FridgeFeed] = {}
        self._root_subscriptions: list[Subscription] = []
        self._listeners: list[ChangeListener] = []
        self._queues: list[asyncio.Queue[LiveChange | None]] = []
        self._started = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def watched_fridges(self) -> set[str]:
        """Fridges that currently have open feeds."""
        return set(self._feeds)

    def fridge(self, fridge_id: str) -> FridgeState | None:
        """State of a fridge, or None when it is not (or no longer) observed."""
        feed = self._feeds.get(fridge_id)
        return feed.state if feed else None

    def groups(self, fridge_id: str) -> list[DisplayGroup]:
        state = self.fridge(fridge_id)
        if state is None:
            return []
        return aggregate(state.stock, self.clock(), SOON_WINDOW)

    def start(self) -> None:
        """Open the profile and membership subscriptions."""
        if self._closed:
            raise RuntimeError("LiveSession is closed")
        if self._started:
            return
        self._started = True
        self._root_subscriptions.append(
            self.store.watch_document(
                user_path(self.user_id), self._on_profile, self._on_root_error
            )
        )
        self._root_subscriptions.append(
            self.store.watch_collection(
                memberships_collection(self.user_id),
                self._on_memberships,
                self._on_root_error,
            )
        )

    def close(self) -> None:
        """Unsubscribe every listener opened by this session."""
        if self._closed:
            return
        self._closed = True
        for subscription in self._root_subscriptions:
            subscription.close()
        self._root_subscriptions.clear()
        for feed in self._feeds.values():
            feed.close()
        self._feeds.clear()
        self.memberships.clear()
        self.profile = None
        for queue in self._queues:
            queue.put_nowait(None)
        self._listeners.clear()
        _logger.info("Closed live session for user %s", self.user_id)

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change callback; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def changes(self) -> AsyncIterator[LiveChange]:
        """Stream change notifications until the session closes.

        Changes are buffered from the moment this is called, so calling it
        before ``start()`` captures the initial snapshots.
        """
        queue: asyncio.Queue[LiveChange | None] = asyncio.Queue()
        if self._closed:
            queue.put_nowait(None)
        else:
            self._queues.append(queue)
        return self._drain(queue)

    async def _drain(
        self, queue: asyncio.Queue[LiveChange | None]
    ) -> AsyncIterator[LiveChange]:
        try:
            while True:
                change = await queue.get()
                if change is None:
                    return
                yield change
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def _emit(self, change: LiveChange) -> None:
        for listener in list(self._listeners):
            listener(change)
        for queue in self._queues:
            queue.put_nowait(change)

    def _on_profile(self, doc: Document | None) -> None:
        if self._closed:
            return
        self.profile = parse_profile(doc) if doc else None
        self._emit(LiveChange("profile"))

    def _on_memberships(self, docs: list[Document]) -> None:
        if self._closed:
            return
        self.memberships = {
            doc.id: parse_user_membership(self.user_id, doc) for doc in docs
        }
        for fridge_id in set(self._feeds) - set(self.memberships):
            self._feeds.pop(fridge_id).close()
            _logger.info("Stopped watching fridge %s", fridge_id)
        self._emit(LiveChange("memberships"))
        for fridge_id in self.memberships:
            if fridge_id not in self._feeds:
                self._open_feed(fridge_id)

    def _on_root_error(self, exc: Exception) -> None:
        if self._closed:
            return
        _logger.warning("Membership feed for %s failed: %s", self.user_id, exc)
        for feed in self._feeds.values():
            feed.close()
        self._feeds.clear()
        self.memberships.clear()
        self._emit(LiveChange("error", message=str(exc)))

    def _open_feed(self, fridge_id: str) -> None:
        feed = _FridgeFeed()
        self._feeds[fridge_id] = feed
        on_error = self._fridge_error_handler(fridge_id)
        state = feed.state

        def on_fridge(doc: Document | None) -> None:
            if self._feeds.get(fridge_id) is not feed:
                return
            state.fridge = parse_fridge(doc) if doc else None
            self._emit(LiveChange("fridge", fridge_id))

        def on_members(docs: list[Document]) -> None:
            if self._feeds.get(fridge_id) is not feed:
                return
            state.members = [parse_fridge_member(fridge_id, doc) for doc in docs]
            self._emit(LiveChange("members", fridge_id))

        def on_stock(docs: list[Document]) -> None:
            if self._feeds.get(fridge_id) is not feed:
                return
            state.stock = [parse_stock_item(doc) for doc in docs]
            self._emit(LiveChange("stock", fridge_id))

        def on_shopping(docs: list[Document]) -> None:
            if self._feeds.get(fridge_id) is not feed:
                return
            entries = [parse_shopping_entry(doc) for doc in docs]
            state.shopping = [entry for entry in entries if entry.status == "pending"]
            self._emit(LiveChange("shopping", fridge_id))

        def on_history(docs: list[Document]) -> None:
            if self._feeds.get(fridge_id) is not feed:
                return
            entries = [parse_history_entry(doc) for doc in docs]
            entries.sort(
                key=lambda entry: entry.ts.timestamp() if entry.ts else 0,
                reverse=True,
            )
            state.history = entries[: self.history_limit]
            self._emit(LiveChange("history", fridge_id))

        watchers = (
            lambda: self.store.watch_document(
                fridge_path(fridge_id), on_fridge, on_error
            ),
            lambda: self.store.watch_collection(
                members_collection(fridge_id), on_members, on_error
            ),
            lambda: self.store.watch_collection(
                stock_collection(fridge_id), on_stock, on_error
            ),
            lambda: self.store.watch_collection(
                shopping_collection(fridge_id), on_shopping, on_error
            ),
            lambda: self.store.watch_collection(
                history_collection(fridge_id), on_history, on_error
            ),
        )
        for watch in watchers:
            # An error delivered while subscribing drops the feed.
            if self._feeds.get(fridge_id) is not feed:
                break
            feed.subscriptions.append(watch())
        if self._feeds.get(fridge_id) is not feed:
            feed.close()
            return
        _logger.info("Watching fridge %s for user %s", fridge_id, self.user_id)

    def _fridge_error_handler(self, fridge_id: str) -> Callable[[Exception], None]:
        def on_error(exc: Exception) -> None:
            if self._closed:
                return
            _logger.warning("Live feed for fridge %s failed: %s", fridge_id, exc)
            feed = self._feeds.pop(fridge_id, None)
            if feed is not None:
                feed.close()
            self._emit(LiveChange("error", fridge_id, str(exc)))

        return on_error
