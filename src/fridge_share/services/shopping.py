"""Shopping list: promotion from stock, purchase and restock candidates."""

import logging
import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from fridge_share.domain.documents import SERVER_TIMESTAMP, WriteBatch
from fridge_share.domain.errors import (
    ConflictError,
    ExpiryRequiredError,
    InvalidInputError,
    NoValidSelectionError,
    NotFoundError,
)
from fridge_share.domain.inventory import DisplayGroup, StockItem
from fridge_share.domain.models import Fridge
from fridge_share.domain.shopping import (
    FridgeCandidateCounts,
    ShoppingCandidate,
    ShoppingEntry,
    ShoppingSummary,
)
from fridge_share.services.documents import (
    history_collection,
    new_id,
    parse_shopping_entry,
    shopping_collection,
    shopping_path,
    stock_path,
    to_iso,
)
from fridge_share.services.fridges import FridgeRegistry
from fridge_share.services.inventory import (
    SOON_WINDOW,
    InventoryService,
    is_expiring_soon,
    utc_now,
)
from fridge_share.services.memberships import MembershipLedger
from fridge_share.services.profiles import ProfileService
from fridge_share.services.store import DocumentStore

MAX_SHOPPING_QTY = 9999

_logger = logging.getLogger(__name__)


def restock_threshold(low_threshold: float) -> int:
    """Threshold given to stock bought from the list: at least 1."""
    # Half-up rounding, unlike round() which rounds half to even.
    return max(1, math.floor(low_threshold + 0.5))


def shopping_candidates(
    fridges: Iterable[tuple[Fridge, list[StockItem]]],
    now: datetime,
    soon_window: timedelta = SOON_WINDOW,
) -> list[ShoppingCandidate]:
    """Stock items that are low or expiring soon, across fridges.

    Ordered by fridge name, then expiry (items without one last), then name.
    """
    candidates: list[ShoppingCandidate] = []
    for fridge, items in fridges:
        for item in items:
            needs_restock = item.qty <= item.low_threshold
            expiring_soon = is_expiring_soon(item.expire_date, now, soon_window)
            if not needs_restock and not expiring_soon:
                continue
            candidates.append(
                ShoppingCandidate(
                    item_id=item.id,
                    fridge_id=fridge.id,
                    fridge_name=fridge.name,
                    name=item.name,
                    qty=item.qty,
                    low_threshold=item.low_threshold,
                    expire_date=item.expire_date,
                    needs_restock=needs_restock,
                    expiring_soon=expiring_soon,
                )
            )
    candidates.sort(
        key=lambda candidate: (
            candidate.fridge_name.lower(),
            candidate.expire_date is None,
            candidate.expire_date.timestamp() if candidate.expire_date else 0,
            candidate.name.lower(),
        )
    )
    return candidates


def summarize_candidates(candidates: Iterable[ShoppingCandidate]) -> ShoppingSummary:
    summary = ShoppingSummary()
    for candidate in candidates:
        counts = summary.per_fridge.setdefault(
            candidate.fridge_id, FridgeCandidateCounts(name=candidate.fridge_name)
        )
        summary.total += 1
        counts.total += 1
        if candidate.needs_restock:
            summary.low_stock += 1
            counts.low_stock += 1
        if candidate.expiring_soon:
            summary.expiring_soon += 1
            counts.expiring_soon += 1
    return summary


def _selection_qty(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return float(min(value, MAX_SHOPPING_QTY))


@dataclass
class ShoppingService:
    """Application service for a fridge's shopping list."""

    store: DocumentStore
    ledger: MembershipLedger
    registry: FridgeRegistry
    inventory: InventoryService
    profiles: ProfileService
    soon_window: timedelta = SOON_WINDOW
    clock: Callable[[], datetime] = field(default=utc_now)

    async def promote_to_shopping(
        self,
        fridge_id: str,
        actor_id: str,
        selections: Mapping[str, float],
        source: str = "fridge",
    ) -> list[str]:
        """Create pending entries for selected display groups.

        Unknown groups and non-positive quantities are skipped. Stock is left
        untouched.
        """
        await self.ledger.require_member(fridge_id, actor_id)
        groups = {
            group.id: group for group in await self.inventory.list_groups(fridge_id)
        }
        fridge = await self.registry.get_fridge(fridge_id)
        if fridge is None:
            raise NotFoundError("Fridge not found.")

        batch = WriteBatch()
        entry_ids: list[str] = []
        for group_id, raw_qty in selections.items():
            group = groups.get(group_id)
            qty = _selection_qty(raw_qty)
            if group is None or qty is None:
                continue
            entry_id = new_id()
            self._add_entry(batch, fridge, actor_id, entry_id, group, qty, source)
            entry_ids.append(entry_id)
        if not entry_ids:
            raise NoValidSelectionError(
                "Choose items before adding to the shopping list."
            )
        await self.store.commit(batch)
        _logger.info(
            "Added %s shopping entr%s to fridge %s",
            len(entry_ids),
            "y" if len(entry_ids) == 1 else "ies",
            fridge_id,
        )
        return entry_ids

    async def seed_restock(
        self,
        fridge_id: str,
        actor_id: str,
        group_id: str,
        qty: float | None = None,
    ) -> str:
        """Create a restock entry for a group that is low or expiring soon."""
        await self.ledger.require_member(fridge_id, actor_id)
        groups = {
            group.id: group for group in await self.inventory.list_groups(fridge_id)
        }
        group = groups.get(group_id)
        if group is None:
            raise NotFoundError("That item is no longer in the fridge.")
        if not group.is_low and not group.is_expiring:
            raise InvalidInputError("This item doesn't need restocking yet.")
        wanted = 1 if qty is None else qty
        if _selection_qty(wanted) is None:
            raise InvalidInputError("Quantity must be greater than zero.")
        entry_ids = await self.promote_to_shopping(
            fridge_id, actor_id, {group_id: wanted}, source="threshold"
        )
        return entry_ids[0]

    async def mark_purchased(
        self, fridge_id: str, actor_id: str, entry_id: str
    ) -> str:
        """Turn a shopping entry into stock and return the new item id."""
        await self.ledger.require_member(fridge_id, actor_id)
        entry = await self._get_entry(fridge_id, entry_id)
        if entry.target_expire_date is None:
            raise ExpiryRequiredError(
                "Please set an expiry date before marking this item as bought."
            )
        if entry.qty <= 0:
            raise InvalidInputError("Set a quantity before marking as bought.")
        by_name = await self.profiles.display_name(actor_id)

        name = entry.name.strip() if entry.name != "-" else "Unnamed item"
        expire_date = to_iso(entry.target_expire_date)
        item_id = new_id()
        batch = WriteBatch()
        batch.create(
            stock_path(fridge_id, item_id),
            {
                "name": name,
                "qty": entry.qty,
                "unit": entry.unit,
                "expireDate": expire_date,
                "barcode": entry.barcode,
                "lowThreshold": restock_threshold(entry.low_threshold),
                "status": "in_stock",
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
                "addedBy": actor_id,
                "updatedBy": actor_id,
            },
        )
        batch.set(
            f"{history_collection(fridge_id)}/{new_id()}",
            {
                "type": "add",
                "name": name,
                "qty": entry.qty,
                "unit": entry.unit,
                "stockId": item_id,
                "byUid": actor_id,
                "byName": by_name,
                "ts": SERVER_TIMESTAMP,
                "source": "shopping",
                "expireDate": expire_date,
            },
        )
        # A concurrent purchase of the same entry fails this precondition.
        batch.delete(
            shopping_path(fridge_id, entry_id), precondition={"status": "pending"}
        )
        try:
            await self.store.commit(batch)
        except ConflictError as exc:
            raise NotFoundError("This item was already bought.") from exc
        _logger.info(
            "Restocked %s %s %s in fridge %s", entry.qty, entry.unit, name, fridge_id
        )
        return item_id

    async def set_target_expiry(
        self,
        fridge_id: str,
        actor_id: str,
        entry_id: str,
        expire_date: datetime | None,
    ) -> None:
        await self.ledger.require_member(fridge_id, actor_id)
        await self._get_entry(fridge_id, entry_id)
        await self.store.commit(
            WriteBatch().update(
                shopping_path(fridge_id, entry_id),
                {
                    "targetExpireDate": to_iso(expire_date),
                    "updatedAt": SERVER_TIMESTAMP,
                },
            )
        )

    async def adjust_quantity(
        self, fridge_id: str, actor_id: str, entry_id: str, delta: float
    ) -> float:
        """Change an entry's quantity by ``delta`` within 1..9999."""
        await self.ledger.require_member(fridge_id, actor_id)
        if isinstance(delta, bool) or not math.isfinite(delta):
            raise InvalidInputError("Quantity change must be a number.")
        entry = await self._get_entry(fridge_id, entry_id)
        if delta < 0 and entry.qty <= 1:
            raise InvalidInputError("Quantity cannot be lower than 1.")
        target = min(MAX_SHOPPING_QTY, max(1.0, entry.qty + delta))
        if target == entry.qty:
            return target
        await self.store.commit(
            WriteBatch().update(
                shopping_path(fridge_id, entry_id),
                {"qty": target, "updatedAt": SERVER_TIMESTAMP},
            )
        )
        return target

    async def remove_entry(self, fridge_id: str, actor_id: str, entry_id: str) -> None:
        await self.ledger.require_member(fridge_id, actor_id)
        await self._get_entry(fridge_id, entry_id)
        await self.store.commit(
            WriteBatch().delete(shopping_path(fridge_id, entry_id))
        )

    async def list_entries(self, fridge_id: str) -> list[ShoppingEntry]:
        """Pending entries, newest first."""
        docs = await self.store.list(
            shopping_collection(fridge_id), order_by="createdAt", descending=True
        )
        entries = [parse_shopping_entry(doc) for doc in docs]
        return [entry for entry in entries if entry.status == "pending"]

    async def candidates_for_user(
        self, user_id: str
    ) -> tuple[list[ShoppingCandidate], ShoppingSummary]:
        """Restock candidates across every fridge the user belongs to."""
        fridges: list[tuple[Fridge, list[StockItem]]] = []
        for membership in await self.ledger.list_memberships(user_id):
            fridge = await self.registry.get_fridge(membership.fridge_id)
            if fridge is None:
                continue
            fridges.append((fridge, await self.inventory.list_items(fridge.id)))
        candidates = shopping_candidates(fridges, self.clock(), self.soon_window)
        return candidates, summarize_candidates(candidates)

    async def _get_entry(self, fridge_id: str, entry_id: str) -> ShoppingEntry:
        doc = await self.store.get(shopping_path(fridge_id, entry_id))
        if doc is None:
            raise NotFoundError("Shopping item not found.")
        return parse_shopping_entry(doc)

    def _add_entry(  # noqa: PLR0913
        self,
        batch: WriteBatch,
        fridge: Fridge,
        actor_id: str,
        entry_id: str,
        group: DisplayGroup,
        qty: float,
        source: str,
    ) -> None:
        from_stock_id = group.documents[0].id if group.documents else group.id
        batch.create(
            shopping_path(fridge.id, entry_id),
            {
                "name": group.name,
                "nameLower": group.name.lower(),
                "qty": qty,
                "unit": group.unit,
                "status": "pending",
                "source": source,
                "fromStockId": from_stock_id,
                "expireDate": to_iso(group.expire_date),
                "targetExpireDate": None,
                "lowThreshold": group.low_threshold,
                "barcode": group.barcode,
                "byUid": actor_id,
                "fridgeId": fridge.id,
                "fridgeName": fridge.name,
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )
