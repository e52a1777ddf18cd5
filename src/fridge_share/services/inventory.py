"""Inventory engine: stock mutations, history and display groups."""

import logging
import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Literal

from fridge_share.domain.documents import SERVER_TIMESTAMP, WriteBatch
from fridge_share.domain.errors import (
    ConflictError,
    InsufficientStockError,
    InvalidInputError,
    NotFoundError,
    Shortfall,
)
from fridge_share.domain.inventory import (
    DisplayGroup,
    GroupMember,
    HistoryEntry,
    InventoryStats,
    NewStockItem,
    RemovalResult,
    StockItem,
)
from fridge_share.services.documents import (
    DEFAULT_UNIT,
    barcode_path,
    history_collection,
    new_id,
    parse_history_entry,
    parse_stock_item,
    stock_collection,
    stock_path,
    to_iso,
)
from fridge_share.services.memberships import MembershipLedger
from fridge_share.services.profiles import ProfileService
from fridge_share.services.store import DocumentStore

SOON_WINDOW = timedelta(days=3)

GroupFilter = Literal["all", "exp", "low"]

_logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def is_expiring_soon(
    expire_date: datetime | None, now: datetime, window: timedelta = SOON_WINDOW
) -> bool:
    """True when an expiry is set and falls within ``window`` of ``now``.

    Already expired items count as expiring soon.
    """
    return expire_date is not None and expire_date - now <= window


def is_low(qty: float, low_threshold: float) -> bool:
    """A threshold of 0 disables the low-stock flag."""
    return low_threshold > 0 and qty <= low_threshold


def _millis(value: datetime | None) -> int | None:
    return int(value.timestamp() * 1000) if value is not None else None


def group_key(name: str, unit: str, expire_date: datetime | None) -> str:
    """Identity of the display group an item folds into."""
    expiry = _millis(expire_date)
    expiry_key = "none" if expiry is None else str(expiry)
    return f"{name.strip().lower()}|{unit.lower()}|{expiry_key}"


def depletion_order(members: Iterable[GroupMember]) -> list[GroupMember]:
    """Soonest expiry first, then oldest; missing values sort last."""

    def key(member: GroupMember) -> tuple[float, float]:
        expiry = _millis(member.expire_date)
        created = _millis(member.created_at)
        return (
            math.inf if expiry is None else expiry,
            math.inf if created is None else created,
        )

    return sorted(members, key=key)


def aggregate(
    items: Iterable[StockItem], now: datetime, soon_window: timedelta = SOON_WINDOW
) -> list[DisplayGroup]:
    """Fold stock items into display groups keyed by name, unit and expiry."""
    groups: dict[str, dict] = {}
    for item in items:
        name = item.name.strip() or "-"
        unit = item.unit or DEFAULT_UNIT
        key = group_key(name, unit, item.expire_date)
        member = GroupMember(
            id=item.id,
            qty=item.qty,
            unit=unit,
            low_threshold=item.low_threshold,
            expire_date=item.expire_date,
            created_at=item.created_at,
        )
        expiring = is_expiring_soon(item.expire_date, now, soon_window)
        group = groups.get(key)
        if group is None:
            groups[key] = {
                "name": name,
                "unit": unit,
                "qty": item.qty,
                "low_threshold": item.low_threshold,
                "expire_date": item.expire_date,
                "barcode": item.barcode,
                "is_expiring": expiring,
                "documents": [member],
            }
            continue
        group["qty"] += item.qty
        group["low_threshold"] += item.low_threshold
        group["is_expiring"] = group["is_expiring"] or expiring
        if item.expire_date is not None and (
            group["expire_date"] is None or item.expire_date < group["expire_date"]
        ):
            group["expire_date"] = item.expire_date
        if not group["barcode"]:
            group["barcode"] = item.barcode
        group["documents"].append(member)

    result = [
        DisplayGroup(
            id=key,
            name=group["name"],
            unit=group["unit"],
            qty=group["qty"],
            low_threshold=group["low_threshold"],
            expire_date=group["expire_date"],
            barcode=group["barcode"],
            is_low=is_low(group["qty"], group["low_threshold"]),
            is_expiring=group["is_expiring"],
            documents=depletion_order(group["documents"]),
        )
        for key, group in groups.items()
    ]
    result.sort(
        key=lambda group: (
            group.name.casefold(),
            group.name,
            _millis(group.expire_date) or 0,
        )
    )
    return result


def summarize_groups(groups: Iterable[DisplayGroup]) -> InventoryStats:
    """Counters shown above the stock list."""
    total_qty = 0.0
    item_count = expiring = low = 0
    for group in groups:
        qty = group.qty if math.isfinite(group.qty) else 0.0
        total_qty += qty
        if group.is_expiring:
            expiring += 1
        if group.is_low:
            low += 1
        elif qty > 0:
            item_count += 1
    return InventoryStats(
        total_qty=total_qty, item_count=item_count, expiring=expiring, low=low
    )


def filter_groups(
    groups: list[DisplayGroup], which: GroupFilter = "all"
) -> list[DisplayGroup]:
    if which == "exp":
        return [group for group in groups if group.is_expiring]
    if which == "low":
        return [group for group in groups if group.is_low]
    return list(groups)


def _positive_amount(value: float, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise InvalidInputError(f"{label} must be a number.")
    if not math.isfinite(value) or value <= 0:
        raise InvalidInputError(f"{label} must be greater than zero.")
    return float(value)


@dataclass
class InventoryService:
    """Application service for a fridge's stock."""

    store: DocumentStore
    ledger: MembershipLedger
    profiles: ProfileService
    soon_window: timedelta = SOON_WINDOW
    default_unit: str = DEFAULT_UNIT
    conflict_retries: int = 3
    clock: Callable[[], datetime] = field(default=utc_now)

    async def add_item(
        self, fridge_id: str, actor_id: str, item: NewStockItem
    ) -> str:
        """Add a stock item and return its id."""
        await self.ledger.require_member(fridge_id, actor_id)
        name = (item.name or "").strip()
        if not name:
            raise InvalidInputError("Item name is required.")
        qty = _positive_amount(item.qty, "Quantity")
        threshold = item.low_threshold
        if (
            isinstance(threshold, bool)
            or not isinstance(threshold, int | float)
            or not math.isfinite(threshold)
            or threshold < 0
        ):
            raise InvalidInputError("Low-stock threshold cannot be negative.")
        unit = (item.unit or "").strip() or self.default_unit
        barcode = (item.barcode or "").strip()
        by_name = await self.profiles.display_name(actor_id)

        item_id = new_id()
        expire_date = to_iso(item.expire_date)
        batch = WriteBatch()
        batch.create(
            stock_path(fridge_id, item_id),
            {
                "name": name,
                "qty": qty,
                "unit": unit,
                "expireDate": expire_date,
                "lowThreshold": threshold,
                "barcode": barcode,
                "status": "low" if is_low(qty, threshold) else "in_stock",
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
                "qty": qty,
                "unit": unit,
                "stockId": item_id,
                "byUid": actor_id,
                "byName": by_name,
                "ts": SERVER_TIMESTAMP,
                "expireDate": expire_date,
            },
        )
        if barcode:
            batch.set(
                barcode_path(barcode),
                {"name": name, "unit": unit, "updatedAt": SERVER_TIMESTAMP},
                merge=True,
            )
        await self.store.commit(batch)
        _logger.info("Added %s %s %s to fridge %s", qty, unit, name, fridge_id)
        return item_id

    async def remove_quantity(
        self, fridge_id: str, actor_id: str, item_id: str, amount: float
    ) -> RemovalResult:
        """Remove up to ``amount`` from one stock item."""
        requested = _positive_amount(amount, "Amount")
        await self.ledger.require_member(fridge_id, actor_id)
        by_name = await self.profiles.display_name(actor_id)
        return await self._remove(fridge_id, actor_id, by_name, item_id, requested)

    async def remove_item(
        self, fridge_id: str, actor_id: str, item_id: str
    ) -> RemovalResult:
        """Remove a stock item entirely."""
        await self.ledger.require_member(fridge_id, actor_id)
        by_name = await self.profiles.display_name(actor_id)
        return await self._remove(fridge_id, actor_id, by_name, item_id, math.inf)

    async def bulk_remove_across_group(
        self, fridge_id: str, actor_id: str, group_id: str, total: float
    ) -> list[RemovalResult]:
        """Remove ``total`` from a display group resolved from fresh stock."""
        _positive_amount(total, "Amount")
        await self.ledger.require_member(fridge_id, actor_id)
        groups = {group.id: group for group in await self.list_groups(fridge_id)}
        group = groups.get(group_id)
        if group is None:
            raise NotFoundError("That item is no longer in the fridge.")
        return await self.deplete_group(fridge_id, actor_id, group, total)

    async def deplete_group(
        self, fridge_id: str, actor_id: str, group: DisplayGroup, total: float
    ) -> list[RemovalResult]:
        """Consume ``total`` from a group, soonest-expiring stock first.

        Sufficiency is checked before any write. Each constituent is then
        removed in its own atomic commit, so a failure part way leaves earlier
        constituents removed; callers re-read stock to learn the remainder.
        """
        requested = _positive_amount(total, "Amount")
        await self.ledger.require_member(fridge_id, actor_id)
        if requested > group.qty:
            raise InsufficientStockError(
                [Shortfall(group.id, group.name, requested, group.qty)]
            )
        by_name = await self.profiles.display_name(actor_id)
        return await self._deplete(fridge_id, actor_id, by_name, group, requested)

    async def bulk_remove(
        self, fridge_id: str, actor_id: str, selections: Mapping[str, float]
    ) -> list[RemovalResult]:
        """Remove from several groups after one up-front sufficiency check."""
        await self.ledger.require_member(fridge_id, actor_id)
        groups = {group.id: group for group in await self.list_groups(fridge_id)}
        plan: list[tuple[DisplayGroup, float]] = []
        shortfalls: list[Shortfall] = []
        for group_id, amount in selections.items():
            group = groups.get(group_id)
            if group is None:
                continue
            requested = _positive_amount(amount, "Amount")
            if requested > group.qty:
                shortfalls.append(
                    Shortfall(group.id, group.name, requested, group.qty)
                )
            plan.append((group, requested))
        if shortfalls:
            raise InsufficientStockError(shortfalls)
        if not plan:
            raise InvalidInputError("Choose items before removing them.")

        by_name = await self.profiles.display_name(actor_id)
        results: list[RemovalResult] = []
        for group, requested in plan:
            results.extend(
                await self._deplete(fridge_id, actor_id, by_name, group, requested)
            )
        return results

    async def remove_group(
        self, fridge_id: str, actor_id: str, group_id: str
    ) -> list[RemovalResult]:
        """Delete every constituent of a display group."""
        await self.ledger.require_member(fridge_id, actor_id)
        groups = {group.id: group for group in await self.list_groups(fridge_id)}
        group = groups.get(group_id)
        if group is None:
            raise NotFoundError("That item is no longer in the fridge.")
        by_name = await self.profiles.display_name(actor_id)
        results: list[RemovalResult] = []
        for member in group.documents:
            try:
                results.append(
                    await self._remove(
                        fridge_id, actor_id, by_name, member.id, math.inf
                    )
                )
            except NotFoundError:
                continue
        _logger.info("Removed group %r from fridge %s", group.name, fridge_id)
        return results

    async def list_items(self, fridge_id: str) -> list[StockItem]:
        docs = await self.store.list(stock_collection(fridge_id))
        return [parse_stock_item(doc) for doc in docs]

    async def list_groups(self, fridge_id: str) -> list[DisplayGroup]:
        return aggregate(
            await self.list_items(fridge_id), self.clock(), self.soon_window
        )

    async def list_history(
        self, fridge_id: str, limit: int = 50
    ) -> list[HistoryEntry]:
        """Most recent history entries first."""
        docs = await self.store.list(
            history_collection(fridge_id),
            order_by="ts",
            descending=True,
            limit=limit,
        )
        return [parse_history_entry(doc) for doc in docs]

    async def _deplete(
        self,
        fridge_id: str,
        actor_id: str,
        by_name: str,
        group: DisplayGroup,
        requested: float,
    ) -> list[RemovalResult]:
        remaining = requested
        results: list[RemovalResult] = []
        for member in depletion_order(group.documents):
            if remaining <= 0:
                break
            try:
                result = await self._remove(
                    fridge_id, actor_id, by_name, member.id, remaining
                )
            except NotFoundError:
                continue
            results.append(result)
            remaining -= result.removed
        if remaining > 0:
            _logger.warning(
                "Group %r in fridge %s ran short by %s during removal",
                group.name,
                fridge_id,
                remaining,
            )
        return results

    async def _remove(
        self,
        fridge_id: str,
        actor_id: str,
        by_name: str,
        item_id: str,
        amount: float,
    ) -> RemovalResult:
        path = stock_path(fridge_id, item_id)
        conflict: ConflictError | None = None
        for _ in range(self.conflict_retries + 1):
            doc = await self.store.get(path)
            if doc is None:
                raise NotFoundError("That item is no longer in the fridge.")
            item = parse_stock_item(doc)
            if item.qty <= 0:
                raise NotFoundError("That item is no longer in the fridge.")
            removed = min(amount, item.qty)
            remaining = item.qty - removed
            # Conditional on the quantity just read; a concurrent removal makes
            # the commit fail and the loop re-reads.
            expected = {"qty": doc.data.get("qty")}

            batch = WriteBatch()
            if remaining <= 0:
                remaining = 0.0
                batch.delete(path, precondition=expected)
            else:
                batch.update(
                    path,
                    {
                        "qty": remaining,
                        "status": "low"
                        if remaining <= item.low_threshold
                        else item.status,
                        "updatedAt": SERVER_TIMESTAMP,
                        "updatedBy": actor_id,
                    },
                    precondition=expected,
                )
            batch.set(
                f"{history_collection(fridge_id)}/{new_id()}",
                {
                    "type": "remove",
                    "name": item.name,
                    "qty": removed,
                    "unit": item.unit,
                    "stockId": item_id,
                    "byUid": actor_id,
                    "byName": by_name,
                    "ts": SERVER_TIMESTAMP,
                },
            )
            try:
                await self.store.commit(batch)
            except ConflictError as exc:
                _logger.info("Concurrent change on %s, re-reading", path)
                conflict = exc
                continue
            return RemovalResult(item_id=item_id, removed=removed, remaining=remaining)
        raise ConflictError(
            "The item changed while removing it. Please try again."
        ) from conflict
