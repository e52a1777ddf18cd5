"""Domain models for fridge stock."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class StockItem:
    """One persisted inventory line."""

    id: str
    fridge_id: str
    name: str
    qty: float
    unit: str
    expire_date: datetime | None
    low_threshold: float
    barcode: str
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    added_by: str | None = None
    updated_by: str | None = None


@dataclass(frozen=True)
class NewStockItem:
    """Caller-supplied payload for adding stock."""

    name: str
    qty: float
    unit: str | None = None
    expire_date: datetime | None = None
    barcode: str | None = None
    low_threshold: float = 0


@dataclass(frozen=True)
class HistoryEntry:
    """Append-only audit record of a quantity change."""

    id: str
    type: str
    name: str
    qty: float
    unit: str
    stock_id: str | None
    by_uid: str | None
    by_name: str
    ts: datetime | None
    source: str | None = None
    expire_date: datetime | None = None


@dataclass(frozen=True)
class GroupMember:
    """A stock item folded into a display group."""

    id: str
    qty: float
    unit: str
    low_threshold: float
    expire_date: datetime | None
    created_at: datetime | None


@dataclass(frozen=True)
class DisplayGroup:
    """Derived fold of stock items sharing name, unit and expiry."""

    id: str
    name: str
    unit: str
    qty: float
    low_threshold: float
    expire_date: datetime | None
    barcode: str
    is_low: bool
    is_expiring: bool
    documents: list[GroupMember] = field(default_factory=list)


@dataclass(frozen=True)
class RemovalResult:
    """Outcome of removing quantity from a single stock item."""

    item_id: str
    removed: float
    remaining: float

    @property
    def deleted(self) -> bool:
        return self.remaining <= 0


@dataclass(frozen=True)
class InventoryStats:
    """Summary counters for a fridge's display groups."""

    total_qty: float
    item_count: int
    expiring: int
    low: int
