"""Domain models for shopping entries and restock candidates."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class ShoppingEntry:
    """A persisted "to buy" record."""

    id: str
    fridge_id: str
    fridge_name: str
    name: str
    qty: float
    unit: str
    status: str
    source: str
    from_stock_id: str | None
    expire_date: datetime | None
    target_expire_date: datetime | None
    low_threshold: float
    barcode: str
    by_uid: str | None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ShoppingCandidate:
    """A stock item that is low or expiring soon (derived, never stored)."""

    item_id: str
    fridge_id: str
    fridge_name: str
    name: str
    qty: float
    low_threshold: float
    expire_date: datetime | None
    needs_restock: bool
    expiring_soon: bool


@dataclass
class FridgeCandidateCounts:
    """Candidate counters for a single fridge."""

    name: str
    total: int = 0
    low_stock: int = 0
    expiring_soon: int = 0


@dataclass
class ShoppingSummary:
    """Candidate counters across every fridge a user belongs to."""

    total: int = 0
    low_stock: int = 0
    expiring_soon: int = 0
    per_fridge: dict[str, FridgeCandidateCounts] = field(default_factory=dict)
