"""Document paths and parsing of stored documents into domain models.

Stored documents are loosely shaped: older records may miss fields or carry
numbers as strings. Every default is applied here so services only ever see
fully populated domain objects.
"""

import math
from datetime import UTC, datetime
from uuid import uuid4

from fridge_share.domain.documents import Document
from fridge_share.domain.inventory import HistoryEntry, StockItem
from fridge_share.domain.models import Fridge, Membership, Role, UserProfile
from fridge_share.domain.shopping import ShoppingEntry

DEFAULT_UNIT = "pcs"
USERS = "users"
FRIDGES = "fridges"
INVITE_CODES = "inviteCodes"
BARCODES = "barcodes"


def new_id() -> str:
    """Generate a document id."""
    return uuid4().hex


def user_path(user_id: str) -> str:
    return f"{USERS}/{user_id}"


def memberships_collection(user_id: str) -> str:
    return f"{USERS}/{user_id}/memberships"


def membership_path(user_id: str, fridge_id: str) -> str:
    return f"{memberships_collection(user_id)}/{fridge_id}"


def fridge_path(fridge_id: str) -> str:
    return f"{FRIDGES}/{fridge_id}"


def members_collection(fridge_id: str) -> str:
    return f"{FRIDGES}/{fridge_id}/members"


def member_path(fridge_id: str, user_id: str) -> str:
    return f"{members_collection(fridge_id)}/{user_id}"


def invite_code_path(code: str) -> str:
    return f"{INVITE_CODES}/{code}"


def stock_collection(fridge_id: str) -> str:
    return f"{FRIDGES}/{fridge_id}/stock"


def stock_path(fridge_id: str, item_id: str) -> str:
    return f"{stock_collection(fridge_id)}/{item_id}"


def history_collection(fridge_id: str) -> str:
    return f"{FRIDGES}/{fridge_id}/stockHistory"


def shopping_collection(fridge_id: str) -> str:
    return f"{FRIDGES}/{fridge_id}/shopping"


def shopping_path(fridge_id: str, entry_id: str) -> str:
    return f"{shopping_collection(fridge_id)}/{entry_id}"


def barcode_path(barcode: str) -> str:
    return f"{BARCODES}/{barcode}"


def fridge_id_from_collection(collection: str) -> str:
    """Return the fridge id of a ``fridges/{id}/...`` collection path."""
    parts = collection.split("/")
    return parts[1] if len(parts) > 1 and parts[0] == FRIDGES else ""


def to_iso(value: datetime | None) -> str | None:
    """Serialize a datetime for storage."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def parse_datetime(value: object) -> datetime | None:
    """Parse a stored timestamp, tolerating missing and malformed values."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def to_float(value: object) -> float:
    """Coerce a stored number; anything non-numeric becomes 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def _text(value: object, default: str = "") -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _optional_text(value: object) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def parse_profile(doc: Document) -> UserProfile:
    """Parse a ``users/{uid}`` document."""
    data = doc.data
    return UserProfile(
        id=doc.id,
        display_name=_text(data.get("displayName"), "New member"),
        email=_text(data.get("email")),
        current_fridge_id=_optional_text(data.get("currentFridgeId")),
        created_at=parse_datetime(data.get("createdAt")),
    )


def parse_role(value: object) -> Role:
    return Role.OWNER if value == Role.OWNER.value else Role.MEMBER


def parse_user_membership(user_id: str, doc: Document) -> Membership:
    """Parse a ``users/{uid}/memberships/{fridgeId}`` mirror."""
    return Membership(
        user_id=user_id,
        fridge_id=doc.id,
        role=parse_role(doc.data.get("role")),
        joined_at=parse_datetime(doc.data.get("addedAt")),
    )


def parse_fridge_member(fridge_id: str, doc: Document) -> Membership:
    """Parse a ``fridges/{fridgeId}/members/{uid}`` mirror."""
    return Membership(
        user_id=doc.id,
        fridge_id=fridge_id,
        role=parse_role(doc.data.get("role")),
        joined_at=parse_datetime(doc.data.get("joinedAt")),
    )


def parse_fridge(doc: Document) -> Fridge:
    data = doc.data
    return Fridge(
        id=doc.id,
        name=_text(data.get("name"), fallback_fridge_name(doc.id)),
        owner_uid=_text(data.get("ownerUid")),
        invite_code=_text(data.get("inviteCode")).upper(),
        created_at=parse_datetime(data.get("createdAt")),
    )


def fallback_fridge_name(fridge_id: str) -> str:
    return f"Fridge {fridge_id[-4:].upper()}"


def parse_stock_item(doc: Document) -> StockItem:
    data = doc.data
    return StockItem(
        id=doc.id,
        fridge_id=fridge_id_from_collection(doc.collection),
        name=_text(data.get("name"), "-"),
        qty=to_float(data.get("qty")),
        unit=_text(data.get("unit"), DEFAULT_UNIT),
        expire_date=parse_datetime(data.get("expireDate")),
        low_threshold=to_float(data.get("lowThreshold")),
        barcode=_text(data.get("barcode")),
        status=_text(data.get("status"), "in_stock"),
        created_at=parse_datetime(data.get("createdAt")),
        updated_at=parse_datetime(data.get("updatedAt")),
        added_by=_optional_text(data.get("addedBy")),
        updated_by=_optional_text(data.get("updatedBy")),
    )


def parse_history_entry(doc: Document) -> HistoryEntry:
    data = doc.data
    return HistoryEntry(
        id=doc.id,
        type=_text(data.get("type"), "add"),
        name=_text(data.get("name"), "-"),
        qty=to_float(data.get("qty")),
        unit=_text(data.get("unit"), DEFAULT_UNIT),
        stock_id=_optional_text(data.get("stockId")),
        by_uid=_optional_text(data.get("byUid")),
        by_name=_text(data.get("byName"), "Unknown member"),
        ts=parse_datetime(data.get("ts")),
        source=_optional_text(data.get("source")),
        expire_date=parse_datetime(data.get("expireDate")),
    )


def parse_shopping_entry(doc: Document) -> ShoppingEntry:
    data = doc.data
    fridge_id = _text(
        data.get("fridgeId"), fridge_id_from_collection(doc.collection)
    )
    return ShoppingEntry(
        id=doc.id,
        fridge_id=fridge_id,
        fridge_name=_text(data.get("fridgeName"), fallback_fridge_name(fridge_id)),
        name=_text(data.get("name"), "-"),
        qty=to_float(data.get("qty")),
        unit=_text(data.get("unit"), DEFAULT_UNIT),
        status=_text(data.get("status"), "pending"),
        source=_text(data.get("source"), "fridge"),
        from_stock_id=_optional_text(data.get("fromStockId")),
        expire_date=parse_datetime(data.get("expireDate")),
        target_expire_date=parse_datetime(data.get("targetExpireDate")),
        low_threshold=to_float(data.get("lowThreshold")),
        barcode=_text(data.get("barcode")),
        by_uid=_optional_text(data.get("byUid")),
        created_at=parse_datetime(data.get("createdAt")),
        updated_at=parse_datetime(data.get("updatedAt")),
    )


def member_display_name(user_id: str) -> str:
    """Fallback name for an actor without a profile."""
    return f"Member {user_id[-4:].upper()}" if user_id else "Unknown member"
