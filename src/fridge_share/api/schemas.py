"""Request bodies for the HTTP API."""

from datetime import datetime

from pydantic import BaseModel, Field


class CreateFridgeRequest(BaseModel):
    name: str | None = None


class JoinFridgeRequest(BaseModel):
    invite_code: str


class CurrentFridgeRequest(BaseModel):
    fridge_id: str | None = None


class UpdateProfileRequest(BaseModel):
    display_name: str


class TransferOwnershipRequest(BaseModel):
    new_owner_id: str


class AddStockRequest(BaseModel):
    name: str
    qty: float
    unit: str | None = None
    expire_date: datetime | None = None
    barcode: str | None = None
    low_threshold: float = 0


class RemoveQuantityRequest(BaseModel):
    amount: float


class GroupSelectionRequest(BaseModel):
    """Quantities keyed by display group id."""

    selections: dict[str, float] = Field(default_factory=dict)


class RestockRequest(BaseModel):
    group_id: str
    qty: float | None = None


class UpdateShoppingEntryRequest(BaseModel):
    """Partial update; only fields present in the body are applied."""

    target_expire_date: datetime | None = None
    delta: float | None = None
