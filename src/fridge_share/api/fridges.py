"""Fridge, stock and shopping-list endpoints."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING, Literal

from fastapi import APIRouter, Depends, Request, status

from fridge_share.api.auth import current_profile
from fridge_share.api.schemas import (
    AddStockRequest,
    CreateFridgeRequest,
    GroupSelectionRequest,
    JoinFridgeRequest,
    RemoveQuantityRequest,
    RestockRequest,
    TransferOwnershipRequest,
    UpdateShoppingEntryRequest,
)
from fridge_share.domain.errors import NotFoundError
from fridge_share.domain.inventory import NewStockItem, RemovalResult
from fridge_share.domain.models import UserProfile  # noqa: TC001
from fridge_share.services.inventory import filter_groups, summarize_groups

if TYPE_CHECKING:
    from fridge_share.containers import AppContainer

router = APIRouter(prefix="/fridges", tags=["fridges"])


def _container(request: Request) -> AppContainer:
    return request.app.state.container


def _removals(results: list[RemovalResult]) -> dict[str, object]:
    return {
        "removed": [
            {**asdict(result), "deleted": result.deleted} for result in results
        ]
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_fridge(
    body: CreateFridgeRequest,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    """Create a fridge owned by the caller."""
    created = await _container(request).fridge_registry.create_fridge(
        profile.id, body.name
    )
    return asdict(created)


@router.post("/join")
async def join_fridge(
    body: JoinFridgeRequest,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    fridge_id = await _container(request).membership_ledger.join(
        profile.id, body.invite_code
    )
    return {"fridge_id": fridge_id}


@router.get("/{fridge_id}")
async def get_fridge(
    fridge_id: str, request: Request, profile: UserProfile = Depends(current_profile)
) -> dict[str, object]:
    """Return the fridge record, the caller's role and the member roster."""
    container = _container(request)
    membership = await container.membership_ledger.require_member(
        fridge_id, profile.id
    )
    fridge = await container.fridge_registry.get_fridge(fridge_id)
    if fridge is None:
        raise NotFoundError("Fridge not found.")
    members = await container.membership_ledger.list_members(fridge_id)
    return {
        "fridge": asdict(fridge),
        "role": membership.role,
        "members": [asdict(member) for member in members],
    }


@router.delete("/{fridge_id}")
async def delete_fridge(
    fridge_id: str, request: Request, profile: UserProfile = Depends(current_profile)
) -> dict[str, str]:
    await _container(request).fridge_registry.delete_fridge(profile.id, fridge_id)
    return {"status": "deleted"}


@router.delete("/{fridge_id}/membership")
async def leave_fridge(
    fridge_id: str, request: Request, profile: UserProfile = Depends(current_profile)
) -> dict[str, str]:
    await _container(request).membership_ledger.leave(profile.id, fridge_id)
    return {"status": "left"}


@router.put("/{fridge_id}/owner")
async def transfer_ownership(
    fridge_id: str,
    body: TransferOwnershipRequest,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, str]:
    await _container(request).membership_ledger.transfer_ownership(
        profile.id, fridge_id, body.new_owner_id
    )
    return {"status": "ok"}


@router.get("/{fridge_id}/stock")
async def list_stock(
    fridge_id: str,
    request: Request,
    view: Literal["all", "exp", "low"] = "all",
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    """Display groups of the fridge plus summary counters."""
    container = _container(request)
    await container.membership_ledger.require_member(fridge_id, profile.id)
    groups = await container.inventory_service.list_groups(fridge_id)
    return {
        "stats": asdict(summarize_groups(groups)),
        "groups": [asdict(group) for group in filter_groups(groups, view)],
    }


@router.post("/{fridge_id}/stock", status_code=status.HTTP_201_CREATED)
async def add_stock(
    fridge_id: str,
    body: AddStockRequest,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    item_id = await _container(request).inventory_service.add_item(
        fridge_id,
        profile.id,
        NewStockItem(
            name=body.name,
            qty=body.qty,
            unit=body.unit,
            expire_date=body.expire_date,
            barcode=body.barcode,
            low_threshold=body.low_threshold,
        ),
    )
    return {"item_id": item_id}


@router.post("/{fridge_id}/stock/{item_id}/remove")
async def remove_stock_quantity(
    fridge_id: str,
    item_id: str,
    body: RemoveQuantityRequest,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    result = await _container(request).inventory_service.remove_quantity(
        fridge_id, profile.id, item_id, body.amount
    )
    return _removals([result])


@router.delete("/{fridge_id}/stock/{item_id}")
async def remove_stock_item(
    fridge_id: str,
    item_id: str,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    result = await _container(request).inventory_service.remove_item(
        fridge_id, profile.id, item_id
    )
    return _removals([result])


@router.post("/{fridge_id}/groups/remove")
async def bulk_remove(
    fridge_id: str,
    body: GroupSelectionRequest,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    """Remove quantities from several display groups."""
    results = await _container(request).inventory_service.bulk_remove(
        fridge_id, profile.id, body.selections
    )
    return _removals(results)


@router.delete("/{fridge_id}/groups/{group_id}")
async def remove_group(
    fridge_id: str,
    group_id: str,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    results = await _container(request).inventory_service.remove_group(
        fridge_id, profile.id, group_id
    )
    return _removals(results)


@router.get("/{fridge_id}/history")
async def list_history(
    fridge_id: str,
    request: Request,
    limit: int | None = None,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    container = _container(request)
    await container.membership_ledger.require_member(fridge_id, profile.id)
    entries = await container.inventory_service.list_history(
        fridge_id, limit or container.settings.history_limit
    )
    return {"history": [asdict(entry) for entry in entries]}


@router.get("/{fridge_id}/shopping")
async def list_shopping(
    fridge_id: str, request: Request, profile: UserProfile = Depends(current_profile)
) -> dict[str, object]:
    container = _container(request)
    await container.membership_ledger.require_member(fridge_id, profile.id)
    entries = await container.shopping_service.list_entries(fridge_id)
    return {"entries": [asdict(entry) for entry in entries]}


@router.post("/{fridge_id}/shopping", status_code=status.HTTP_201_CREATED)
async def promote_to_shopping(
    fridge_id: str,
    body: GroupSelectionRequest,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    """Copy selected display groups onto the shopping list."""
    entry_ids = await _container(request).shopping_service.promote_to_shopping(
        fridge_id, profile.id, body.selections
    )
    return {"entry_ids": entry_ids}


@router.post("/{fridge_id}/shopping/restock", status_code=status.HTTP_201_CREATED)
async def seed_restock(
    fridge_id: str,
    body: RestockRequest,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    entry_id = await _container(request).shopping_service.seed_restock(
        fridge_id, profile.id, body.group_id, body.qty
    )
    return {"entry_id": entry_id}


@router.patch("/{fridge_id}/shopping/{entry_id}")
async def update_shopping_entry(
    fridge_id: str,
    entry_id: str,
    body: UpdateShoppingEntryRequest,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    shopping = _container(request).shopping_service
    response: dict[str, object] = {"entry_id": entry_id}
    if "target_expire_date" in body.model_fields_set:
        await shopping.set_target_expiry(
            fridge_id, profile.id, entry_id, body.target_expire_date
        )
        response["target_expire_date"] = body.target_expire_date
    if body.delta:
        response["qty"] = await shopping.adjust_quantity(
            fridge_id, profile.id, entry_id, body.delta
        )
    return response


@router.delete("/{fridge_id}/shopping/{entry_id}")
async def remove_shopping_entry(
    fridge_id: str,
    entry_id: str,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, str]:
    await _container(request).shopping_service.remove_entry(
        fridge_id, profile.id, entry_id
    )
    return {"status": "deleted"}


@router.post("/{fridge_id}/shopping/{entry_id}/purchase")
async def mark_purchased(
    fridge_id: str,
    entry_id: str,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    """Move a bought entry into stock."""
    item_id = await _container(request).shopping_service.mark_purchased(
        fridge_id, profile.id, entry_id
    )
    return {"item_id": item_id}
