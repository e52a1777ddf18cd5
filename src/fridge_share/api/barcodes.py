"""Barcode prefill endpoint."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Request

from fridge_share.api.auth import current_profile
from fridge_share.domain.errors import NotFoundError

if TYPE_CHECKING:
    from fridge_share.containers import AppContainer

router = APIRouter(
    prefix="/barcodes", tags=["barcodes"], dependencies=[Depends(current_profile)]
)


@router.get("/{barcode}")
async def lookup_barcode(barcode: str, request: Request) -> dict[str, object]:
    """Return name and unit defaults for a scanned barcode."""
    container: AppContainer = request.app.state.container
    prefill = await container.barcode_service.lookup(barcode)
    if prefill is None:
        raise NotFoundError("We don't know this barcode yet.")
    return asdict(prefill)
