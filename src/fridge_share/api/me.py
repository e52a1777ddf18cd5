"""Endpoints scoped to the signed-in user."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from sse_starlette.sse import EventSourceResponse

from fridge_share.api.auth import current_profile
from fridge_share.api.schemas import CurrentFridgeRequest, UpdateProfileRequest
from fridge_share.domain.models import UserProfile  # noqa: TC001
from fridge_share.services.inventory import summarize_groups
from fridge_share.services.live import LiveChange, LiveSession

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fridge_share.containers import AppContainer

router = APIRouter(prefix="/me", tags=["me"])

_logger = logging.getLogger(__name__)


def _container(request: Request) -> AppContainer:
    return request.app.state.container


@router.get("")
async def get_me(
    request: Request, profile: UserProfile = Depends(current_profile)
) -> dict[str, object]:
    """Profile plus every fridge the caller belongs to."""
    container = _container(request)
    fridges: list[dict[str, object]] = []
    for membership in await container.membership_ledger.list_memberships(profile.id):
        fridge = await container.fridge_registry.get_fridge(membership.fridge_id)
        fridges.append(
            {
                "fridge_id": membership.fridge_id,
                "name": fridge.name if fridge else None,
                "role": membership.role,
                "missing": fridge is None,
            }
        )
    return {"profile": asdict(profile), "fridges": fridges}


@router.patch("")
async def update_me(
    body: UpdateProfileRequest,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    updated = await _container(request).profile_service.update_profile(
        profile.id, body.display_name
    )
    return {"profile": asdict(updated)}


@router.put("/current-fridge")
async def set_current_fridge(
    body: CurrentFridgeRequest,
    request: Request,
    profile: UserProfile = Depends(current_profile),
) -> dict[str, object]:
    await _container(request).membership_ledger.set_current_fridge(
        profile.id, body.fridge_id
    )
    return {"current_fridge_id": body.fridge_id or None}


@router.get("/shopping-candidates")
async def shopping_candidates(
    request: Request, profile: UserProfile = Depends(current_profile)
) -> dict[str, object]:
    """Low or soon-expiring stock across all of the caller's fridges."""
    candidates, summary = await _container(
        request
    ).shopping_service.candidates_for_user(profile.id)
    return {
        "summary": asdict(summary),
        "candidates": [asdict(candidate) for candidate in candidates],
    }


def live_event(session: LiveSession, change: LiveChange) -> dict[str, str]:
    """Render a change as a server-sent event carrying the replaced state."""
    payload: dict[str, object] = {"fridge_id": change.fridge_id}
    state = session.fridge(change.fridge_id) if change.fridge_id else None
    if change.kind == "error":
        payload["message"] = change.message
    elif change.kind == "profile":
        payload["profile"] = asdict(session.profile) if session.profile else None
    elif change.kind == "memberships":
        payload["memberships"] = [
            asdict(membership) for membership in session.memberships.values()
        ]
    elif state is not None and change.kind == "stock":
        groups = session.groups(change.fridge_id or "")
        payload["stats"] = asdict(summarize_groups(groups))
        payload["groups"] = [asdict(group) for group in groups]
    elif state is not None and change.kind == "fridge":
        payload["fridge"] = asdict(state.fridge) if state.fridge else None
    elif state is not None:
        payload[change.kind] = [asdict(item) for item in getattr(state, change.kind)]
    return {"event": change.kind, "data": json.dumps(jsonable_encoder(payload))}


@router.get("/live")
async def live_updates(
    request: Request, profile: UserProfile = Depends(current_profile)
) -> EventSourceResponse:
    """Stream state changes of the caller's fridges as server-sent events."""
    container = _container(request)
    session = LiveSession(
        container.store, profile.id, history_limit=container.settings.history_limit
    )

    async def event_generator() -> AsyncIterator[dict[str, str]]:
        try:
            changes = session.changes()
            session.start()
            async for change in changes:
                yield live_event(session, change)
        finally:
            session.close()
            _logger.info("Live stream for %s ended", profile.id)

    return EventSourceResponse(event_generator())
