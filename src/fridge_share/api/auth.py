"""Bearer-token authentication for API routes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import Header, HTTPException, Request, status

from fridge_share.domain.models import UserProfile  # noqa: TC001

if TYPE_CHECKING:
    from fridge_share.containers import AppContainer

_logger = logging.getLogger(__name__)


async def current_profile(
    request: Request, authorization: str | None = Header(default=None)
) -> UserProfile:
    """Resolve the caller from ``Authorization: Bearer <token>``.

    The profile is created on the caller's first request.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or malformed authorization header",
        )
    container: AppContainer = request.app.state.container
    user = await container.auth_client.verify_token(
        authorization.removeprefix("Bearer ").strip()
    )
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return await container.profile_service.ensure_profile(user)
