"""Supabase-backed authentication client."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from supabase import AsyncClient

from fridge_share.domain.errors import TransientError
from fridge_share.domain.models import AuthUser

SessionCallback = Callable[[AuthUser | None], None]

_logger = logging.getLogger(__name__)


class AuthClient(Protocol):
    """Interface for the identity provider."""

    async def verify_token(self, access_token: str) -> AuthUser | None:
        """Return the user behind an access token, or None when invalid."""

    async def current_user(self) -> AuthUser | None:
        """Return the user of the client's own session, if signed in."""

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        """Call ``callback`` on sign-in, sign-out and user switch.

        Returns a function that removes the callback.
        """

    async def sign_out(self) -> None:
        """End the client's own session."""


def _auth_user(user: object) -> AuthUser | None:
    user_id = getattr(user, "id", None)
    if not user_id:
        return None
    metadata = getattr(user, "user_metadata", None) or {}
    display_name = metadata.get("display_name") or metadata.get("full_name")
    return AuthUser(
        id=str(user_id),
        email=getattr(user, "email", None),
        display_name=display_name if isinstance(display_name, str) else None,
    )


@dataclass
class SupabaseAuthClient(AuthClient):
    """Supabase Auth implementation."""

    client: AsyncClient

    async def verify_token(self, access_token: str) -> AuthUser | None:
        try:
            response = await self.client.auth.get_user(access_token)
        except Exception as exc:  # noqa: BLE001
            _logger.warning("Token validation failed: %s", exc)
            return None
        if not response or not response.user:
            return None
        return _auth_user(response.user)

    async def current_user(self) -> AuthUser | None:
        try:
            session = await self.client.auth.get_session()
        except Exception as exc:
            raise TransientError("Could not reach the sign-in service.") from exc
        if session is None:
            return None
        return _auth_user(session.user)

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        def handle(event: str, session: object) -> None:
            user = getattr(session, "user", None) if session else None
            _logger.info("Auth event %s", event)
            callback(_auth_user(user) if user else None)

        subscription = self.client.auth.on_auth_state_change(handle)
        return subscription.unsubscribe

    async def sign_out(self) -> None:
        await self.client.auth.sign_out()
