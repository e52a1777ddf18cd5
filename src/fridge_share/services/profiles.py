"""User profile lifecycle."""

import logging
from dataclasses import dataclass

from fridge_share.domain.documents import SERVER_TIMESTAMP, WriteBatch
from fridge_share.domain.errors import InvalidInputError, NotFoundError
from fridge_share.domain.models import AuthUser, UserProfile
from fridge_share.services.documents import (
    member_display_name,
    parse_profile,
    user_path,
)
from fridge_share.services.store import DocumentStore

_logger = logging.getLogger(__name__)


def default_display_name(email: str | None, fallback: str = "New member") -> str:
    """Derive a display name from the local part of an e-mail address."""
    if isinstance(email, str) and "@" in email:
        return email.split("@")[0] or fallback
    return fallback


@dataclass
class ProfileService:
    """Application service for user profiles."""

    store: DocumentStore

    async def ensure_profile(self, user: AuthUser) -> UserProfile:
        """Return the user's profile, creating it on first sign-in."""
        existing = await self.store.get(user_path(user.id))
        if existing is not None:
            return parse_profile(existing)

        display_name = (user.display_name or "").strip() or default_display_name(
            user.email
        )
        batch = WriteBatch().set(
            user_path(user.id),
            {
                "displayName": display_name,
                "email": user.email or "",
                "currentFridgeId": None,
                "createdAt": SERVER_TIMESTAMP,
            },
        )
        await self.store.commit(batch)
        _logger.info("Created profile for user %s", user.id)
        created = await self.store.get(user_path(user.id))
        if created is None:
            raise NotFoundError("Profile could not be created.")
        return parse_profile(created)

    async def get_profile(self, user_id: str) -> UserProfile | None:
        """Return a profile by user id, if present."""
        doc = await self.store.get(user_path(user_id))
        return parse_profile(doc) if doc else None

    async def update_profile(self, user_id: str, display_name: str) -> UserProfile:
        """Change the user's display name."""
        cleaned = (display_name or "").strip()
        if not cleaned:
            raise InvalidInputError("Display name is required.")
        if await self.store.get(user_path(user_id)) is None:
            raise NotFoundError("Profile not found.")
        await self.store.commit(
            WriteBatch().update(user_path(user_id), {"displayName": cleaned})
        )
        profile = await self.get_profile(user_id)
        if profile is None:
            raise NotFoundError("Profile not found.")
        return profile

    async def display_name(self, user_id: str) -> str:
        """Name recorded on history entries written by ``user_id``."""
        profile = await self.get_profile(user_id)
        if profile and profile.display_name.strip():
            return profile.display_name.strip()
        return member_display_name(user_id)
