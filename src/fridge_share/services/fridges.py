"""Fridge registry and invite codes."""

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field

from fridge_share.domain.documents import SERVER_TIMESTAMP, FieldFilter, WriteBatch
from fridge_share.domain.errors import (
    CodeGenerationExhaustedError,
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from fridge_share.domain.models import CreatedFridge, Fridge, Role
from fridge_share.services.documents import (
    FRIDGES,
    fridge_path,
    invite_code_path,
    member_path,
    members_collection,
    membership_path,
    new_id,
    parse_fridge,
    parse_profile,
    shopping_collection,
    stock_collection,
    user_path,
)
from fridge_share.services.store import DocumentStore

# No 0/O or 1/I: codes are read aloud and typed by hand.
INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

_logger = logging.getLogger(__name__)


def generate_invite_code(length: int) -> str:
    """Return a random invite code drawn from the unambiguous alphabet."""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def normalize_invite_code(raw: str | None) -> str:
    """Trim and upper-case a user-typed invite code."""
    return (raw or "").strip().upper()


@dataclass
class FridgeRegistry:
    """Creates, resolves and deletes fridges."""

    store: DocumentStore
    code_length: int = 6
    max_code_attempts: int = 5
    default_name: str = "My fridge"
    code_generator: Callable[[int], str] = field(default=generate_invite_code)

    async def create_fridge(self, owner_uid: str, name: str | None) -> CreatedFridge:
        """Create a fridge owned by ``owner_uid`` and return its invite code.

        The fridge record, both owner mirrors and the invite-code index entry
        are written in one atomic batch. A code taken between probe and commit
        fails the ``create`` on the index entry and is retried like a probe
        collision.
        """
        fridge_name = (name or "").strip() or self.default_name
        fridge_id = new_id()
        profile_doc = await self.store.get(user_path(owner_uid))
        has_current = bool(
            profile_doc and parse_profile(profile_doc).current_fridge_id
        )

        for attempt in range(1, self.max_code_attempts + 1):
            code = self.code_generator(self.code_length)
            if await self.store.get(invite_code_path(code)) is not None:
                _logger.info("Invite code collision on attempt %s", attempt)
                continue
            batch = WriteBatch()
            batch.create(
                fridge_path(fridge_id),
                {
                    "name": fridge_name,
                    "ownerUid": owner_uid,
                    "inviteCode": code,
                    "createdAt": SERVER_TIMESTAMP,
                },
            )
            batch.set(
                member_path(fridge_id, owner_uid),
                {"role": Role.OWNER.value, "joinedAt": SERVER_TIMESTAMP},
            )
            batch.set(
                membership_path(owner_uid, fridge_id),
                {"role": Role.OWNER.value, "addedAt": SERVER_TIMESTAMP},
            )
            batch.create(
                invite_code_path(code),
                {"fridgeId": fridge_id, "createdAt": SERVER_TIMESTAMP},
            )
            if not has_current:
                batch.set(
                    user_path(owner_uid), {"currentFridgeId": fridge_id}, merge=True
                )
            try:
                await self.store.commit(batch)
            except ConflictError:
                _logger.info("Invite code %s taken during commit, retrying", code)
                continue
            _logger.info("Created fridge %s for owner %s", fridge_id, owner_uid)
            return CreatedFridge(fridge_id=fridge_id, invite_code=code)

        raise CodeGenerationExhaustedError(
            "Could not generate a unique invite code. Please try again."
        )

    async def get_fridge(self, fridge_id: str) -> Fridge | None:
        """Return a fridge by id, if present."""
        doc = await self.store.get(fridge_path(fridge_id))
        return parse_fridge(doc) if doc else None

    async def resolve_invite_code(self, raw_code: str | None) -> Fridge:
        """Resolve an invite code to its fridge."""
        code = normalize_invite_code(raw_code)
        if not code:
            raise InvalidInputError("Invite code is required.")

        index = await self.store.get(invite_code_path(code))
        fridge_id = index.data.get("fridgeId") if index else None
        if isinstance(fridge_id, str) and fridge_id:
            fridge = await self.get_fridge(fridge_id)
            if fridge is not None:
                return fridge

        # Fridges created before the index existed are only reachable by query.
        matches = await self.store.list(
            FRIDGES, filters=[FieldFilter("inviteCode", code)], limit=1
        )
        if matches:
            return parse_fridge(matches[0])
        raise NotFoundError("We couldn't find a fridge with that invite code.")

    async def delete_fridge(self, actor_id: str, fridge_id: str) -> None:
        """Delete a fridge and everything hanging off it. Owner only."""
        fridge = await self.get_fridge(fridge_id)
        if fridge is None:
            raise NotFoundError("Fridge not found.")
        if fridge.owner_uid != actor_id:
            raise ForbiddenError("Only the owner can delete this fridge.")

        batch = WriteBatch()
        members = await self.store.list(members_collection(fridge_id))
        for member in members:
            batch.delete(member_path(fridge_id, member.id))
            batch.delete(membership_path(member.id, fridge_id))
            profile_doc = await self.store.get(user_path(member.id))
            if (
                profile_doc
                and parse_profile(profile_doc).current_fridge_id == fridge_id
            ):
                batch.set(user_path(member.id), {"currentFridgeId": None}, merge=True)
        await self.add_teardown(batch, fridge)
        await self.store.commit(batch)
        _logger.info(
            "Deleted fridge %s with %s member(s)", fridge_id, len(members)
        )

    async def add_teardown(self, batch: WriteBatch, fridge: Fridge) -> None:
        """Queue deletion of a fridge's stock, shopping, code index and record.

        History entries are an audit trail and are left in place.
        """
        for doc in await self.store.list(stock_collection(fridge.id)):
            batch.delete(doc.path)
        for doc in await self.store.list(shopping_collection(fridge.id)):
            batch.delete(doc.path)
        if fridge.invite_code:
            index = await self.store.get(invite_code_path(fridge.invite_code))
            if index is not None and index.data.get("fridgeId") == fridge.id:
                batch.delete(index.path)
        batch.delete(fridge_path(fridge.id))
