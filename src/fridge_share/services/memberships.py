"""Membership ledger: joining, leaving and selecting fridges.

Memberships are mirrored under ``users/{uid}/memberships/{fridgeId}`` and
``fridges/{fridgeId}/members/{uid}``. Every operation here writes both mirrors
(and the profile's current-fridge pointer when it changes) in one batch.
"""

import logging
from dataclasses import dataclass

from fridge_share.domain.documents import SERVER_TIMESTAMP, WriteBatch
from fridge_share.domain.errors import (
    AlreadyMemberError,
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    NotMemberError,
    OwnershipTransferRequiredError,
)
from fridge_share.domain.models import Membership, MirrorAnomaly, Role
from fridge_share.services.documents import (
    fridge_path,
    member_path,
    members_collection,
    membership_path,
    memberships_collection,
    parse_fridge_member,
    parse_profile,
    parse_user_membership,
    user_path,
)
from fridge_share.services.fridges import FridgeRegistry
from fridge_share.services.store import DocumentStore

_logger = logging.getLogger(__name__)


@dataclass
class MembershipLedger:
    """Application service for the user/fridge membership relation."""

    store: DocumentStore
    registry: FridgeRegistry

    async def join(self, user_id: str, invite_code: str | None) -> str:
        """Join the fridge behind ``invite_code`` and return its id."""
        fridge = await self.registry.resolve_invite_code(invite_code)
        if await self.get_membership(user_id, fridge.id) is not None:
            raise AlreadyMemberError("You're already a member of this fridge.")

        batch = WriteBatch()
        # Both mirrors use create() so an existing entry on either side, from a
        # concurrent join or a stale mirror, fails the whole batch.
        batch.create(
            member_path(fridge.id, user_id),
            {"role": Role.MEMBER.value, "joinedAt": SERVER_TIMESTAMP},
        )
        batch.create(
            membership_path(user_id, fridge.id),
            {"role": Role.MEMBER.value, "addedAt": SERVER_TIMESTAMP},
        )
        if not await self._current_fridge_id(user_id):
            batch.set(user_path(user_id), {"currentFridgeId": fridge.id}, merge=True)
        try:
            await self.store.commit(batch)
        except ConflictError as exc:
            raise AlreadyMemberError(
                "You're already a member of this fridge."
            ) from exc
        _logger.info("User %s joined fridge %s", user_id, fridge.id)
        return fridge.id

    async def leave(self, user_id: str, fridge_id: str | None) -> None:
        """Leave a fridge, tearing it down when the sole owner leaves."""
        if not fridge_id:
            raise InvalidInputError("A fridge ID is required.")

        membership = await self.get_membership(user_id, fridge_id)
        fridge = await self.registry.get_fridge(fridge_id)
        current_fridge_id = await self._current_fridge_id(user_id)

        if fridge is None:
            # Dangling membership: the fridge was deleted elsewhere. Clean up
            # whatever is left so a retry also succeeds.
            batch = WriteBatch()
            batch.delete(membership_path(user_id, fridge_id))
            batch.delete(member_path(fridge_id, user_id))
            if current_fridge_id == fridge_id:
                batch.set(user_path(user_id), {"currentFridgeId": None}, merge=True)
            await self.store.commit(batch)
            _logger.info(
                "Cleaned dangling membership of %s in %s", user_id, fridge_id
            )
            return

        if membership is None:
            raise NotMemberError("You are not a member of this fridge.")

        is_owner = fridge.owner_uid == user_id
        member_count = len(await self.store.list(members_collection(fridge_id)))
        if is_owner and member_count > 1:
            raise OwnershipTransferRequiredError(
                "Transfer ownership to another member before leaving this fridge."
            )

        batch = WriteBatch()
        batch.delete(member_path(fridge_id, user_id))
        batch.delete(membership_path(user_id, fridge_id))
        if is_owner:
            await self.registry.add_teardown(batch, fridge)
            batch.set(user_path(user_id), {"currentFridgeId": None}, merge=True)
        elif current_fridge_id == fridge_id:
            batch.set(user_path(user_id), {"currentFridgeId": None}, merge=True)
        await self.store.commit(batch)
        _logger.info(
            "User %s left fridge %s%s",
            user_id,
            fridge_id,
            " (deleted)" if is_owner else "",
        )

    async def set_current_fridge(self, user_id: str, fridge_id: str | None) -> None:
        """Point the user's profile at a fridge they belong to, or clear it."""
        if not fridge_id:
            await self.store.commit(
                WriteBatch().set(
                    user_path(user_id), {"currentFridgeId": None}, merge=True
                )
            )
            return
        if await self.get_membership(user_id, fridge_id) is None:
            raise NotMemberError("Join this fridge before setting it as current.")
        await self.store.commit(
            WriteBatch().set(
                user_path(user_id), {"currentFridgeId": fridge_id}, merge=True
            )
        )

    async def transfer_ownership(
        self, owner_id: str, fridge_id: str, new_owner_id: str
    ) -> None:
        """Hand a fridge over to another member."""
        fridge = await self.registry.get_fridge(fridge_id)
        if fridge is None:
            raise NotFoundError("Fridge not found.")
        if fridge.owner_uid != owner_id:
            raise ForbiddenError("Only the owner can transfer ownership.")
        if new_owner_id == owner_id:
            raise InvalidInputError("You already own this fridge.")
        if await self.store.get(member_path(fridge_id, new_owner_id)) is None:
            raise NotMemberError("The new owner must be a member of this fridge.")

        batch = WriteBatch()
        batch.update(
            fridge_path(fridge_id),
            {"ownerUid": new_owner_id},
            precondition={"ownerUid": owner_id},
        )
        for uid, role in ((new_owner_id, Role.OWNER), (owner_id, Role.MEMBER)):
            batch.set(member_path(fridge_id, uid), {"role": role.value}, merge=True)
            batch.set(membership_path(uid, fridge_id), {"role": role.value}, merge=True)
        await self.store.commit(batch)
        _logger.info(
            "Fridge %s ownership moved from %s to %s", fridge_id, owner_id, new_owner_id
        )

    async def get_membership(self, user_id: str, fridge_id: str) -> Membership | None:
        """Return the user-side membership record, if present."""
        doc = await self.store.get(membership_path(user_id, fridge_id))
        return parse_user_membership(user_id, doc) if doc else None

    async def list_memberships(self, user_id: str) -> list[Membership]:
        """Return every fridge membership of a user."""
        docs = await self.store.list(memberships_collection(user_id))
        return [parse_user_membership(user_id, doc) for doc in docs]

    async def list_members(self, fridge_id: str) -> list[Membership]:
        """Return the member roster of a fridge."""
        docs = await self.store.list(members_collection(fridge_id))
        return [parse_fridge_member(fridge_id, doc) for doc in docs]

    async def require_member(self, fridge_id: str, user_id: str) -> Membership:
        """Return the actor's roster entry or raise ``ForbiddenError``."""
        doc = await self.store.get(member_path(fridge_id, user_id))
        if doc is None:
            raise ForbiddenError("Join this fridge first.")
        return parse_fridge_member(fridge_id, doc)

    async def find_mirror_anomalies(self, user_id: str) -> list[MirrorAnomaly]:
        """Report user-side memberships whose fridge-side mirror is missing."""
        anomalies: list[MirrorAnomaly] = []
        for membership in await self.list_memberships(user_id):
            mirror = await self.store.get(member_path(membership.fridge_id, user_id))
            if mirror is None:
                anomalies.append(
                    MirrorAnomaly(
                        user_id=user_id,
                        fridge_id=membership.fridge_id,
                        missing_side="fridge",
                    )
                )
        return anomalies

    async def find_roster_anomalies(self, fridge_id: str) -> list[MirrorAnomaly]:
        """Report roster entries whose user-side mirror is missing."""
        anomalies: list[MirrorAnomaly] = []
        for member in await self.list_members(fridge_id):
            mirror = await self.store.get(membership_path(member.user_id, fridge_id))
            if mirror is None:
                anomalies.append(
                    MirrorAnomaly(
                        user_id=member.user_id,
                        fridge_id=fridge_id,
                        missing_side="user",
                    )
                )
        return anomalies

    async def _current_fridge_id(self, user_id: str) -> str | None:
        doc = await self.store.get(user_path(user_id))
        return parse_profile(doc).current_fridge_id if doc else None
