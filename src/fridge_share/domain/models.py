"""Domain models for users, fridges and memberships."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class Role(StrEnum):
    """Membership role of a user within a fridge."""

    OWNER = "owner"
    MEMBER = "member"


@dataclass(frozen=True)
class AuthUser:
    """Identity supplied by the authentication provider."""

    id: str
    email: str | None = None
    display_name: str | None = None


@dataclass(frozen=True)
class UserProfile:
    """Per-user profile record.

    ``current_fridge_id`` is a weak pointer; it does not imply membership.
    """

    id: str
    display_name: str
    email: str
    current_fridge_id: str | None
    created_at: datetime | None = None


@dataclass(frozen=True)
class Membership:
    """One side of the user/fridge membership relation."""

    user_id: str
    fridge_id: str
    role: Role
    joined_at: datetime | None = None


@dataclass(frozen=True)
class Fridge:
    """A shared inventory namespace."""

    id: str
    name: str
    owner_uid: str
    invite_code: str
    created_at: datetime | None = None


@dataclass(frozen=True)
class CreatedFridge:
    """Result of creating a fridge."""

    fridge_id: str
    invite_code: str


@dataclass(frozen=True)
class MirrorAnomaly:
    """A membership record whose mirror on the other side is missing."""

    user_id: str
    fridge_id: str
    missing_side: str
