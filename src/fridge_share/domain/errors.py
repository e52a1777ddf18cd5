"""Error taxonomy shared by every fridge operation."""

from dataclasses import dataclass


class FridgeError(Exception):
    """Base class for failures surfaced to callers.

    ``kind`` is a stable machine-readable identifier; ``str(error)`` is a short
    user-facing message.
    """

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(FridgeError):
    """Caller-supplied data failed validation before any write."""

    kind = "invalid_input"


class NotFoundError(FridgeError):
    """A referenced entity does not exist at read time."""

    kind = "not_found"


class ForbiddenError(FridgeError):
    """The actor lacks the membership or ownership the operation needs."""

    kind = "forbidden"


class AlreadyMemberError(FridgeError):
    kind = "already_member"


class NotMemberError(FridgeError):
    kind = "not_member"


class OwnershipTransferRequiredError(FridgeError):
    """An owner tried to leave a fridge that still has other members."""

    kind = "ownership_transfer_required"


@dataclass(frozen=True)
class Shortfall:
    """Requested versus available quantity for one display group."""

    group_id: str
    name: str
    requested: float
    available: float

    @property
    def missing(self) -> float:
        return self.requested - self.available


class InsufficientStockError(FridgeError):
    """A removal asked for more than one or more groups hold."""

    kind = "insufficient_stock"

    def __init__(self, shortfalls: list[Shortfall]) -> None:
        lines = [
            f"{item.name} (available {_fmt(item.available)}, "
            f"requested {_fmt(item.requested)})"
            for item in shortfalls
        ]
        super().__init__("Not enough stock: " + "; ".join(lines))
        self.shortfalls = shortfalls


class ExpiryRequiredError(FridgeError):
    kind = "expiry_required"


class CodeGenerationExhaustedError(FridgeError):
    kind = "code_generation_exhausted"


class NoValidSelectionError(FridgeError):
    kind = "no_valid_selection"


class TransientError(FridgeError):
    """The underlying store failed; the operation is safe to retry."""

    kind = "transient"


class ConflictError(TransientError):
    """A conditional write lost against a concurrent writer."""

    kind = "conflict"


def _fmt(value: float) -> str:
    return f"{value:g}"
