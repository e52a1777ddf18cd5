"""Small TTL cache for external lookups."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Cache(Protocol):
    """Key-value cache with per-entry expiry."""

    def get(self, key: str) -> object | None:
        """Return a live value, or None when missing or expired."""

    def set(self, key: str, value: object, ttl_seconds: int) -> None:
        """Store ``value`` for ``ttl_seconds``."""


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class InMemoryCache(Cache):
    """Process-local cache; expired entries are dropped when read."""

    clock: Callable[[], datetime] = field(default=_utc_now)
    _entries: dict[str, tuple[object, datetime]] = field(
        default_factory=dict, init=False, repr=False
    )

    def get(self, key: str) -> object | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self.clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: object, ttl_seconds: int) -> None:
        self._entries[key] = (value, self.clock() + timedelta(seconds=ttl_seconds))

    def __len__(self) -> int:
        return len(self._entries)
