"""Binds the identity provider's session to a live view."""

import asyncio
import logging
from collections.abc import Callable

from fridge_share.adapters.supabase_auth_client import AuthClient
from fridge_share.domain.models import AuthUser, UserProfile
from fridge_share.services.live import LiveSession
from fridge_share.services.profiles import ProfileService
from fridge_share.services.store import DocumentStore

_logger = logging.getLogger(__name__)


class SessionGateway:
    """Opens a ``LiveSession`` per signed-in user and tears it down on exit."""

    def __init__(
        self,
        auth: AuthClient,
        profiles: ProfileService,
        store: DocumentStore,
        session_factory: Callable[[DocumentStore, str], LiveSession] = LiveSession,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self.auth = auth
        self.profiles = profiles
        self.store = store
        self.session_factory = session_factory
        self.on_error = on_error
        self.session: LiveSession | None = None
        self.profile: UserProfile | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._generation = 0

    async def start(self) -> None:
        """Follow auth changes, starting with the current session."""
        if self._unsubscribe is None:
            self._unsubscribe = self.auth.on_session_change(self._on_auth_event)
        await self.handle_session(await self.auth.current_user())

    async def handle_session(self, user: AuthUser | None) -> None:
        """Switch the live view to ``user`` (None when signed out)."""
        if (
            user is not None
            and self.session is not None
            and self.session.user_id == user.id
            and not self.session.closed
        ):
            return
        self._close_session()
        if user is None:
            return
        generation = self._generation
        profile = await self.profiles.ensure_profile(user)
        if generation != self._generation:
            # Another auth change or sign-out happened during the bootstrap.
            _logger.info("Dropping stale session for user %s", user.id)
            return
        session = self.session_factory(self.store, user.id)
        session.start()
        self.session = session
        self.profile = profile
        _logger.info("Opened live session for user %s", user.id)

    async def sign_out(self) -> None:
        """Stop every subscription, then end the provider session."""
        self._close_session()
        await self.auth.sign_out()

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in list(self._pending):
            task.cancel()
        self._close_session()

    def _on_auth_event(self, user: AuthUser | None) -> None:
        # Tear down synchronously; only the profile bootstrap is deferred.
        current = self.session
        if current is not None and (user is None or user.id != current.user_id):
            self._close_session()
        task = asyncio.get_running_loop().create_task(self.handle_session(user))
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        _logger.error("Session switch failed: %s", exc)
        if self.on_error is not None and isinstance(exc, Exception):
            self.on_error(exc)

    def _close_session(self) -> None:
        self._generation += 1
        if self.session is not None:
            self.session.close()
        self.session = None
        self.profile = None
