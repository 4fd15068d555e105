"""Authentication state and session lifecycle."""

import enum
import logging
import uuid
from collections.abc import Awaitable, Callable

from attrs import define, field

from ..config import SyncTimings
from ..errors import RateLimitedError, SyncError
from ..models.user import UserIdentity
from ..services.backend import BackendService
from ..services.identity import IdentityProvider
from . import resources
from .backoff import BackoffTracker
from .bootstrap import StagedBootstrap
from .calls import bounded
from .scheduler import SessionScheduler
from .store import EntityStore

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    UNKNOWN = "unknown"
    VERIFYING = "verifying"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


@define
class SessionReconciler:
    """Decides whether a user is logged in and owns the session's lifetime.

    Verification combines the identity provider's token (or the backend
    session cookie) with a backend-confirmed profile. Only one verification
    runs at a time; triggers arriving meanwhile are dropped. A rate-limited
    verification leaves the state alone so it can be retried; any other
    failure deauthenticates. Every path out of a session goes through
    ``clear``, which resets all per-user state synchronously.
    """

    backend: BackendService
    store: EntityStore
    scheduler: SessionScheduler
    bootstrap: StagedBootstrap
    backoff: BackoffTracker
    timings: SyncTimings = field(factory=SyncTimings)
    identity_provider: IdentityProvider | None = None
    resets: list[Callable[[], None]] = field(factory=list)
    state: SessionState = SessionState.UNKNOWN
    _verifying: bool = False

    @property
    def is_verifying(self) -> bool:
        return self._verifying

    async def on_identity_token(self, token: str | None) -> SessionState:
        """React to the identity provider reporting a token (or its absence)."""
        if token is None:
            if self.state is not SessionState.ANONYMOUS or self.store.identity is not None:
                logger.info("Identity provider reports no user")
                self.clear()
            return self.state
        return await self._verify(lambda: self.backend.verify_session(token))

    async def sync_identity_provider(self) -> SessionState:
        """Pull the current token from the identity provider and reconcile."""
        if self.identity_provider is None:
            return self.state
        token = await self.identity_provider.get_token()
        return await self.on_identity_token(token)

    async def check_backend_session(self) -> SessionState:
        """Probe the backend session cookie when nothing else has identified the user."""
        if self.state is SessionState.AUTHENTICATED:
            return self.state
        return await self._verify(self.backend.get_current_user)

    async def _verify(self, call: Callable[[], Awaitable[UserIdentity | None]]) -> SessionState:
        if self._verifying:
            logger.info("Skipping verification, one is already running")
            return self.state

        self._verifying = True
        previous = self.state
        self.state = SessionState.VERIFYING
        try:
            await self.backoff.wait_if_needed(resources.SESSION, self.timings.min_interval)
            self.backoff.record_attempt(resources.SESSION)
            user = await bounded(call(), self.timings.request_timeout)
        except RateLimitedError as e:
            logger.warning("Verification rate limited, will retry later")
            self.backoff.penalize(resources.SESSION, self.timings.rate_limit_penalty, e.retry_after)
            self.state = previous
            return self.state
        except SyncError as e:
            logger.warning(f"Verification failed: {e}")
            self.clear()
            return self.state
        finally:
            self._verifying = False

        if user is None:
            logger.warning("Backend returned no profile")
            self.clear()
            return self.state
        self._establish(user)
        return self.state

    async def login(self, email: str, password: str) -> UserIdentity:
        """Log in with credentials. Raises on failure."""
        try:
            user = await bounded(
                self.backend.login(email, password), self.timings.request_timeout
            )
        except SyncError as e:
            logger.error(f"Login failed: {e}")
            raise
        if user is None:
            raise SyncError("Invalid login response")
        self._establish(user)
        return user

    def _establish(self, user: UserIdentity) -> None:
        current = self.store.identity
        if current is not None and current.id == user.id and self.store.session_id:
            self.store.identity = user
            self.state = SessionState.AUTHENTICATED
            return

        if current is not None:
            self.clear()
        session_id = uuid.uuid4().hex
        self.store.identity = user
        self.store.session_id = session_id
        self.state = SessionState.AUTHENTICATED
        logger.info(f"User {user.id} authenticated, starting data fetch in {self.timings.settle_delay:.0f}s")
        self.scheduler.schedule(
            session_id, self.timings.settle_delay, self.bootstrap.start, key="bootstrap:start"
        )

    def clear(self) -> None:
        """Drop the identity and all per-user state in one synchronous step."""
        self.scheduler.cancel_session(self.store.session_id)
        self.store.clear()
        self.backoff.reset()
        for reset in self.resets:
            reset()
        self.state = SessionState.ANONYMOUS

    async def logout(self) -> None:
        """Clear local state first, then end the remote sessions."""
        logger.info("Logging out")
        self.clear()
        try:
            if self.identity_provider is not None:
                await self.identity_provider.sign_out()
            await bounded(self.backend.sign_out(), self.timings.request_timeout)
        except SyncError as e:
            logger.warning(f"Error during remote sign-out: {e}")
            raise
