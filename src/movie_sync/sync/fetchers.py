"""Authoritative reads that refresh the entity store."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from attrs import define, field

from ..config import SyncTimings
from ..errors import RateLimitedError, SyncError, UnauthenticatedError
from ..models.movie import MovieSummary
from ..models.social import Comment, Notification
from ..models.user import UserIdentity, UserStats
from ..services.backend import BackendService
from . import resources
from .backoff import BackoffTracker
from .calls import bounded
from .guard import DebounceWindow, SingleFlightGuard
from .store import EntityStore

logger = logging.getLogger(__name__)


@define
class ResourceFetchers:
    """Fetches watchlist, likes, statistics, profile, comments and notifications.

    Each fetch goes through the single-flight guard and the backoff tracker
    for its resource class. A failed refresh keeps the data already held and
    marks the slice stale; an unauthenticated failure calls
    ``on_unauthenticated`` so the session can be torn down.
    """

    backend: BackendService
    store: EntityStore
    backoff: BackoffTracker
    guard: SingleFlightGuard
    timings: SyncTimings = field(factory=SyncTimings)
    debounce: dict[str, DebounceWindow] = field(factory=dict)
    on_unauthenticated: Callable[[], None] | None = None

    def __attrs_post_init__(self) -> None:
        self.debounce.setdefault(
            resources.NOTIFICATIONS,
            DebounceWindow(window=self.timings.notifications_debounce),
        )
        self.debounce.setdefault(
            resources.COMMENTS, DebounceWindow(window=self.timings.comments_debounce)
        )

    async def _fetch(
        self,
        resource: str,
        call: Callable[[], Awaitable[Any]],
        apply: Callable[[Any], None],
        current: Callable[[], Any],
        min_interval: float | None = None,
    ) -> Any:
        """Run one guarded, spaced fetch and apply its result if still relevant."""
        session_id = self.store.session_id
        if not self.guard.try_enter(resource, session_id):
            logger.debug(f"Skipping {resource} fetch, one is already in flight")
            return current()
        try:
            await self.backoff.wait_if_needed(
                resource,
                self.timings.min_interval if min_interval is None else min_interval,
            )
            if self.store.session_id != session_id:
                return current()
            self.backoff.record_attempt(resource)
            try:
                result = await bounded(call(), self.timings.request_timeout)
            except RateLimitedError as e:
                if self.store.session_id == session_id:
                    self.backoff.penalize(resource, self.timings.rate_limit_penalty, e.retry_after)
                    self.store.stale.add(resource)
                return current()
            except UnauthenticatedError:
                logger.warning(f"{resource} fetch rejected, session is no longer valid")
                self._expire(session_id)
                return current()
            except SyncError as e:
                logger.warning(f"{resource} refresh failed, data may be stale: {e}")
                if self.store.session_id == session_id:
                    self.store.stale.add(resource)
                return current()

            if self.store.session_id != session_id:
                logger.debug(f"Discarding {resource} result from an ended session")
                return current()
            if self.store.has_pending_mutations(resource):
                logger.info(f"Deferring {resource} refresh, a local change is still confirming")
                return current()
            apply(result)
            self.store.stale.discard(resource)
            return result
        finally:
            self.guard.release(resource, session_id)

    def _expire(self, session_id: str | None) -> None:
        if self.on_unauthenticated is not None and self.store.session_id == session_id:
            self.on_unauthenticated()

    async def fetch_watchlist(self) -> list[MovieSummary]:
        """Replace the watchlist with the backend's copy."""
        user = self.store.identity
        if user is None:
            return []
        movies = await self._fetch(
            resources.WATCHLIST,
            lambda: self.backend.get_watchlist(user.id),
            self.store.replace_watchlist,
            lambda: list(self.store.watchlist.values()),
        )
        logger.info(f"Watchlist holds {len(self.store.watchlist)} movie(s)")
        return movies

    async def fetch_likes(self) -> list[int]:
        """Replace the liked-movie set with the backend's copy."""
        user = self.store.identity
        if user is None:
            return []
        return await self._fetch(
            resources.LIKES,
            lambda: self.backend.get_likes(user.id),
            self.store.replace_likes,
            lambda: sorted(self.store.liked),
        )

    async def fetch_stats(self) -> UserStats | None:
        """Replace the statistics snapshot. The previous snapshot stays visible meanwhile."""
        user = self.store.identity
        if user is None:
            logger.debug("No user logged in, skipping stats fetch")
            return None
        if self.guard.is_in_flight(resources.STATS):
            return self.store.stats
        loading = self.store.loading
        loading.stats = True
        try:
            return await self._fetch(
                resources.STATS,
                lambda: self.backend.get_stats(user.id),
                self._apply_stats,
                lambda: self.store.stats,
            )
        finally:
            loading.stats = False

    def _apply_stats(self, stats: UserStats | None) -> None:
        if stats is not None:
            self.store.replace_stats(stats)

    async def fetch_profile(self) -> UserIdentity | None:
        """Replace the identity with the backend's current profile."""
        user = self.store.identity
        if user is None:
            return None
        return await self._fetch(
            resources.PROFILE,
            lambda: self.backend.get_user(user.id),
            self._apply_profile,
            lambda: self.store.identity,
        )

    def _apply_profile(self, profile: UserIdentity | None) -> None:
        if profile is not None:
            self.store.identity = profile

    async def fetch_comments(self, movie_id: int, force: bool = False) -> list[Comment]:
        """Load the comments of a movie, at most once per debounce window unless forced."""
        key = f"{resources.COMMENTS}:{movie_id}"
        window = self.debounce[resources.COMMENTS]
        if not force and (window.should_skip(key) or movie_id in self.store.comments):
            return self.store.comments.get(movie_id, [])
        user = self.store.identity

        def apply(comments: list[Comment]) -> None:
            window.mark(key)
            self.store.comments[movie_id] = comments

        return await self._fetch(
            key,
            lambda: self.backend.get_comments(movie_id, user.id if user else None),
            apply,
            lambda: self.store.comments.get(movie_id, []),
            min_interval=self.timings.comments_debounce,
        )

    async def fetch_notifications(self, force: bool = False) -> list[Notification]:
        """Load notifications, at most once per debounce window unless forced."""
        user = self.store.identity
        if user is None:
            return []
        window = self.debounce[resources.NOTIFICATIONS]
        if window.should_skip(resources.NOTIFICATIONS, force):
            return self.store.notifications
        return await self._fetch(
            resources.NOTIFICATIONS,
            lambda: self.backend.get_notifications(user.id),
            self._apply_notifications,
            lambda: self.store.notifications,
        )

    def _apply_notifications(self, notifications: list[Notification]) -> None:
        self.debounce[resources.NOTIFICATIONS].mark(resources.NOTIFICATIONS)
        self.store.notifications = notifications

    async def fetch_unread_count(self) -> int:
        user = self.store.identity
        if user is None:
            return 0
        return await self._fetch(
            f"{resources.NOTIFICATIONS}:unread",
            lambda: self.backend.get_unread_count(user.id),
            self._apply_unread_count,
            lambda: self.store.unread_count,
        )

    def _apply_unread_count(self, count: int) -> None:
        self.store.unread_count = count

    def reset(self) -> None:
        for window in self.debounce.values():
            window.reset()
