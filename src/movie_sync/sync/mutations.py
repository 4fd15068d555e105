"""Optimistic writes with snapshot rollback."""

import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from attrs import define, evolve, field

from ..config import SyncTimings
from ..errors import (
    ConflictError,
    MutationInFlightError,
    NotAuthenticatedError,
    RateLimitedError,
    SyncError,
    UnauthenticatedError,
)
from ..models.movie import MovieSummary
from ..models.user import UserIdentity
from ..services.backend import BackendService, format_image_url
from . import resources
from .backoff import BackoffTracker
from .calls import bounded
from .fetchers import ResourceFetchers
from .scheduler import SessionScheduler
from .store import EntityStore

logger = logging.getLogger(__name__)

LIKE_COUNT_FIELDS = ("likes_count", "like_count", "total_likes")


class MutationState(enum.Enum):
    IDLE = "idle"
    APPLYING = "applying"
    CONFIRMING = "confirming"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@define
class MutationEngine:
    """Applies user writes to the store first, then confirms them with the backend.

    Each write snapshots the single entry it touches before changing it, so
    a failed confirmation restores exactly that entry without undoing
    concurrent writes to other movies. Only one write per movie id and
    resource may be in flight; a second one is rejected before any network
    call. Successful writes schedule a confirmation refresh and a statistics
    refresh without awaiting them.
    """

    backend: BackendService
    store: EntityStore
    backoff: BackoffTracker
    fetchers: ResourceFetchers
    scheduler: SessionScheduler
    timings: SyncTimings = field(factory=SyncTimings)
    on_unauthenticated: Callable[[], None] | None = None

    def _require_user(self) -> UserIdentity:
        if self.store.identity is None or self.store.session_id is None:
            raise NotAuthenticatedError("User not authenticated")
        return self.store.identity

    def _claim(self, flags: dict[int, bool], movie_id: int, resource: str) -> None:
        if flags.get(movie_id):
            raise MutationInFlightError(f"A {resource} change for movie {movie_id} is already in flight")
        flags[movie_id] = True

    async def _confirm(
        self,
        resource: str,
        session_id: str,
        call: Callable[[], Awaitable[Any]],
        rollback: Callable[[], None],
        conflict_is_success: bool = False,
    ) -> Any:
        """Issue the remote write, rolling back through ``rollback`` on failure."""
        try:
            await self.backoff.wait_if_needed(resource, self.timings.min_interval)
            if self.store.session_id != session_id:
                raise NotAuthenticatedError("Session ended before the change was sent")
            self.backoff.record_attempt(resource)
            return await bounded(call(), self.timings.request_timeout)
        except ConflictError:
            if conflict_is_success:
                logger.info(f"{resource} entry already present on the backend")
                return None
            self._rollback(session_id, rollback)
            raise
        except RateLimitedError as e:
            if self.store.session_id == session_id:
                self.backoff.penalize(resource, self.timings.rate_limit_penalty, e.retry_after)
            self._rollback(session_id, rollback)
            raise
        except UnauthenticatedError:
            self._rollback(session_id, rollback)
            if self.on_unauthenticated is not None and self.store.session_id == session_id:
                self.on_unauthenticated()
            raise
        except SyncError as e:
            logger.error(f"{resource} change failed, rolling back: {e}")
            self._rollback(session_id, rollback)
            raise

    def _rollback(self, session_id: str, rollback: Callable[[], None]) -> None:
        if self.store.session_id == session_id:
            rollback()

    def _schedule_followups(
        self,
        session_id: str,
        refresh: Callable[[], Awaitable[object]] | None,
        refresh_key: str,
        stats_delay: float,
    ) -> None:
        if self.store.session_id != session_id:
            logger.debug("Session ended while confirming, skipping followup refreshes")
            return
        if refresh is not None:
            self.scheduler.schedule(
                session_id, self.timings.confirm_delay, refresh, key=f"confirm:{refresh_key}"
            )
        self.scheduler.schedule(
            session_id, stats_delay, self.fetchers.fetch_stats, key="confirm:stats"
        )

    async def add_to_watchlist(self, movie: MovieSummary) -> MutationState:
        """Add ``movie`` to the watchlist."""
        user = self._require_user()
        session_id = self.store.session_id
        flags = self.store.loading.watchlist
        self._claim(flags, movie.id, resources.WATCHLIST)
        try:
            previous = self.store.watchlist.get(movie.id)
            if previous is not None:
                logger.info(f"Movie {movie.id} already in watchlist locally")
                return MutationState.COMMITTED

            logger.debug(f"Watchlist add {movie.id}: {MutationState.APPLYING.value}")
            self.store.put_watchlist_entry(movie)
            await self._confirm(
                resources.WATCHLIST,
                session_id,
                lambda: self.backend.add_to_watchlist(user.id, movie),
                lambda: self.store.restore_watchlist_entry(movie.id, previous),
                conflict_is_success=True,
            )
            logger.info(f"Added movie {movie.id} ({movie.title}) to watchlist")
            self._schedule_followups(
                session_id,
                self.fetchers.fetch_watchlist,
                resources.WATCHLIST,
                self.timings.mutation_stats_delay,
            )
            return MutationState.COMMITTED
        finally:
            flags.pop(movie.id, None)

    async def remove_from_watchlist(self, movie_id: int) -> MutationState:
        """Remove a movie from the watchlist."""
        user = self._require_user()
        session_id = self.store.session_id
        flags = self.store.loading.watchlist
        self._claim(flags, movie_id, resources.WATCHLIST)
        try:
            previous = self.store.watchlist.get(movie_id)
            self.store.restore_watchlist_entry(movie_id, None)
            await self._confirm(
                resources.WATCHLIST,
                session_id,
                lambda: self.backend.remove_from_watchlist(user.id, movie_id),
                lambda: self.store.restore_watchlist_entry(movie_id, previous),
            )
            logger.info(f"Removed movie {movie_id} from watchlist")
            self._schedule_followups(
                session_id,
                self.fetchers.fetch_watchlist,
                resources.WATCHLIST,
                self.timings.mutation_stats_delay,
            )
            return MutationState.COMMITTED
        finally:
            flags.pop(movie_id, None)

    async def toggle_like(self, movie_id: int, movie: MovieSummary | None = None) -> bool:
        """Flip the like on a movie. Returns the new liked state."""
        user = self._require_user()
        session_id = self.store.session_id
        flags = self.store.loading.likes
        self._claim(flags, movie_id, resources.LIKES)
        try:
            snapshot = self.store.snapshot_like(movie_id)
            liked = not snapshot.liked
            self.store.apply_like(movie_id, liked)

            response = await self._confirm(
                resources.LIKES,
                session_id,
                (lambda: self.backend.like_movie(user.id, movie_id, movie))
                if liked
                else (lambda: self.backend.unlike_movie(user.id, movie_id)),
                lambda: self.store.restore_like(movie_id, snapshot),
                conflict_is_success=liked,
            )

            count = _like_count(response)
            if count is not None and self.store.session_id == session_id:
                self.store.like_counts[movie_id] = count
            logger.info(f"{'Liked' if liked else 'Unliked'} movie {movie_id}")
            self._schedule_followups(
                session_id,
                self.fetchers.fetch_likes,
                resources.LIKES,
                self.timings.mutation_stats_delay,
            )
            return liked
        finally:
            flags.pop(movie_id, None)

    async def add_comment(self, movie_id: int, text: str) -> None:
        """Post a comment, then reload the movie's comments."""
        user = self._require_user()
        session_id = self.store.session_id
        await self._confirm(
            resources.COMMENTS,
            session_id,
            lambda: self.backend.add_comment(movie_id, user.id, text),
            lambda: None,
        )
        self._schedule_followups(
            session_id, None, resources.COMMENTS, self.timings.comment_stats_delay
        )
        await self.fetchers.fetch_comments(movie_id, force=True)

    async def mark_notification_read(self, notification_id: int) -> None:
        """Mark a notification as read locally, then on the backend."""
        self._require_user()
        session_id = self.store.session_id
        index = next(
            (i for i, n in enumerate(self.store.notifications) if n.id == notification_id),
            None,
        )
        previous = self.store.notifications[index] if index is not None else None
        previous_unread = self.store.unread_count
        if previous is not None and not previous.read_status:
            self.store.notifications[index] = evolve(previous, read_status=True)
            self.store.unread_count = max(0, previous_unread - 1)

        def rollback() -> None:
            if previous is not None and index < len(self.store.notifications):
                self.store.notifications[index] = previous
            self.store.unread_count = previous_unread

        await self._confirm(
            resources.NOTIFICATIONS,
            session_id,
            lambda: self.backend.mark_notification_read(notification_id),
            rollback,
        )

    async def mark_all_notifications_read(self) -> None:
        user = self._require_user()
        session_id = self.store.session_id
        previous = list(self.store.notifications)
        previous_unread = self.store.unread_count
        self.store.notifications = [evolve(n, read_status=True) for n in previous]
        self.store.unread_count = 0

        def rollback() -> None:
            self.store.notifications = previous
            self.store.unread_count = previous_unread

        await self._confirm(
            resources.NOTIFICATIONS,
            session_id,
            lambda: self.backend.mark_all_notifications_read(user.id),
            rollback,
        )

    async def delete_notification(self, notification_id: int) -> None:
        """Remove a notification locally, then on the backend."""
        self._require_user()
        session_id = self.store.session_id
        previous = list(self.store.notifications)
        previous_unread = self.store.unread_count
        removed = next((n for n in previous if n.id == notification_id), None)
        self.store.notifications = [n for n in previous if n.id != notification_id]
        if removed is not None and not removed.read_status:
            self.store.unread_count = max(0, previous_unread - 1)

        def rollback() -> None:
            self.store.notifications = previous
            self.store.unread_count = previous_unread

        await self._confirm(
            resources.NOTIFICATIONS,
            session_id,
            lambda: self.backend.delete_notification(notification_id),
            rollback,
        )

    async def update_profile(self, fullname: str) -> UserIdentity:
        """Change the display name. The identity is replaced only after the backend accepts it."""
        user = self._require_user()
        session_id = self.store.session_id
        loading = self.store.loading
        loading.profile_update = True
        try:
            await self._confirm(
                resources.PROFILE,
                session_id,
                lambda: self.backend.update_user(user.id, fullname),
                lambda: None,
            )
            updated = evolve(user, fullname=fullname)
            if self.store.session_id == session_id:
                self.store.identity = updated
            return updated
        finally:
            loading.profile_update = False

    async def upload_profile_image(
        self, content: bytes, filename: str, content_type: str = "image/jpeg"
    ) -> UserIdentity:
        """Upload a new avatar, then reload the profile from the backend."""
        user = self._require_user()
        session_id = self.store.session_id
        loading = self.store.loading
        loading.profile_update = True
        try:
            response = await self._confirm(
                resources.PROFILE,
                session_id,
                lambda: self.backend.upload_profile_image(user.id, content, filename, content_type),
                lambda: None,
            )
            image = response.get("image") if isinstance(response, dict) else None
            updated = user
            if image:
                updated = evolve(user, image=format_image_url(self.backend.base_url, image))
            if self.store.session_id != session_id:
                return updated
            self.store.identity = updated
            logger.info(f"Uploaded profile image for user {user.id}")
            await self.fetchers.fetch_profile()
            return self.store.identity or updated
        finally:
            loading.profile_update = False


def _like_count(response: Any) -> int | None:
    """Pull an authoritative like count out of a like/unlike response, if present."""
    if not isinstance(response, dict):
        return None
    for name in LIKE_COUNT_FIELDS:
        value = response.get(name)
        if isinstance(value, int):
            return value
    return None
