"""Staged population of the entity store after login."""

import logging

from attrs import define, field

from ..config import SyncTimings
from .fetchers import ResourceFetchers
from .scheduler import SessionScheduler
from .store import EntityStore

logger = logging.getLogger(__name__)


@define
class StagedBootstrap:
    """Populates watchlist, likes and statistics one after another.

    The watchlist is fetched right away; likes and statistics are scheduled
    on the session's scheduler after fixed delays so the three reads never
    hit the backend as a burst. Pending stages die with the session.
    """

    fetchers: ResourceFetchers
    scheduler: SessionScheduler
    store: EntityStore
    timings: SyncTimings = field(factory=SyncTimings)
    poll_unread_every: float | None = 120.0

    async def start(self) -> None:
        session_id = self.store.session_id
        user = self.store.identity
        if session_id is None or user is None:
            logger.debug("No active session, nothing to bootstrap")
            return

        logger.info(f"Bootstrapping data for user {user.id}")
        await self.fetchers.fetch_watchlist()
        if self.store.session_id != session_id:
            return

        self.scheduler.schedule(
            session_id, self.timings.likes_delay, self.fetchers.fetch_likes, key="bootstrap:likes"
        )
        self.scheduler.schedule(
            session_id, self.timings.stats_delay, self.fetchers.fetch_stats, key="bootstrap:stats"
        )
        if self.poll_unread_every:
            self.scheduler.schedule_every(
                session_id,
                self.poll_unread_every,
                self.fetchers.fetch_unread_count,
                key="poll:unread",
            )

    async def refresh_user_data(self) -> None:
        """Reload the profile, then re-run the staged sequence."""
        if self.store.identity is None:
            return
        await self.fetchers.fetch_profile()
        await self.start()
