"""Personalized recommendations behind a TTL cache."""

import logging
from collections.abc import Callable

from attrs import define, field

from ..config import SyncTimings
from ..errors import RateLimitedError, SyncError, UnauthenticatedError
from ..models.movie import MovieSummary
from ..services.backend import BackendService
from . import resources
from .backoff import BackoffTracker
from .cache import TTLCache
from .calls import bounded
from .guard import SingleFlightGuard
from .store import EntityStore

logger = logging.getLogger(__name__)


@define
class RecommendationService:
    """Serves recommendations from cache, fetching at most one batch at a time.

    A caller arriving while a fetch is already running gets an empty list,
    which means "try again later", not "nothing to recommend".
    """

    backend: BackendService
    store: EntityStore
    backoff: BackoffTracker
    guard: SingleFlightGuard
    cache: TTLCache
    timings: SyncTimings = field(factory=SyncTimings)
    on_unauthenticated: Callable[[], None] | None = None

    async def get_recommended(self, limit: int = 10) -> list[MovieSummary]:
        user = self.store.identity
        if user is None:
            logger.debug("No user logged in, no recommendations")
            return []

        cached = self.cache.get(user.id)
        if cached is not None:
            logger.debug(f"Using cached recommendations for user {user.id}")
            return cached

        session_id = self.store.session_id
        if not self.guard.try_enter(resources.RECOMMENDATIONS, session_id):
            logger.debug("Recommendations already being fetched")
            return []

        loading = self.store.loading
        loading.recommendations = True
        try:
            await self.backoff.wait_if_needed(resources.RECOMMENDATIONS, self.timings.min_interval)
            self.backoff.record_attempt(resources.RECOMMENDATIONS)
            movies = await bounded(
                self.backend.get_recommendations(user.id, limit),
                self.timings.request_timeout,
            )
        except RateLimitedError as e:
            if self.store.session_id == session_id:
                self.backoff.penalize(
                    resources.RECOMMENDATIONS, self.timings.rate_limit_penalty, e.retry_after
                )
            return []
        except UnauthenticatedError:
            if self.on_unauthenticated is not None and self.store.session_id == session_id:
                self.on_unauthenticated()
            return []
        except SyncError as e:
            logger.error(f"Failed to get recommendations: {e}")
            return []
        finally:
            self.guard.release(resources.RECOMMENDATIONS, session_id)
            loading.recommendations = False

        if self.store.session_id == session_id:
            self.cache.set(user.id, movies)
        logger.info(f"Fetched {len(movies)} recommendations for user {user.id}")
        return movies

    async def train_models(self) -> bool:
        """Ask the backend to retrain; drops every cached result on success."""
        try:
            await self.backend.train_recommendations(timeout=self.timings.train_timeout)
        except SyncError as e:
            logger.error(f"Error training recommendation models: {e}")
            return False
        self.cache.invalidate()
        return True
