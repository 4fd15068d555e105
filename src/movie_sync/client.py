"""Composition root wiring the backend client and the sync engine together."""

from attrs import define, field

from .config import Settings, SyncTimings
from .services.backend import BackendService
from .services.identity import IdentityProvider
from .sync.backoff import BackoffTracker
from .sync.bootstrap import StagedBootstrap
from .sync.cache import TTLCache
from .sync.fetchers import ResourceFetchers
from .sync.guard import SingleFlightGuard
from .sync.mutations import MutationEngine
from .sync.recommendations import RecommendationService
from .sync.scheduler import SessionScheduler
from .sync.session import SessionReconciler
from .sync.store import EntityStore


@define
class MovieSyncClient:
    """Owns one user's session state and every component that reads or writes it."""

    backend: BackendService
    timings: SyncTimings = field(factory=SyncTimings)
    identity_provider: IdentityProvider | None = None
    poll_unread_every: float | None = 120.0

    store: EntityStore = field(init=False)
    backoff: BackoffTracker = field(init=False)
    guard: SingleFlightGuard = field(init=False)
    cache: TTLCache = field(init=False)
    scheduler: SessionScheduler = field(init=False)
    fetchers: ResourceFetchers = field(init=False)
    mutations: MutationEngine = field(init=False)
    bootstrap: StagedBootstrap = field(init=False)
    recommendations: RecommendationService = field(init=False)
    session: SessionReconciler = field(init=False)

    def __attrs_post_init__(self) -> None:
        t = self.timings
        self.store = EntityStore()
        self.backoff = BackoffTracker(min_interval=t.min_interval, penalty=t.rate_limit_penalty)
        self.guard = SingleFlightGuard()
        self.cache = TTLCache(ttl=t.recommendations_ttl)
        self.scheduler = SessionScheduler()
        self.fetchers = ResourceFetchers(
            backend=self.backend,
            store=self.store,
            backoff=self.backoff,
            guard=self.guard,
            timings=t,
        )
        self.mutations = MutationEngine(
            backend=self.backend,
            store=self.store,
            backoff=self.backoff,
            fetchers=self.fetchers,
            scheduler=self.scheduler,
            timings=t,
        )
        self.bootstrap = StagedBootstrap(
            fetchers=self.fetchers,
            scheduler=self.scheduler,
            store=self.store,
            timings=t,
            poll_unread_every=self.poll_unread_every,
        )
        self.recommendations = RecommendationService(
            backend=self.backend,
            store=self.store,
            backoff=self.backoff,
            guard=self.guard,
            cache=self.cache,
            timings=t,
        )
        self.session = SessionReconciler(
            backend=self.backend,
            store=self.store,
            scheduler=self.scheduler,
            bootstrap=self.bootstrap,
            backoff=self.backoff,
            timings=t,
            identity_provider=self.identity_provider,
            resets=[self.guard.reset, self.cache.reset, self.fetchers.reset],
        )
        self.fetchers.on_unauthenticated = self.session.clear
        self.mutations.on_unauthenticated = self.session.clear
        self.recommendations.on_unauthenticated = self.session.clear

    @classmethod
    def from_settings(
        cls, settings: Settings, identity_provider: IdentityProvider | None = None
    ) -> "MovieSyncClient":
        return cls(
            backend=BackendService(
                base_url=settings.api_url, timeout=settings.timings.request_timeout
            ),
            timings=settings.timings,
            identity_provider=identity_provider,
        )

    async def close(self) -> None:
        await self.scheduler.aclose()
        await self.backend.close()
