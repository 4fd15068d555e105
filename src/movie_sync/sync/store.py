"""In-memory state of the logged-in user's synchronized data."""

import logging

from attrs import define, field

from ..models.movie import MovieSummary
from ..models.social import Comment, Notification
from ..models.user import UserIdentity, UserStats

logger = logging.getLogger(__name__)


@define
class LoadingFlags:
    """Per-entity and global in-flight markers read by the UI."""

    likes: dict[int, bool] = field(factory=dict)
    watchlist: dict[int, bool] = field(factory=dict)
    stats: bool = False
    recommendations: bool = False
    profile_update: bool = False


@define
class LikeSnapshot:
    """Pre-mutation like state of a single movie."""

    liked: bool
    count: int | None


@define
class EntityStore:
    """The authoritative local copy of the current user's data.

    Fetchers replace slices wholesale; the mutation engine edits single
    entries. ``clear`` resets everything in one synchronous step.
    """

    identity: UserIdentity | None = None
    session_id: str | None = None
    watchlist: dict[int, MovieSummary] = field(factory=dict)
    liked: set[int] = field(factory=set)
    like_counts: dict[int, int] = field(factory=dict)
    stats: UserStats | None = None
    comments: dict[int, list[Comment]] = field(factory=dict)
    notifications: list[Notification] = field(factory=list)
    unread_count: int = 0
    stale: set[str] = field(factory=set)
    loading: LoadingFlags = field(factory=LoadingFlags)

    @property
    def is_logged_in(self) -> bool:
        return self.identity is not None

    def is_in_watchlist(self, movie_id: int) -> bool:
        return movie_id in self.watchlist

    def is_liked(self, movie_id: int) -> bool:
        return movie_id in self.liked

    def is_watchlist_loading(self, movie_id: int) -> bool:
        return self.loading.watchlist.get(movie_id, False)

    def is_like_loading(self, movie_id: int) -> bool:
        return self.loading.likes.get(movie_id, False)

    def has_pending_mutations(self, resource: str) -> bool:
        """True while any per-entity mutation on ``resource`` is waiting on the backend."""
        flags = getattr(self.loading, resource, None)
        return isinstance(flags, dict) and any(flags.values())

    # Wholesale replacement (fetchers)

    def replace_watchlist(self, movies: list[MovieSummary]) -> None:
        self.watchlist = {movie.id: movie for movie in movies}

    def replace_likes(self, movie_ids: list[int]) -> None:
        self.liked = set(movie_ids)

    def replace_stats(self, stats: UserStats | None) -> None:
        self.stats = stats

    # Single-entry edits (mutation engine)

    def put_watchlist_entry(self, movie: MovieSummary) -> None:
        self.watchlist[movie.id] = movie

    def restore_watchlist_entry(self, movie_id: int, previous: MovieSummary | None) -> None:
        if previous is None:
            self.watchlist.pop(movie_id, None)
        else:
            self.watchlist[movie_id] = previous

    def snapshot_like(self, movie_id: int) -> LikeSnapshot:
        return LikeSnapshot(liked=movie_id in self.liked, count=self.like_counts.get(movie_id))

    def apply_like(self, movie_id: int, liked: bool) -> None:
        """Set membership and shift the known like count accordingly."""
        was_liked = movie_id in self.liked
        if liked == was_liked:
            return
        if liked:
            self.liked.add(movie_id)
        else:
            self.liked.discard(movie_id)
        count = self.like_counts.get(movie_id)
        if count is not None:
            self.like_counts[movie_id] = max(0, count + (1 if liked else -1))

    def restore_like(self, movie_id: int, snapshot: LikeSnapshot) -> None:
        if snapshot.liked:
            self.liked.add(movie_id)
        else:
            self.liked.discard(movie_id)
        if snapshot.count is None:
            self.like_counts.pop(movie_id, None)
        else:
            self.like_counts[movie_id] = snapshot.count

    def clear(self) -> None:
        """Forget the user and all of their data in one step."""
        logger.info("Clearing user data")
        self.identity = None
        self.session_id = None
        self.watchlist = {}
        self.liked = set()
        self.like_counts = {}
        self.stats = None
        self.comments = {}
        self.notifications = []
        self.unread_count = 0
        self.stale = set()
        self.loading = LoadingFlags()
