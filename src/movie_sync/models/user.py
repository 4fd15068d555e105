"""User identity and statistics models."""

from attrs import define, field


@define(frozen=True)
class UserIdentity:
    """Represents the logged-in user's profile."""

    id: int
    fullname: str
    email: str
    image: str | None = None


@define(frozen=True)
class RecentActivity:
    """Represents one entry of the user's recent activity feed."""

    type: str
    movie_id: int
    date: str
    movie_title: str | None = None
    time_ago: str | None = None


@define(frozen=True)
class UserStats:
    """Snapshot of the user's usage statistics.

    Always replaced wholesale; never mutated in place.
    """

    liked_movies: int = 0
    watchlist_count: int = 0
    comments_count: int = 0
    member_since: str | None = None
    recent_activities: tuple[RecentActivity, ...] = ()
    favorite_genres: tuple[str, ...] = ()
