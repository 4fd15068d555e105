"""Movie data models."""

from attrs import define, field


@define(frozen=True)
class Genre:
    """Represents a movie genre."""

    id: int | None
    name: str


@define
class MovieSummary:
    """Represents a movie as stored in a watchlist or recommendation list."""

    id: int
    title: str
    overview: str = ""
    poster_path: str = ""
    popularity: float = 0.0
    release_date: str | None = None
    genres: list[Genre] = field(factory=list)
