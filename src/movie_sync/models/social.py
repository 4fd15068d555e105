"""Comment and notification models."""

from attrs import define, field


@define
class Comment:
    """Represents a comment on a movie."""

    id: int
    user_id: int
    movie_id: int
    content: str
    created_at: str | None = None
    author_name: str | None = None


@define
class Notification:
    """Represents a user notification."""

    id: int
    type: str
    title: str
    message: str
    read_status: bool = False
    sender_name: str | None = None
    created_at: str | None = None
    data: dict = field(factory=dict)
