"""Data models for movie-sync."""

from .movie import Genre, MovieSummary
from .social import Comment, Notification
from .user import RecentActivity, UserIdentity, UserStats

__all__ = [
    "Genre",
    "MovieSummary",
    "Comment",
    "Notification",
    "RecentActivity",
    "UserIdentity",
    "UserStats",
]
