"""Tests for data models."""

import pytest
from attrs.exceptions import FrozenInstanceError

from movie_sync.models.movie import Genre, MovieSummary
from movie_sync.models.social import Comment, Notification
from movie_sync.models.user import RecentActivity, UserIdentity, UserStats


class TestMovieSummary:
    """Tests for MovieSummary model."""

    def test_movie_creation(self):
        """Test basic movie creation."""
        movie = MovieSummary(id=42, title="Arrival")
        assert movie.id == 42
        assert movie.title == "Arrival"
        assert movie.overview == ""
        assert movie.genres == []

    def test_movie_with_genres(self):
        """Test movie with genres populated."""
        movie = MovieSummary(
            id=1,
            title="Alien",
            popularity=88.5,
            release_date="1979-05-25",
            genres=[Genre(id=27, name="Horror"), Genre(id=878, name="Science Fiction")],
        )
        assert [g.name for g in movie.genres] == ["Horror", "Science Fiction"]
        assert movie.popularity == 88.5


class TestUserModels:
    """Tests for identity and statistics models."""

    def test_identity_is_replaced_not_mutated(self):
        """Test identity is frozen."""
        user = UserIdentity(id=7, fullname="Ada", email="ada@example.com")
        with pytest.raises(FrozenInstanceError):
            user.fullname = "Grace"

    def test_stats_defaults(self):
        """Test empty statistics snapshot."""
        stats = UserStats()
        assert stats.liked_movies == 0
        assert stats.recent_activities == ()
        assert stats.favorite_genres == ()

    def test_stats_equality(self):
        """Test two snapshots with the same values compare equal."""
        activity = RecentActivity(type="like", movie_id=3, date="2024-02-01")
        a = UserStats(liked_movies=3, recent_activities=(activity,))
        b = UserStats(liked_movies=3, recent_activities=(activity,))
        assert a == b


class TestSocialModels:
    """Tests for comment and notification models."""

    def test_comment_creation(self):
        """Test comment creation."""
        comment = Comment(id=1, user_id=7, movie_id=42, content="Loved it")
        assert comment.content == "Loved it"
        assert comment.author_name is None

    def test_notification_defaults(self):
        """Test notification defaults to unread."""
        notification = Notification(id=1, type="reply", title="New reply", message="...")
        assert notification.read_status is False
        assert notification.data == {}
