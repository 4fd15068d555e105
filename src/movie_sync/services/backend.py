"""Backend REST API service.

Every call returns its decoded payload on success or raises exactly one of
the ``movie_sync.errors`` types, so callers branch on error class rather
than on HTTP status codes.
"""

import logging
from typing import Any
from urllib.parse import urlsplit

import httpx
from attrs import define

from ..errors import (
    ConflictError,
    NetworkTimeoutError,
    RateLimitedError,
    UnauthenticatedError,
    UnknownSyncError,
)
from ..models.movie import Genre, MovieSummary
from ..models.social import Comment, Notification
from ..models.user import RecentActivity, UserIdentity, UserStats
from .decode import extract_list

logger = logging.getLogger(__name__)


def format_image_url(base_url: str, image: str | None) -> str | None:
    """Resolve a relative avatar reference against the backend origin."""
    if not image:
        return None
    if image.startswith(("http://", "https://", "data:")):
        return image
    parts = urlsplit(base_url)
    return f"{parts.scheme}://{parts.netloc}/{image.lstrip('/')}"


@define
class BackendService:
    """Client for the movie backend REST API."""

    base_url: str
    timeout: float = 30.0
    _client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self, method: str, path: str, *, timeout: float | None = None, **kwargs
    ) -> Any:
        """Issue a request and classify the outcome."""
        client = await self._get_client()
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkTimeoutError(f"{method} {path} timed out") from e
        except httpx.RequestError as e:
            raise UnknownSyncError(f"{method} {path} failed: {e}") from e

        if resp.status_code == 429:
            retry_after = resp.headers.get("Retry-After")
            raise RateLimitedError(
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None
            )
        if resp.status_code in (401, 403):
            raise UnauthenticatedError(f"{method} {path} rejected: {resp.status_code}")
        if resp.status_code == 409:
            raise ConflictError(f"{method} {path} conflict")
        if resp.is_error:
            raise UnknownSyncError(
                f"{method} {path} failed: {resp.status_code}",
                status_code=resp.status_code,
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            logger.warning(f"{method} {path} returned a non-JSON body")
            return None

    def _parse_user(self, data: dict) -> UserIdentity:
        """Parse a user profile from a backend payload."""
        return UserIdentity(
            id=data["id"],
            fullname=data.get("fullname", ""),
            email=data.get("email", ""),
            image=format_image_url(self.base_url, data.get("image")),
        )

    def _parse_movie(self, data: dict) -> MovieSummary:
        """Parse a movie from a watchlist or recommendation entry."""
        genres = []
        for g in data.get("genres") or []:
            if isinstance(g, dict):
                genres.append(Genre(id=g.get("id"), name=g.get("name", "")))
            else:
                genres.append(Genre(id=None, name=str(g)))
        return MovieSummary(
            id=data.get("movie_id", data.get("id")),
            title=data.get("title", ""),
            overview=data.get("overview") or "",
            poster_path=data.get("poster_path") or "",
            popularity=data.get("popularity") or 0.0,
            release_date=data.get("release_date"),
            genres=genres,
        )

    def _movie_payload(self, movie: MovieSummary) -> dict:
        return {
            "movie_id": movie.id,
            "title": movie.title,
            "overview": movie.overview,
            "poster_path": movie.poster_path,
            "popularity": movie.popularity,
            "release_date": movie.release_date or "2023-01-01",
            "genres": [
                {"id": g.id, "name": g.name} if g.id is not None else g.name
                for g in movie.genres
            ],
        }

    # Session

    async def verify_session(self, id_token: str) -> UserIdentity | None:
        """Exchange an identity-provider token for a backend profile."""
        data = await self._request("POST", "/users/verify", json={"idToken": id_token})
        if isinstance(data, dict) and data.get("id"):
            return self._parse_user(data)
        return None

    async def get_current_user(self) -> UserIdentity | None:
        """Get the profile bound to the current backend session cookie."""
        data = await self._request("GET", "/users/me")
        user = data.get("user") if isinstance(data, dict) else None
        if user and user.get("id"):
            return self._parse_user(user)
        return None

    async def login(self, email: str, password: str) -> UserIdentity | None:
        """Log in with credentials."""
        data = await self._request(
            "POST", "/auth/login", json={"email": email, "password": password}
        )
        user = data.get("user") if isinstance(data, dict) else None
        if user and user.get("id"):
            return self._parse_user(user)
        return None

    async def sign_out(self) -> None:
        """End the backend session."""
        await self._request("POST", "/users/signout", json={})

    async def get_user(self, user_id: int) -> UserIdentity | None:
        """Get a user profile by ID."""
        data = await self._request("GET", f"/users/{user_id}")
        if isinstance(data, dict) and data.get("id"):
            return self._parse_user(data)
        return None

    async def update_user(self, user_id: int, fullname: str) -> dict | None:
        """Update the user's display name."""
        return await self._request("PUT", f"/users/{user_id}", json={"fullname": fullname})

    async def upload_profile_image(
        self, user_id: int, content: bytes, filename: str, content_type: str = "image/jpeg"
    ) -> dict | None:
        """Upload a new avatar as multipart form data."""
        return await self._request(
            "POST",
            f"/users/upload-image/{user_id}",
            files={"image": (filename, content, content_type)},
        )

    # Watchlist

    async def get_watchlist(self, user_id: int) -> list[MovieSummary]:
        """Get the user's watchlist."""
        data = await self._request("GET", f"/users/{user_id}/watchlist/")
        items = extract_list(data, ("watchlist", "data"))
        return [
            self._parse_movie(item)
            for item in items
            if isinstance(item, dict) and item.get("movie_id", item.get("id")) is not None
        ]

    async def add_to_watchlist(self, user_id: int, movie: MovieSummary) -> dict | None:
        """Add a movie to the user's watchlist."""
        return await self._request(
            "POST", f"/users/{user_id}/watchlist/", json=self._movie_payload(movie)
        )

    async def remove_from_watchlist(self, user_id: int, movie_id: int) -> dict | None:
        """Remove a movie from the user's watchlist."""
        return await self._request("DELETE", f"/users/{user_id}/watchlist/{movie_id}")

    # Likes

    async def get_likes(self, user_id: int) -> list[int]:
        """Get the IDs of the movies the user liked."""
        data = await self._request("GET", f"/users/{user_id}/likes")
        items = extract_list(data, ("likes", "data"))
        return [
            item["movie_id"]
            for item in items
            if isinstance(item, dict) and item.get("movie_id") is not None
        ]

    async def like_movie(
        self, user_id: int, movie_id: int, movie: MovieSummary | None = None
    ) -> dict | None:
        """Like a movie."""
        payload = {"user_id": user_id}
        if movie is not None:
            payload.update(self._movie_payload(movie))
            payload.pop("movie_id")
        return await self._request("POST", f"/movies/{movie_id}/likes", json=payload)

    async def unlike_movie(self, user_id: int, movie_id: int) -> dict | None:
        """Remove a like."""
        return await self._request(
            "DELETE", f"/movies/{movie_id}/likes", json={"user_id": user_id}
        )

    # Statistics

    async def get_stats(self, user_id: int) -> UserStats | None:
        """Get the user's usage statistics."""
        data = await self._request("GET", f"/users/{user_id}/stats")
        if not isinstance(data, dict):
            return None
        return UserStats(
            liked_movies=data.get("likedMovies", 0),
            watchlist_count=data.get("watchlistCount", 0),
            comments_count=data.get("commentsCount", 0),
            member_since=data.get("memberSince"),
            recent_activities=tuple(
                RecentActivity(
                    type=a.get("type", ""),
                    movie_id=a.get("movieId", 0),
                    date=a.get("date", ""),
                    movie_title=a.get("movieTitle"),
                    time_ago=a.get("timeAgo"),
                )
                for a in data.get("recentActivities") or []
                if isinstance(a, dict)
            ),
            favorite_genres=tuple(str(g) for g in data.get("favoriteGenres") or []),
        )

    # Recommendations

    async def get_recommendations(self, user_id: int, limit: int = 10) -> list[MovieSummary]:
        """Get personalized recommendations."""
        data = await self._request(
            "GET", f"/recommendations/user/{user_id}", params={"limit": limit}
        )
        items = extract_list(data, ("recommendations", "data"))
        return [
            self._parse_movie(item)
            for item in items
            if isinstance(item, dict) and item.get("movie_id", item.get("id")) is not None
        ]

    async def train_recommendations(self, timeout: float | None = None) -> None:
        """Trigger retraining of the recommendation models."""
        await self._request("POST", "/recommendations/train", json={}, timeout=timeout)

    # Comments

    async def get_comments(self, movie_id: int, user_id: int | None = None) -> list[Comment]:
        """Get the comments on a movie."""
        params = {"user_id": user_id} if user_id else {}
        data = await self._request("GET", f"/movies/{movie_id}/comments/", params=params)
        items = extract_list(data, ("comments", "data"))
        comments = []
        for item in items:
            if not isinstance(item, dict) or item.get("id") is None:
                continue
            author = item.get("user")
            if not isinstance(author, dict):
                author = {}
            comments.append(
                Comment(
                    id=item["id"],
                    user_id=item.get("user_id", 0),
                    movie_id=item.get("movie_id", movie_id),
                    content=item.get("content", ""),
                    created_at=item.get("created_at"),
                    author_name=author.get("fullname"),
                )
            )
        return comments

    async def add_comment(self, movie_id: int, user_id: int, content: str) -> dict | None:
        """Post a comment on a movie."""
        return await self._request(
            "POST",
            f"/movies/{movie_id}/comments/",
            json={"user_id": user_id, "content": content},
        )

    # Notifications

    async def get_notifications(self, user_id: int, per_page: int = 50) -> list[Notification]:
        """Get the user's notifications."""
        data = await self._request(
            "GET", f"/notifications/user/{user_id}", params={"per_page": per_page}
        )
        items = extract_list(data, ("notifications",))
        return [
            Notification(
                id=item["id"],
                type=item.get("type", ""),
                title=item.get("title", ""),
                message=item.get("message", ""),
                read_status=bool(item.get("read_status")),
                sender_name=item.get("sender_name"),
                created_at=item.get("created_at"),
                data=item.get("data") or {},
            )
            for item in items
            if isinstance(item, dict) and item.get("id") is not None
        ]

    async def get_unread_count(self, user_id: int) -> int:
        """Get the number of unread notifications."""
        data = await self._request("GET", f"/notifications/user/{user_id}/unread-count")
        if not isinstance(data, dict):
            return 0
        try:
            return int(data.get("unread_count") or 0)
        except (TypeError, ValueError) as e:
            raise UnknownSyncError(f"Unexpected unread count: {data.get('unread_count')!r}") from e

    async def mark_notification_read(self, notification_id: int) -> None:
        """Mark one notification as read."""
        await self._request("PUT", f"/notifications/{notification_id}/mark-read", json={})

    async def mark_all_notifications_read(self, user_id: int) -> None:
        """Mark every notification of the user as read."""
        await self._request("PUT", f"/notifications/user/{user_id}/mark-all-read", json={})

    async def delete_notification(self, notification_id: int) -> None:
        """Delete a notification."""
        await self._request("DELETE", f"/notifications/{notification_id}")
