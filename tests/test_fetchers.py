"""Tests for the resource fetchers."""

import asyncio
import time

from fakes import authenticate, make_client
from movie_sync.models.movie import MovieSummary
from movie_sync.models.user import UserStats

STATS_PAYLOAD = {
    "likedMovies": 3,
    "watchlistCount": 1,
    "commentsCount": 0,
    "memberSince": "2024-01-01",
    "recentActivities": [],
    "favoriteGenres": ["Drama"],
}


class TestStatsFetch:
    """Tests for the statistics fetcher."""

    def test_snapshot_replaced_then_kept_on_failure(self, api):
        """Test a failed refresh leaves the previous snapshot in place."""
        api.add("GET", "/users/7/stats", (200, STATS_PAYLOAD), (500, {"error": "boom"}))

        async def scenario():
            client = make_client(api)
            authenticate(client)
            await client.fetchers.fetch_stats()
            expected = UserStats(
                liked_movies=3,
                watchlist_count=1,
                comments_count=0,
                member_since="2024-01-01",
                favorite_genres=("Drama",),
            )
            assert client.store.stats == expected
            snapshot = client.store.stats

            await client.fetchers.fetch_stats()
            assert client.store.stats is snapshot
            assert "stats" in client.store.stale
            assert client.store.loading.stats is False
            await client.close()

        asyncio.run(scenario())

    def test_no_user_no_call(self, api):
        """Test stats are not fetched while logged out."""

        async def scenario():
            client = make_client(api)
            assert await client.fetchers.fetch_stats() is None
            assert api.calls == []
            await client.close()

        asyncio.run(scenario())


class TestWatchlistFetch:
    """Tests for the watchlist fetcher."""

    def test_replaces_wholesale_without_duplicates(self, api):
        """Test the fetched watchlist replaces local data keyed by movie id."""
        api.add(
            "GET",
            "/users/7/watchlist/",
            (200, [{"movie_id": 1, "title": "A"}, {"movie_id": 2, "title": "B"}, {"movie_id": 1, "title": "A"}]),
        )

        async def scenario():
            client = make_client(api)
            authenticate(client)
            client.store.put_watchlist_entry(MovieSummary(id=99, title="Old"))
            await client.fetchers.fetch_watchlist()
            assert sorted(client.store.watchlist) == [1, 2]
            await client.close()

        asyncio.run(scenario())

    def test_failure_keeps_existing_data(self, api):
        """Test a failed refresh does not clear the watchlist."""
        api.add("GET", "/users/7/watchlist/", (503, {"error": "down"}))

        async def scenario():
            client = make_client(api)
            authenticate(client)
            client.store.put_watchlist_entry(MovieSummary(id=5, title="Kept"))
            result = await client.fetchers.fetch_watchlist()
            assert [m.id for m in result] == [5]
            assert 5 in client.store.watchlist
            assert "watchlist" in client.store.stale
            await client.close()

        asyncio.run(scenario())

    def test_rate_limit_pushes_backoff_forward(self, api):
        """Test a 429 moves the next allowed call into the future."""
        api.add("GET", "/users/7/watchlist/", (429, {}))

        async def scenario():
            client = make_client(api)
            authenticate(client)
            await client.fetchers.fetch_watchlist()
            assert client.backoff.last_attempt("watchlist") > time.monotonic()
            await client.close()

        asyncio.run(scenario())

    def test_unauthenticated_clears_session(self, api):
        """Test a 401 cascades to a full session clear."""
        api.add("GET", "/users/7/watchlist/", (401, {}))

        async def scenario():
            client = make_client(api)
            authenticate(client)
            client.store.replace_likes([1, 2])
            await client.fetchers.fetch_watchlist()
            assert client.store.identity is None
            assert client.store.liked == set()
            assert client.session.state.value == "anonymous"
            await client.close()

        asyncio.run(scenario())

    def test_concurrent_fetch_is_skipped(self, api):
        """Test a second fetch while one is in flight returns the current value without a call."""

        async def scenario():
            client = make_client(api)
            authenticate(client)
            gate = api.hold("GET", "/users/7/watchlist/", body=[{"movie_id": 1, "title": "A"}])
            first = asyncio.create_task(client.fetchers.fetch_watchlist())
            await asyncio.sleep(0.01)
            assert await client.fetchers.fetch_watchlist() == []
            gate.set()
            await first
            assert api.count("GET", "/users/7/watchlist/") == 1
            assert 1 in client.store.watchlist
            await client.close()

        asyncio.run(scenario())

    def test_refresh_deferred_while_mutation_in_flight(self, api):
        """Test a wholesale replace is not applied while an add is confirming."""
        api.add("GET", "/users/7/watchlist/", (200, []))

        async def scenario():
            client = make_client(api)
            authenticate(client)
            gate = api.hold("POST", "/users/7/watchlist/")
            add = asyncio.create_task(client.mutations.add_to_watchlist(MovieSummary(id=42, title="Arrival")))
            await asyncio.sleep(0.01)
            await client.fetchers.fetch_watchlist()
            assert 42 in client.store.watchlist
            gate.set()
            await add
            await client.close()

        asyncio.run(scenario())

    def test_result_from_ended_session_is_discarded(self, api):
        """Test a fetch landing after logout does not repopulate the store."""
        api.add("POST", "/users/signout", (200, {}))

        async def scenario():
            client = make_client(api)
            authenticate(client)
            gate = api.hold("GET", "/users/7/likes", body=[{"movie_id": 3}])
            fetch = asyncio.create_task(client.fetchers.fetch_likes())
            await asyncio.sleep(0.01)
            await client.session.logout()
            gate.set()
            await fetch
            assert client.store.liked == set()
            await client.close()

        asyncio.run(scenario())


class TestDebouncedFetches:
    """Tests for notification and comment debouncing."""

    def test_notifications_debounced_unless_forced(self, api):
        """Test an unforced repeat within the window makes no call."""
        api.add(
            "GET",
            "/notifications/user/7",
            (200, {"notifications": [{"id": 1, "type": "reply", "title": "t", "message": "m"}]}),
        )

        async def scenario():
            client = make_client(api)
            authenticate(client)
            await client.fetchers.fetch_notifications()
            await client.fetchers.fetch_notifications()
            assert api.count("GET", "/notifications/user/7") == 1
            await client.fetchers.fetch_notifications(force=True)
            assert api.count("GET", "/notifications/user/7") == 2
            assert client.store.notifications[0].id == 1
            await client.close()

        asyncio.run(scenario())

    def test_comments_loaded_once_unless_forced(self, api):
        """Test already-loaded comments short-circuit an unforced fetch."""
        api.add("GET", "/movies/42/comments/", (200, [{"id": 1, "user_id": 7, "content": "Nice"}]))

        async def scenario():
            client = make_client(api)
            authenticate(client)
            first = await client.fetchers.fetch_comments(42)
            second = await client.fetchers.fetch_comments(42)
            assert [c.content for c in first] == ["Nice"]
            assert second == first
            assert api.count("GET", "/movies/42/comments/") == 1
            await client.fetchers.fetch_comments(42, force=True)
            assert api.count("GET", "/movies/42/comments/") == 2
            await client.close()

        asyncio.run(scenario())


class TestFetchIsolation:
    """Tests for in-flight bookkeeping across sessions and concurrent callers."""

    def test_ended_session_fetch_does_not_release_new_guard(self, api):
        """Test a fetch from a cleared session finishing late leaves the new session's guard held."""

        async def scenario():
            client = make_client(api)
            authenticate(client)
            old_gate = api.hold("GET", "/users/7/watchlist/", body=[{"movie_id": 1, "title": "Old"}])
            old = asyncio.create_task(client.fetchers.fetch_watchlist())
            await asyncio.sleep(0.01)
            client.session.clear()

            authenticate(client, user_id=8, session_id="session-2")
            new_gate = api.hold("GET", "/users/8/watchlist/", body=[{"movie_id": 2, "title": "New"}])
            new = asyncio.create_task(client.fetchers.fetch_watchlist())
            await asyncio.sleep(0.01)
            old_gate.set()
            await old

            await client.fetchers.fetch_watchlist()
            assert api.count("GET", "/users/8/watchlist/") == 1
            new_gate.set()
            await new
            assert sorted(client.store.watchlist) == [2]
            await client.close()

        asyncio.run(scenario())

    def test_skipped_stats_fetch_keeps_loading_flag(self, api):
        """Test a concurrent stats fetch skipped by the guard does not clear the flag."""

        async def scenario():
            client = make_client(api)
            authenticate(client)
            gate = api.hold("GET", "/users/7/stats", body=STATS_PAYLOAD)
            first = asyncio.create_task(client.fetchers.fetch_stats())
            await asyncio.sleep(0.01)
            assert await client.fetchers.fetch_stats() is None
            assert client.store.loading.stats is True
            gate.set()
            await first
            assert client.store.loading.stats is False
            assert client.store.stats.liked_movies == 3
            await client.close()

        asyncio.run(scenario())

    def test_failed_notification_fetch_can_be_retried(self, api):
        """Test a failed load does not start the debounce window."""
        api.add(
            "GET",
            "/notifications/user/7",
            (500, {}),
            (200, {"notifications": [{"id": 1, "type": "reply", "title": "t", "message": "m"}]}),
        )

        async def scenario():
            client = make_client(api)
            authenticate(client)
            assert await client.fetchers.fetch_notifications() == []
            notifications = await client.fetchers.fetch_notifications()
            assert [n.id for n in notifications] == [1]
            assert api.count("GET", "/notifications/user/7") == 2
            await client.close()

        asyncio.run(scenario())


class TestMalformedPayloads:
    """Tests for fetches whose payload items have unexpected shapes."""

    def test_comments_without_id_skipped(self, api):
        """Test comments missing an id or with an odd author are tolerated."""
        api.add(
            "GET",
            "/movies/42/comments/",
            (200, [{"content": "no id"}, {"id": 2, "user_id": 7, "content": "ok", "user": "bob"}, "junk"]),
        )

        async def scenario():
            client = make_client(api)
            authenticate(client)
            comments = await client.fetchers.fetch_comments(42, force=True)
            assert [c.id for c in comments] == [2]
            assert comments[0].author_name is None
            await client.close()

        asyncio.run(scenario())

    def test_notifications_without_id_skipped(self, api):
        """Test notifications missing an id are dropped."""
        api.add(
            "GET",
            "/notifications/user/7",
            (200, {"notifications": [{"title": "no id"}, {"id": 4, "type": "like", "title": "t", "message": "m"}]}),
        )

        async def scenario():
            client = make_client(api)
            authenticate(client)
            notifications = await client.fetchers.fetch_notifications(force=True)
            assert [n.id for n in notifications] == [4]
            await client.close()

        asyncio.run(scenario())

    def test_bad_unread_count_keeps_previous(self, api):
        """Test a non-numeric unread count leaves the known count in place."""
        api.add("GET", "/notifications/user/7/unread-count", (200, {"unread_count": "lots"}))

        async def scenario():
            client = make_client(api)
            authenticate(client)
            client.store.unread_count = 3
            assert await client.fetchers.fetch_unread_count() == 3
            assert "notifications:unread" in client.store.stale
            await client.close()

        asyncio.run(scenario())

    def test_stats_with_odd_activities(self, api):
        """Test non-object recent activities are skipped."""
        api.add(
            "GET",
            "/users/7/stats",
            (200, dict(STATS_PAYLOAD, recentActivities=["liked", {"type": "like", "movieId": 5, "date": "2024-02-01"}])),
        )

        async def scenario():
            client = make_client(api)
            authenticate(client)
            stats = await client.fetchers.fetch_stats()
            assert [a.movie_id for a in stats.recent_activities] == [5]
            await client.close()

        asyncio.run(scenario())
