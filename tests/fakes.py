"""Fakes shared by the sync engine tests."""

import asyncio

import httpx

from movie_sync.client import MovieSyncClient
from movie_sync.config import SyncTimings
from movie_sync.models.user import UserIdentity
from movie_sync.services.backend import BackendService

BASE_URL = "https://api.test"

FAST = SyncTimings(
    request_timeout=1.0,
    train_timeout=1.0,
    min_interval=0.0,
    rate_limit_penalty=0.05,
    likes_delay=0.02,
    stats_delay=0.04,
    confirm_delay=0.02,
    mutation_stats_delay=0.04,
    comment_stats_delay=0.02,
    settle_delay=0.01,
    recommendations_ttl=300.0,
    notifications_debounce=30.0,
    comments_debounce=0.0,
)


class FakeApi:
    """Scripted backend behind httpx.MockTransport.

    Each route holds a queue of responses; the last one keeps being served.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list] = {}
        self.calls: list[tuple[str, str]] = []
        self.bodies: list[bytes] = []

    def add(self, method: str, path: str, *responses) -> None:
        self.routes[(method, path)] = list(responses)

    def hold(self, method: str, path: str, status: int = 200, body=None) -> asyncio.Event:
        """Make a route block until the returned event is set."""
        gate = asyncio.Event()

        async def respond(request):
            await gate.wait()
            return httpx.Response(status, json=body if body is not None else {})

        self.add(method, path, respond)
        return gate

    def count(self, method: str, path: str) -> int:
        return self.calls.count((method, path))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, request.url.path)
        self.calls.append(key)
        self.bodies.append(request.content)
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, json={"error": "not found"})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(response):
            result = response(request)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        status, body = response
        return httpx.Response(status, json=body)


def make_backend(api: FakeApi) -> BackendService:
    return BackendService(
        base_url=BASE_URL,
        client=httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(api.handler)),
    )


def make_client(api: FakeApi, timings: SyncTimings = FAST) -> MovieSyncClient:
    return MovieSyncClient(backend=make_backend(api), timings=timings, poll_unread_every=None)


def authenticate(
    client: MovieSyncClient, user_id: int = 7, session_id: str = "session-1"
) -> UserIdentity:
    """Put the client in a logged-in session without going through verification."""
    user = UserIdentity(id=user_id, fullname="Ada Lovelace", email="ada@example.com")
    client.store.identity = user
    client.store.session_id = session_id
    return user


class FakeClock:
    """Manual clock whose sleep advances time instead of waiting."""

    def __init__(self, now: float = 1000.0):
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
