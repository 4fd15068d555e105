"""Error taxonomy shared by the backend client and the sync engine."""


class SyncError(Exception):
    """Base error for backend and sync failures."""


class RateLimitedError(SyncError):
    """The backend throttled the request."""

    def __init__(self, message: str = "Server busy, please retry in a few seconds", retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class UnauthenticatedError(SyncError):
    """The backend no longer recognizes the session."""


class NetworkTimeoutError(SyncError):
    """The request exceeded its timeout."""


class ConflictError(SyncError):
    """The entity is already in the requested state (e.g. already added)."""


class UnknownSyncError(SyncError):
    """Any other backend or transport failure."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MutationInFlightError(SyncError):
    """A mutation for the same movie is still waiting on the backend."""


class NotAuthenticatedError(SyncError):
    """The operation needs a logged-in user."""
