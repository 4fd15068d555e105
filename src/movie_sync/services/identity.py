"""Identity provider interface."""

from typing import Protocol


class IdentityProvider(Protocol):
    """Source of short-lived credentials for the current device session."""

    async def get_token(self) -> str | None:
        """Return a fresh token, or None when no user is signed in."""
        ...

    async def sign_out(self) -> None:
        """Forget the signed-in user."""
        ...
