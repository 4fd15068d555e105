"""Service layer for external API integrations."""

from .backend import BackendService
from .identity import IdentityProvider

__all__ = ["BackendService", "IdentityProvider"]
