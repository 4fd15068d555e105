"""Client-side synchronization engine."""

from .backoff import BackoffTracker
from .bootstrap import StagedBootstrap
from .cache import TTLCache
from .fetchers import ResourceFetchers
from .guard import DebounceWindow, SingleFlightGuard
from .mutations import MutationEngine, MutationState
from .recommendations import RecommendationService
from .scheduler import SessionScheduler
from .session import SessionReconciler, SessionState
from .store import EntityStore, LoadingFlags

__all__ = [
    "BackoffTracker",
    "StagedBootstrap",
    "TTLCache",
    "ResourceFetchers",
    "DebounceWindow",
    "SingleFlightGuard",
    "MutationEngine",
    "MutationState",
    "RecommendationService",
    "SessionScheduler",
    "SessionReconciler",
    "SessionState",
    "EntityStore",
    "LoadingFlags",
]
