"""Configuration loaded from MOVIE_SYNC_* environment variables."""

import os
from functools import lru_cache

from attrs import define, field


@define(frozen=True)
class SyncTimings:
    """Delays and windows used by the sync engine, in seconds."""

    request_timeout: float = 30.0
    train_timeout: float = 60.0
    min_interval: float = 5.0
    rate_limit_penalty: float = 10.0
    likes_delay: float = 8.0
    stats_delay: float = 15.0
    confirm_delay: float = 10.0
    mutation_stats_delay: float = 15.0
    comment_stats_delay: float = 10.0
    settle_delay: float = 5.0
    recommendations_ttl: float = 300.0
    notifications_debounce: float = 30.0
    comments_debounce: float = 2.0


@define
class Settings:
    """Application settings."""

    api_url: str
    timings: SyncTimings = field(factory=SyncTimings)


def _float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value else default


@lru_cache
def get_settings() -> Settings:
    """Load settings from the environment; only MOVIE_SYNC_API_URL is required."""
    defaults = SyncTimings()
    return Settings(
        api_url=os.environ["MOVIE_SYNC_API_URL"],
        timings=SyncTimings(
            request_timeout=_float_env("MOVIE_SYNC_REQUEST_TIMEOUT", defaults.request_timeout),
            train_timeout=_float_env("MOVIE_SYNC_TRAIN_TIMEOUT", defaults.train_timeout),
            min_interval=_float_env("MOVIE_SYNC_MIN_INTERVAL", defaults.min_interval),
            rate_limit_penalty=_float_env(
                "MOVIE_SYNC_RATE_LIMIT_PENALTY", defaults.rate_limit_penalty
            ),
            likes_delay=_float_env("MOVIE_SYNC_LIKES_DELAY", defaults.likes_delay),
            stats_delay=_float_env("MOVIE_SYNC_STATS_DELAY", defaults.stats_delay),
            confirm_delay=_float_env("MOVIE_SYNC_CONFIRM_DELAY", defaults.confirm_delay),
            settle_delay=_float_env("MOVIE_SYNC_SETTLE_DELAY", defaults.settle_delay),
            recommendations_ttl=_float_env(
                "MOVIE_SYNC_RECOMMENDATIONS_TTL", defaults.recommendations_ttl
            ),
        ),
    )
