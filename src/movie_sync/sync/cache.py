"""Time-to-live result cache."""

import time
from collections.abc import Callable
from typing import Any

from attrs import define, field


@define(frozen=True)
class CacheEntry:
    """Represents a cached result and when it was stored."""

    result: Any
    fetched_at: float


@define
class TTLCache:
    """Caches one result per key; entries older than ``ttl`` seconds are never served."""

    ttl: float = 300.0
    clock: Callable[[], float] = time.monotonic
    _entries: dict[Any, CacheEntry] = field(factory=dict)

    def get(self, key: Any) -> Any | None:
        """Return the cached result, or None on a miss or an expired entry."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() - entry.fetched_at >= self.ttl:
            del self._entries[key]
            return None
        return entry.result

    def set(self, key: Any, result: Any) -> None:
        self._entries[key] = CacheEntry(result=result, fetched_at=self.clock())

    def invalidate(self, key: Any | None = None) -> None:
        """Drop one entry, or every entry when ``key`` is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def reset(self) -> None:
        self.invalidate()
