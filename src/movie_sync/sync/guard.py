"""Single-flight guard and per-resource debounce windows."""

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from attrs import define, field


@define
class SingleFlightGuard:
    """Allows at most one in-flight operation per key.

    An entry remembers the ``owner`` that entered it; ``release`` with a
    different owner is ignored, so a caller left over from an ended session
    cannot free a key a newer session now holds.
    """

    _in_flight: dict[str, object] = field(factory=dict)

    def try_enter(self, key: str, owner: object = None) -> bool:
        """Mark ``key`` in flight. Returns False if it already was."""
        if key in self._in_flight:
            return False
        self._in_flight[key] = owner
        return True

    def release(self, key: str, owner: object = None) -> None:
        if key in self._in_flight and self._in_flight[key] == owner:
            del self._in_flight[key]

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    @contextmanager
    def hold(self, key: str, owner: object = None) -> Iterator[bool]:
        """Context-manager form of ``try_enter``; yields whether the key was acquired."""
        entered = self.try_enter(key, owner)
        try:
            yield entered
        finally:
            if entered:
                self.release(key, owner)

    def reset(self) -> None:
        self._in_flight.clear()


@define
class DebounceWindow:
    """Drops unforced requests for a key seen within the last ``window`` seconds."""

    window: float
    clock: Callable[[], float] = time.monotonic
    _last: dict[str, float] = field(factory=dict)

    def should_skip(self, key: str, force: bool = False) -> bool:
        if force:
            return False
        last = self._last.get(key)
        return last is not None and self.clock() - last < self.window

    def mark(self, key: str) -> None:
        self._last[key] = self.clock()

    def forget(self, key: str) -> None:
        self._last.pop(key, None)

    def reset(self) -> None:
        self._last.clear()
