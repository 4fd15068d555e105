"""Per-resource minimum spacing between backend calls."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from attrs import define, field

logger = logging.getLogger(__name__)


@define
class BackoffTracker:
    """Tracks the last attempt per resource class and enforces a minimum interval.

    ``wait_if_needed`` only waits; the caller records its attempt with
    ``record_attempt`` once it actually issues the call, so waits that end
    without a call do not shift future timing. After a rate-limited
    response, ``penalize`` moves the last attempt into the future, which
    lengthens the next wait by the penalty.
    """

    min_interval: float = 5.0
    penalty: float = 10.0
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    _last_attempt: dict[str, float] = field(factory=dict)

    async def wait_if_needed(self, resource: str, min_interval: float | None = None) -> float:
        """Sleep until ``min_interval`` has passed since the last attempt. Returns the delay."""
        interval = self.min_interval if min_interval is None else min_interval
        last = self._last_attempt.get(resource)
        if last is None:
            return 0.0
        elapsed = self.clock() - last
        if elapsed >= interval:
            return 0.0
        delay = interval - elapsed
        logger.debug(f"Backoff: waiting {delay:.2f}s before next {resource} call")
        await self.sleep(delay)
        return delay

    def record_attempt(self, resource: str) -> None:
        self._last_attempt[resource] = self.clock()

    def penalize(
        self, resource: str, penalty: float | None = None, retry_after: float | None = None
    ) -> None:
        """Push the next allowed call for ``resource`` further out after throttling.

        A server-supplied ``retry_after`` lengthens the penalty but never shortens it.
        """
        extra = self.penalty if penalty is None else penalty
        if retry_after is not None:
            extra = max(extra, retry_after)
        self._last_attempt[resource] = self.clock() + extra
        logger.warning(f"Rate limited on {resource}, backing off {extra:.0f}s")

    def last_attempt(self, resource: str) -> float | None:
        return self._last_attempt.get(resource)

    def reset(self) -> None:
        self._last_attempt.clear()
