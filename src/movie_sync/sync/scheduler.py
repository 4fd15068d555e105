"""Cancellable delayed tasks grouped by session."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from attrs import define, field

logger = logging.getLogger(__name__)


@define
class SessionScheduler:
    """Runs delayed callbacks on the event loop, grouped by session id.

    Cancelling a session drops its whole task table at once; a callback
    whose session is no longer registered never runs, even if it already
    woke up. Scheduling with a ``key`` replaces any pending task with the
    same key in that session. A cancelled session id stays dead: later
    attempts to schedule under it are ignored.
    """

    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    _sessions: dict[str, dict[str, asyncio.Task]] = field(factory=dict)
    _cancelled: set[str] = field(factory=set)
    _counter: int = 0

    def schedule(
        self,
        session_id: str,
        delay: float,
        callback: Callable[[], Awaitable[object]],
        key: str | None = None,
    ) -> asyncio.Task | None:
        """Run ``callback`` after ``delay`` seconds unless the session is cancelled first."""
        return self._spawn(session_id, key, self._run_once(session_id, delay, callback))

    def schedule_every(
        self,
        session_id: str,
        interval: float,
        callback: Callable[[], Awaitable[object]],
        key: str | None = None,
    ) -> asyncio.Task | None:
        """Run ``callback`` every ``interval`` seconds until the session is cancelled."""
        return self._spawn(session_id, key, self._run_every(session_id, interval, callback))

    def _spawn(self, session_id: str, key: str | None, coro) -> asyncio.Task | None:
        if session_id in self._cancelled:
            coro.close()
            logger.debug(f"Not scheduling for ended session {session_id}")
            return None
        if key is None:
            self._counter += 1
            key = f"task-{self._counter}"
        tasks = self._sessions.setdefault(session_id, {})
        previous = tasks.pop(key, None)
        if previous is not None:
            previous.cancel()
        task = asyncio.ensure_future(coro)
        tasks[key] = task
        task.add_done_callback(lambda t: self._forget(session_id, key, t))
        return task

    def _forget(self, session_id: str, key: str, task: asyncio.Task) -> None:
        tasks = self._sessions.get(session_id)
        if tasks is not None and tasks.get(key) is task:
            del tasks[key]

    def _is_live(self, session_id: str) -> bool:
        return session_id in self._sessions

    async def _run_once(self, session_id: str, delay: float, callback) -> None:
        await self.sleep(delay)
        if not self._is_live(session_id):
            return
        await self._invoke(callback)

    async def _run_every(self, session_id: str, interval: float, callback) -> None:
        while True:
            await self.sleep(interval)
            if not self._is_live(session_id):
                return
            await self._invoke(callback)

    async def _invoke(self, callback) -> None:
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled task failed")

    def pending(self, session_id: str) -> int:
        return len(self._sessions.get(session_id, {}))

    def cancel_session(self, session_id: str | None) -> int:
        """Cancel every pending task of ``session_id``. Returns how many were pending."""
        if session_id is None:
            return 0
        self._cancelled.add(session_id)
        tasks = self._sessions.pop(session_id, {})
        for task in tasks.values():
            task.cancel()
        if tasks:
            logger.debug(f"Cancelled {len(tasks)} pending task(s) for session {session_id}")
        return len(tasks)

    async def aclose(self) -> None:
        """Cancel every session and wait for the tasks to finish unwinding."""
        tasks = [t for session in self._sessions.values() for t in session.values()]
        self._sessions.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
