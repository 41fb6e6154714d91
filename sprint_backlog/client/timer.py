from __future__ import annotations

from typing import Any, Callable, Optional, Set
import asyncio
import logging

logger = logging.getLogger(__name__)


class TimerHandle:
    """Cancellable handle for one scheduled callback."""

    def __init__(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle
        self.fired = False

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()

    @property
    def pending(self) -> bool:
        return not self.fired and not self.cancelled


class DebounceTimer:
    """
    Runs at most one scheduled callback at a time.

    ``schedule`` cancels whatever was scheduled before, so a burst of calls
    inside the delay window collapses into the last one. Coroutine callbacks
    run as tasks owned by the timer; ``drain`` waits for them.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._handle: Optional[TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        """True while a callback is waiting for its delay to elapse."""
        return self._handle is not None and self._handle.pending

    @property
    def running(self) -> bool:
        """True while a coroutine callback started by this timer is still running."""
        return bool(self._tasks)

    def schedule(self, delay: float, fn: Callable[[], Any]) -> TimerHandle:
        """Run ``fn`` after ``delay`` seconds, replacing any earlier schedule."""
        self.cancel()

        loop = self._loop or asyncio.get_running_loop()
        handle = TimerHandle(loop.call_later(max(delay, 0), self._fire, fn))
        self._handle = handle
        return handle

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def drain(self) -> None:
        """Wait until every callback task started by this timer has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self, fn: Callable[[], Any]) -> None:
        if self._handle is not None:
            self._handle.fired = True
        self._handle = None

        result = fn()
        if asyncio.iscoroutine(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Scheduled callback failed: %s", task.exception())
