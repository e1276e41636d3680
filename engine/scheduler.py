"""Cancellable delayed callbacks used to pace combat turns."""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable, Protocol


class Handle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything that can run a callback after a delay and cancel it."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle: ...


class AsyncioScheduler:
    """Schedules callbacks on an asyncio event loop.

    Without an explicit loop, the running loop at call time is used, so
    callers must be on the loop thread (async endpoints, other callbacks).
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay), callback)


class ManualHandle:
    """Handle returned by ManualScheduler."""

    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """A virtual clock for tests: nothing runs until the test says so."""

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[tuple[float, int, ManualHandle, Callable[[], None]]] = []
        self._counter = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle()
        heapq.heappush(self._queue, (self.now + max(0.0, delay), next(self._counter), handle, callback))
        return handle

    @property
    def pending(self) -> int:
        """Number of scheduled, not yet cancelled callbacks."""
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def run_next(self) -> bool:
        """Advance the clock to the next callback and run it.

        Returns:
            False if nothing was left to run.
        """
        while self._queue:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.now = max(self.now, due)
            callback()
            return True
        return False

    def run_all(self, limit: int = 1000) -> int:
        """Run callbacks (including ones they schedule) until the queue drains.

        Raises:
            RuntimeError: If more than ``limit`` callbacks run.
        """
        ran = 0
        while self.run_next():
            ran += 1
            if ran > limit:
                raise RuntimeError(f"Scheduler did not settle after {limit} callbacks")
        return ran
