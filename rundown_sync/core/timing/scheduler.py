"""Scheduling boundary for timers and background work.

Controllers never touch the event loop directly. They schedule callbacks and
spawn coroutines through a Scheduler, which lets tests replace wall-clock
time with a deterministic virtual clock.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Coroutine, Protocol

LOGGER = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        """Cancel the timer if it has not fired yet."""


class Scheduler(Protocol):
    """Timer and task boundary used by the sync controllers."""

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay_s`` seconds."""

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run ``coro`` in the background."""

    def monotonic(self) -> float:
        """Monotonic time in seconds, used for durations."""

    def utcnow(self) -> datetime:
        """Timezone-aware wall-clock time, used for save timestamps."""


def _log_task_failure(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.error(
            "Background task failed",
            exc_info=exc,
            extra={"task": task.get_name()},
        )


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task[Any]] = set()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        return self._get_loop().call_later(max(0.0, delay_s), callback)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = self._get_loop().create_task(coro)
        # Keep a strong reference until completion.
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(_log_task_failure)
        return task

    def monotonic(self) -> float:
        return self._get_loop().time()

    def utcnow(self) -> datetime:
        return datetime.now(timezone.utc)

    async def drain(self) -> None:
        """Wait until every spawned task has finished."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)


# ---------------------------------------------------------------------------
# Deterministic scheduler
# ---------------------------------------------------------------------------

_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


@dataclass(order=True, slots=True)
class _ManualTimer:
    due: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-clock scheduler driven by explicit advance() calls (used for tests).

    Timers fire in due order; after each timer the spawned tasks are drained
    so the effects of one timer are fully applied before the next one fires.
    Network calls in tests are expected to complete without real waiting.
    """

    def __init__(self, start: datetime = _EPOCH) -> None:
        self._start = start
        self._now = 0.0
        self._seq = itertools.count()
        self._timers: list[_ManualTimer] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _ManualTimer(
            due=self._now + max(0.0, delay_s),
            seq=next(self._seq),
            callback=callback,
        )
        heapq.heappush(self._timers, timer)
        return timer

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(_log_task_failure)
        return task

    def monotonic(self) -> float:
        return self._now

    def utcnow(self) -> datetime:
        return self._start + timedelta(seconds=self._now)

    @property
    def pending_timers(self) -> int:
        return sum(1 for timer in self._timers if not timer.cancelled)

    async def settle(self) -> None:
        """Run spawned tasks until none are left."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                # Give done-callbacks and freshly scheduled steps a chance to run.
                await asyncio.sleep(0)
                if not any(not task.done() for task in self._tasks):
                    return
                continue
            await asyncio.gather(*pending, return_exceptions=True)

    async def advance(self, seconds: float) -> None:
        """Move the virtual clock forward, firing every timer that becomes due."""
        target = self._now + seconds
        await self.settle()
        while self._timers and self._timers[0].due <= target:
            timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = timer.due
            timer.callback()
            await self.settle()
        self._now = target
