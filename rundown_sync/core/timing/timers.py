"""Debounce, retry, and periodic timers.

Thin cancellable wrappers over a Scheduler. None of them own any policy;
callers decide what to do when a timer fires.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from rundown_sync.core.timing.scheduler import Scheduler, TimerHandle


def backoff_delay_s(retry_count: int, *, base_s: float = 1.0, cap_s: float = 10.0) -> float:
    """Exponential backoff: ``min(base_s * 2**retry_count, cap_s)``."""
    if retry_count < 0:
        raise ValueError(f"retry_count must be >= 0, got {retry_count}")
    return min(base_s * (2 ** retry_count), cap_s)


class OneShotTimer:
    """Single pending callback; scheduling again replaces the pending one."""

    def __init__(self, scheduler: Scheduler, callback: Callable[[], None]) -> None:
        self._scheduler = scheduler
        self._callback = callback
        self._handle: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, delay_s: float) -> None:
        self.cancel()
        self._handle = self._scheduler.call_later(delay_s, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()


class Debouncer(OneShotTimer):
    """Fires once after a fixed quiet period with no further triggers."""

    def __init__(self, scheduler: Scheduler, delay_s: float, callback: Callable[[], None]) -> None:
        super().__init__(scheduler, callback)
        self.delay_s = delay_s

    def trigger(self) -> None:
        """(Re)start the quiet period."""
        self.schedule(self.delay_s)


class PeriodicTimer:
    """Fires every ``interval_s`` seconds until stopped."""

    def __init__(self, scheduler: Scheduler, interval_s: float, callback: Callable[[], None]) -> None:
        self._scheduler = scheduler
        self._callback = callback
        self.interval_s = interval_s
        self._handle: TimerHandle | None = None

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        if self._handle is None:
            self._handle = self._scheduler.call_later(self.interval_s, self._fire)

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        # Re-arm before running the callback so a stop() inside it sticks.
        self._handle = self._scheduler.call_later(self.interval_s, self._fire)
        self._callback()
