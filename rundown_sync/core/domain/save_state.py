"""Runtime save state.

These models are intentionally NOT part of the persisted schema. They hold
transient, in-memory state owned by one AutoSaveController for the lifetime
of one editing session.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from rundown_sync.core.domain.indicator_state_machine import IDLE

if TYPE_CHECKING:
    from rundown_sync.core.domain.types import RundownSnapshot


DEFAULT_PENDING_QUEUE_LIMIT: int = 5


@dataclass(slots=True)
class PendingSave:
    """A snapshot stored for later transmission (data only, no policy)."""

    snapshot: RundownSnapshot
    queued_at: datetime
    reason: str


@dataclass(slots=True)
class SaveState:
    """Mutable save bookkeeping for one document."""

    enabled: bool = True
    dirty: bool = False
    in_flight: bool = False
    online: bool = True

    # Consecutive failed attempts in the current retry cycle.
    retry_count: int = 0
    last_save_time: datetime | None = None

    indicator: str = IDLE

    # Monotone edit counter, bumped on every mark_dirty().
    generation: int = 0

    # Bounded: appending past the limit silently drops the oldest snapshot.
    pending: deque[PendingSave] = field(
        default_factory=lambda: deque(maxlen=DEFAULT_PENDING_QUEUE_LIMIT)
    )

    def latest_pending(self) -> PendingSave | None:
        if not self.pending:
            return None
        # Ties resolve to the most recently appended entry.
        return max(reversed(self.pending), key=lambda item: item.queued_at)


@dataclass(frozen=True, slots=True)
class SaveStatus:
    """Read-only snapshot of SaveState for display and tests."""

    enabled: bool
    dirty: bool
    in_flight: bool
    online: bool
    retry_count: int
    last_save_time: datetime | None
    pending_saves: int
    indicator: str

    @classmethod
    def from_state(cls, state: SaveState) -> SaveStatus:
        return cls(
            enabled=state.enabled,
            dirty=state.dirty,
            in_flight=state.in_flight,
            online=state.online,
            retry_count=state.retry_count,
            last_save_time=state.last_save_time,
            pending_saves=len(state.pending),
            indicator=state.indicator,
        )

    def last_saved_label(self, now: datetime) -> str:
        """Human-readable age of the last save, e.g. "3 minutes ago"."""
        return format_last_save_time(self.last_save_time, now)


def format_last_save_time(saved_at: datetime | None, now: datetime) -> str:
    if saved_at is None:
        return "Never"

    elapsed_s = (now - saved_at).total_seconds()
    if elapsed_s < 60:
        return "Just now"
    if elapsed_s < 3600:
        minutes = int(elapsed_s // 60)
        return f"{minutes} minute{'s' if minutes > 1 else ''} ago"
    return saved_at.strftime("%H:%M")
