"""
Domain event models.

These events represent immutable facts observed during an editing session.
They are consumed by the view layer, loggers, recorders, and metrics.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

SaveEventType = Literal["success", "error"]


@dataclass(slots=True)
class IndicatorTransitionEvent:
    ts: datetime
    document_id: int
    prev_state: str
    next_state: str


@dataclass(slots=True)
class SaveEvent:
    ts: datetime
    document_id: int
    event_type: SaveEventType

    # What started the attempt: debounce | periodic | retry | manual | pending | ...
    trigger: str

    duration_ms: float | None = None
    error: str | None = None
    reason: str | None = None
    retry_count: int = 0


@dataclass(slots=True)
class ConflictDetectedEvent:
    ts: datetime
    document_id: int

    local_last_save: datetime | None
    server_last_modified: datetime


@dataclass(slots=True)
class ConflictResolvedEvent:
    ts: datetime
    document_id: int

    choice: str
    succeeded: bool


@dataclass(slots=True)
class ReorderEvent:
    ts: datetime
    document_id: int

    accepted: bool
    ordered_ids: list[int | str] = field(default_factory=list)

    error: str | None = None
    reason: str | None = None
    # True when canonical state was re-fetched after a rejection.
    reloaded: bool = False
