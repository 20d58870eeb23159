"""
In-memory and no-op event consumers (used for tests and scripted runs).
"""
from __future__ import annotations

from typing import Any, TypeVar

from rundown_sync.core.events.event_bus import EventBus

E = TypeVar("E")


class NullEventBus(EventBus):
    """EventBus without sinks; every event is dropped (used for tests)."""

    def __init__(self) -> None:
        super().__init__(sinks=())


class RecordingSink:
    """Keeps every event in memory, in emission order."""

    def __init__(self) -> None:
        self.events: list[Any] = []

    def on_event(self, event: Any) -> None:
        self.events.append(event)

    def of_type(self, event_type: type[E]) -> list[E]:
        return [event for event in self.events if isinstance(event, event_type)]

    def clear(self) -> None:
        self.events.clear()
