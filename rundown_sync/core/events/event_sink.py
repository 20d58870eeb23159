"""
Event sink interfaces.

Sinks consume the domain events emitted by the sync controllers: indicator
transitions, save outcomes, conflicts and reorders.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


class EventSink(Protocol):
    def on_event(self, event: Any) -> None:
        """Consume a domain event. Must not block the event loop."""


@runtime_checkable
class ClosableEventSink(Protocol):
    """Sink holding a resource (file handle, connection) released at session end."""

    def on_event(self, event: Any) -> None:
        """Consume a domain event."""

    def close(self) -> None:
        """Flush and release the resource. Safe to call twice."""
