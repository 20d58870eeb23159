"""
Synchronous event bus for one editing session.

Sinks see every event. Listeners registered with subscribe() see only one
event type; the view layer uses them to re-render the save indicator.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, TypeVar

from rundown_sync.core.events.event_sink import ClosableEventSink, EventSink

LOGGER = logging.getLogger(__name__)

E = TypeVar("E")


class EventBus:
    """Dispatches events to sinks and typed listeners.

    Dispatch is synchronous and in registration order. A failing sink or
    listener is logged and skipped; it must not break the controller that
    emitted the event.
    """

    def __init__(self, sinks: Iterable[EventSink] | None = None) -> None:
        self._sinks: list[EventSink] = list(sinks) if sinks is not None else []
        self._listeners: dict[type, list[Callable[[Any], None]]] = {}
        self._closed = False

    def register(self, sink: EventSink) -> None:
        """Register a new sink."""
        self._sinks.append(sink)

    def subscribe(self, event_type: type[E], listener: Callable[[E], None]) -> Callable[[], None]:
        """Call ``listener`` for every event of ``event_type``.

        Returns a function that removes the subscription.
        """
        listeners = self._listeners.setdefault(event_type, [])
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def emit(self, event: Any) -> None:
        """Emit an event to all sinks, then to listeners of its type."""
        if self._closed:
            LOGGER.debug("Event emitted after close", extra={"event_type": type(event).__name__})
            return

        targets: list[Callable[[Any], None]] = [sink.on_event for sink in self._sinks]
        targets.extend(self._listeners.get(type(event), ()))

        for target in targets:
            try:
                target(event)
            except Exception:  # pylint: disable=broad-exception-caught
                LOGGER.exception(
                    "Event consumer failed",
                    extra={"consumer": getattr(target, "__qualname__", repr(target)), "event_type": type(event).__name__},
                )

    def close(self) -> None:
        """Close every sink that holds a resource. Later emits are dropped."""
        if self._closed:
            return
        self._closed = True

        for sink in self._sinks:
            if isinstance(sink, ClosableEventSink):
                sink.close()
        self._listeners.clear()
