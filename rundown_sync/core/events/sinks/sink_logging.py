"""
Logging event sink.
"""
from __future__ import annotations

import logging
from typing import Any

from rundown_sync.core.events.events import ReorderEvent, SaveEvent


def _is_failure(event: Any) -> bool:
    if isinstance(event, SaveEvent):
        return event.event_type == "error"
    if isinstance(event, ReorderEvent):
        return not event.accepted
    return False


class LoggingEventSink:
    """Logs domain events with the document id and event type as structured fields.

    Failed saves and rejected reorders are logged at WARNING, everything
    else at INFO.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def on_event(self, event: Any) -> None:
        level = logging.WARNING if _is_failure(event) else logging.INFO
        self._logger.log(
            level,
            "domain_event",
            extra={
                "event_type": type(event).__name__,
                "document_id": getattr(event, "document_id", None),
                "event": event,
            },
        )
