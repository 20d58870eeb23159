"""Editing session wiring.

An EditingSession owns everything that lives for one open rundown: the
shared Rundown object, the event bus, the per-document write slot, the
AutoSaveController and the ReorderCoordinator. The view layer holds the
session and nothing else.
"""

# pylint: disable=too-many-arguments
from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable

from rundown_sync.core.events.event_bus import EventBus
from rundown_sync.core.events.sinks.file_recorder import FileRecorderSink
from rundown_sync.core.events.sinks.prometheus_sink import PrometheusEventSink
from rundown_sync.core.events.sinks.sink_logging import LoggingEventSink
from rundown_sync.core.sync.autosave_config import AutoSaveConfig
from rundown_sync.core.sync.autosave_controller import AutoSaveController
from rundown_sync.core.sync.reorder_coordinator import ReorderCoordinator
from rundown_sync.core.sync.write_slot import DocumentWriteSlot
from rundown_sync.core.timing.scheduler import AsyncioScheduler

if TYPE_CHECKING:
    from prometheus_client import CollectorRegistry

    from rundown_sync.core.domain.types import Rundown
    from rundown_sync.core.events.event_sink import EventSink
    from rundown_sync.core.ports.conflict_decision import ConflictDecisionProvider
    from rundown_sync.core.ports.persistence_gateway import PersistenceGateway
    from rundown_sync.core.timing.scheduler import Scheduler

LOGGER = logging.getLogger(__name__)


def build_event_bus(
    *,
    sinks: Iterable[EventSink] | None = None,
    record_path: str | Path | None = None,
    metrics_registry: CollectorRegistry | None = None,
) -> EventBus:
    """Event bus with a logging sink and optional recorder, metrics and extra sinks.

    Passing ``metrics_registry`` adds a PrometheusEventSink that registers
    its collectors there.
    """
    bus_sinks: list[EventSink] = [LoggingEventSink(logging.getLogger("rundown_sync.events"))]
    if record_path is not None:
        bus_sinks.append(FileRecorderSink(record_path))
    if metrics_registry is not None:
        bus_sinks.append(PrometheusEventSink(metrics_registry))
    bus_sinks.extend(sinks or [])
    return EventBus(sinks=bus_sinks)


class EditingSession:
    """One open rundown and the controllers acting on it."""

    def __init__(
        self,
        *,
        document: Rundown,
        gateway: PersistenceGateway,
        scheduler: Scheduler | None = None,
        config: AutoSaveConfig | None = None,
        decision_provider: ConflictDecisionProvider | None = None,
        event_bus: EventBus | None = None,
        online: bool = True,
    ) -> None:
        self.document = document
        self.gateway = gateway
        self.scheduler = scheduler if scheduler is not None else AsyncioScheduler()
        self.config = config if config is not None else AutoSaveConfig()
        self.event_bus = event_bus if event_bus is not None else build_event_bus()

        # Auto-save and reorder share one slot: one outstanding write per rundown.
        self.write_slot = DocumentWriteSlot(document.id)

        self.autosave = AutoSaveController(
            document=document,
            gateway=gateway,
            event_bus=self.event_bus,
            scheduler=self.scheduler,
            config=self.config,
            decision_provider=decision_provider,
            write_slot=self.write_slot,
            online=online,
        )
        self.reorder = ReorderCoordinator(
            document=document,
            gateway=gateway,
            event_bus=self.event_bus,
            scheduler=self.scheduler,
            write_slot=self.write_slot,
            request_timeout_s=self.config.request_timeout_s,
        )
        self._opened = False
        self._closed = False

    @classmethod
    async def load(
        cls,
        gateway: PersistenceGateway,
        document_id: int,
        **kwargs: Any,
    ) -> EditingSession:
        """Fetch a rundown from the gateway and open a session on it."""
        document = await gateway.get_document(document_id)
        session = cls(document=document, gateway=gateway, **kwargs)
        session.open()
        return session

    def open(self) -> None:
        if self._opened:
            return
        self._opened = True
        self.autosave.start()
        LOGGER.info(
            "Editing session opened",
            extra={"document_id": self.document.id, "segments": len(self.document.segments)},
        )

    async def close(self) -> None:
        """Flush unsaved edits (best effort) and release every timer and sink."""
        if self._closed:
            return
        self._closed = True

        if isinstance(self.scheduler, AsyncioScheduler):
            # Let timer-driven saves already on the wire finish first.
            await self.scheduler.drain()

        if self.autosave.get_status().dirty:
            saved = await self.autosave.save_now("unload")
            if not saved:
                LOGGER.warning(
                    "Session closed with unsaved changes",
                    extra={"document_id": self.document.id},
                )

        self.autosave.close()
        self.event_bus.close()
        LOGGER.info("Editing session closed", extra={"document_id": self.document.id})

    async def __aenter__(self) -> EditingSession:
        self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
