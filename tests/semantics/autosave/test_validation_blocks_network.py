"""
Semantic test: local validation failure.

Invariant:
A rundown without a title is never sent. The failure surfaces as the error
indicator with reason "validation" and does not start a retry cycle.
"""

from __future__ import annotations

import asyncio

from rundown_sync.core.domain import indicator_state_machine as indicator
from rundown_sync.core.domain.failure_reasons import SaveFailureReason
from rundown_sync.core.domain.types import Rundown
from rundown_sync.core.events.event_bus import EventBus
from rundown_sync.core.events.events import SaveEvent
from rundown_sync.core.events.sinks.null_event_bus import RecordingSink
from rundown_sync.core.sync.autosave_controller import AutoSaveController
from rundown_sync.core.timing.scheduler import ManualScheduler
from rundown_sync.gateway.memory_gateway import InMemoryPersistenceGateway


def test_blank_title_is_rejected_locally() -> None:
    async def scenario() -> None:
        scheduler = ManualScheduler()
        gateway = InMemoryPersistenceGateway([Rundown(id=1, title="Pilot")], clock=scheduler.utcnow)
        document = gateway.stored(1)
        sink = RecordingSink()
        controller = AutoSaveController(
            document=document,
            gateway=gateway,
            event_bus=EventBus(sinks=[sink]),
            scheduler=scheduler,
        )

        document.title = "   "
        controller.mark_dirty()
        await scheduler.advance(2.5)

        assert gateway.calls == []
        assert controller.indicator == indicator.ERROR
        assert controller.get_status().retry_count == 0
        assert controller.get_status().dirty is True
        assert scheduler.pending_timers == 0

        (event,) = sink.of_type(SaveEvent)
        assert event.event_type == "error"
        assert event.reason == SaveFailureReason.VALIDATION

        assert await controller.save_now() is False
        assert gateway.calls == []

        # Fixing the title and editing again restarts the normal cycle.
        document.title = "Pilot"
        controller.mark_dirty()
        await scheduler.advance(2.5)
        assert gateway.call_count("update_document") == 1
        assert controller.get_status().dirty is False

    asyncio.run(scenario())
