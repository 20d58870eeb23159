"""
Semantic test: edits made while a save is in flight are not lost.

Invariant:
A save that succeeds after an edit arrived mid-flight leaves the document
dirty and schedules another save, which then persists the late edit.
"""

from __future__ import annotations

import asyncio

from rundown_sync.core.domain import indicator_state_machine as indicator
from rundown_sync.core.domain.types import Rundown
from rundown_sync.core.events.sinks.null_event_bus import NullEventBus
from rundown_sync.core.sync.autosave_controller import AutoSaveController
from rundown_sync.core.timing.scheduler import ManualScheduler
from rundown_sync.gateway.memory_gateway import InMemoryPersistenceGateway


def test_mid_flight_edit_triggers_follow_up_save() -> None:
    async def scenario() -> None:
        scheduler = ManualScheduler()
        gateway = InMemoryPersistenceGateway([Rundown(id=1, title="Draft")], clock=scheduler.utcnow)
        document = gateway.stored(1)
        controller = AutoSaveController(
            document=document,
            gateway=gateway,
            event_bus=NullEventBus(),
            scheduler=scheduler,
        )

        gate = gateway.hold("update_document")
        document.title = "First title"
        controller.mark_dirty()
        flight = asyncio.create_task(controller.save_now())
        for _ in range(5):
            await asyncio.sleep(0)

        # Edit while the first snapshot is on the wire.
        document.title = "Second title"
        controller.mark_dirty()

        gateway.release("update_document")
        assert gate.is_set()
        assert await flight is True

        status = controller.get_status()
        assert status.dirty is True
        assert controller.indicator == indicator.UNSAVED
        assert gateway.stored(1).title == "First title"
        assert scheduler.pending_timers >= 1

        await scheduler.advance(2.5)

        assert gateway.call_count("update_document") == 2
        assert gateway.stored(1).title == "Second title"
        assert controller.get_status().dirty is False

    asyncio.run(scenario())
