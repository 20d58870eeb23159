"""
Semantic test: offline queueing.

Invariant:
While offline no request is sent and snapshots are queued; on return to
online exactly one request is sent, carrying the most recent snapshot.
"""

from __future__ import annotations

import asyncio

from rundown_sync.core.domain import indicator_state_machine as indicator
from rundown_sync.core.domain.types import Rundown
from rundown_sync.core.events.event_bus import EventBus
from rundown_sync.core.events.events import SaveEvent
from rundown_sync.core.events.sinks.null_event_bus import RecordingSink
from rundown_sync.core.sync.autosave_config import AutoSaveConfig
from rundown_sync.core.sync.autosave_controller import AutoSaveController
from rundown_sync.core.timing.scheduler import ManualScheduler
from rundown_sync.gateway.memory_gateway import InMemoryPersistenceGateway


def test_reconnect_flushes_only_latest_snapshot() -> None:
    async def scenario() -> None:
        scheduler = ManualScheduler()
        gateway = InMemoryPersistenceGateway([Rundown(id=1, title="Weekly recap")], clock=scheduler.utcnow)
        document = gateway.stored(1)
        sink = RecordingSink()
        controller = AutoSaveController(
            document=document,
            gateway=gateway,
            event_bus=EventBus(sinks=[sink]),
            scheduler=scheduler,
        )
        controller.start()

        controller.set_online(False)

        document.title = "Weekly recap v1"
        controller.mark_dirty()
        await scheduler.advance(2.5)
        assert controller.indicator == indicator.OFFLINE

        document.title = "Weekly recap v2"
        controller.mark_dirty()
        await scheduler.advance(2.5)

        # The periodic fallback is suppressed while offline as well.
        await scheduler.advance(40.0)

        assert gateway.calls == []
        assert controller.get_status().pending_saves == 2

        controller.set_online(True)
        await scheduler.settle()

        assert gateway.call_count("update_document") == 1
        assert gateway.stored(1).title == "Weekly recap v2"

        status = controller.get_status()
        assert status.pending_saves == 0
        assert status.dirty is False
        assert controller.indicator == indicator.SAVED

        successes = [e for e in sink.of_type(SaveEvent) if e.event_type == "success"]
        assert [e.trigger for e in successes] == ["pending"]

        controller.close()

    asyncio.run(scenario())


def test_manual_save_while_offline_is_queued() -> None:
    async def scenario() -> None:
        scheduler = ManualScheduler()
        gateway = InMemoryPersistenceGateway([Rundown(id=1, title="Weekly recap")], clock=scheduler.utcnow)
        document = gateway.stored(1)
        controller = AutoSaveController(
            document=document,
            gateway=gateway,
            event_bus=EventBus(),
            scheduler=scheduler,
            online=False,
        )

        controller.mark_dirty()
        assert await controller.save_now() is False
        assert gateway.calls == []
        assert controller.get_status().pending_saves == 1
        assert controller.indicator == indicator.OFFLINE

    asyncio.run(scenario())


def test_pending_queue_is_bounded() -> None:
    async def scenario() -> None:
        scheduler = ManualScheduler()
        gateway = InMemoryPersistenceGateway([Rundown(id=1, title="Weekly recap")], clock=scheduler.utcnow)
        document = gateway.stored(1)
        controller = AutoSaveController(
            document=document,
            gateway=gateway,
            event_bus=EventBus(),
            scheduler=scheduler,
            config=AutoSaveConfig(pending_queue_limit=2),
            online=False,
        )

        for n in range(4):
            document.title = f"Weekly recap v{n}"
            controller.mark_dirty()
            await scheduler.advance(2.5)

        assert controller.get_status().pending_saves == 2

        controller.set_online(True)
        await scheduler.settle()
        assert gateway.call_count("update_document") == 1
        assert gateway.stored(1).title == "Weekly recap v3"

    asyncio.run(scenario())
