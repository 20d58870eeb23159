"""
Semantic test: conflict detection.

Invariant:
A conflict is reported only when the server's last-modified time is later
than this client's last successful save; without a local save, or when the
check itself fails, no conflict is reported.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

from rundown_sync.core.domain.errors import GatewayUnavailable
from rundown_sync.core.domain.types import Rundown
from rundown_sync.core.events.event_bus import EventBus
from rundown_sync.core.events.events import ConflictDetectedEvent
from rundown_sync.core.events.sinks.null_event_bus import RecordingSink
from rundown_sync.core.sync.autosave_controller import AutoSaveController
from rundown_sync.core.timing.scheduler import ManualScheduler
from rundown_sync.gateway.memory_gateway import InMemoryPersistenceGateway


def _build(scheduler: ManualScheduler, *, local_save_known: bool = True):
    gateway = InMemoryPersistenceGateway(
        [Rundown(id=1, title="Pilot", updated_at=scheduler.utcnow())],
        clock=scheduler.utcnow,
    )
    document = gateway.stored(1)
    if not local_save_known:
        document.updated_at = None
    sink = RecordingSink()
    controller = AutoSaveController(
        document=document,
        gateway=gateway,
        event_bus=EventBus(sinks=[sink]),
        scheduler=scheduler,
    )
    return gateway, sink, controller


def test_remote_write_after_local_save_is_a_conflict() -> None:
    async def scenario() -> None:
        scheduler = ManualScheduler()
        gateway, sink, controller = _build(scheduler)

        controller.mark_dirty()
        await scheduler.advance(2.5)
        assert controller.get_status().last_save_time == scheduler.utcnow()
        assert await controller.check_for_conflicts() is False

        await scheduler.advance(10.0)
        gateway.touch(1)

        assert await controller.check_for_conflicts() is True
        (event,) = sink.of_type(ConflictDetectedEvent)
        assert event.server_last_modified - event.local_last_save == timedelta(seconds=10)

    asyncio.run(scenario())


def test_no_local_save_means_no_conflict() -> None:
    async def scenario() -> None:
        scheduler = ManualScheduler()
        gateway, sink, controller = _build(scheduler, local_save_known=False)

        gateway.touch(1, delta=timedelta(hours=1))

        assert await controller.check_for_conflicts() is False
        assert sink.of_type(ConflictDetectedEvent) == []

    asyncio.run(scenario())


def test_failed_check_reports_no_conflict() -> None:
    async def scenario() -> None:
        scheduler = ManualScheduler()
        gateway, sink, controller = _build(scheduler)

        gateway.touch(1, delta=timedelta(hours=1))
        gateway.fail_next("get_last_modified", GatewayUnavailable("offline"))

        assert await controller.check_for_conflicts() is False
        assert sink.of_type(ConflictDetectedEvent) == []

    asyncio.run(scenario())
