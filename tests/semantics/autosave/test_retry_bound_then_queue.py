"""
Semantic test: bounded retries with exponential backoff.

Invariant:
A persistently failing save is attempted 1 + max_retries times, spaced by
2 s, 4 s and 8 s, and then queued for later instead of retried forever.
"""

from __future__ import annotations

import asyncio

from rundown_sync.core.domain import indicator_state_machine as indicator
from rundown_sync.core.domain.failure_reasons import SaveFailureReason
from rundown_sync.core.domain.types import Rundown
from rundown_sync.core.events.event_bus import EventBus
from rundown_sync.core.events.events import IndicatorTransitionEvent, SaveEvent
from rundown_sync.core.events.sinks.null_event_bus import RecordingSink
from rundown_sync.core.sync.autosave_controller import AutoSaveController
from rundown_sync.core.timing.scheduler import ManualScheduler
from rundown_sync.gateway.memory_gateway import InMemoryPersistenceGateway


def test_failing_save_is_retried_three_times_then_queued() -> None:
    async def scenario() -> None:
        scheduler = ManualScheduler()
        start = scheduler.utcnow()
        gateway = InMemoryPersistenceGateway([Rundown(id=1, title="Evening show")], clock=scheduler.utcnow)
        document = gateway.stored(1)
        sink = RecordingSink()
        controller = AutoSaveController(
            document=document,
            gateway=gateway,
            event_bus=EventBus(sinks=[sink]),
            scheduler=scheduler,
        )

        gateway.fail_always("update_document")
        document.title = "Evening show (late edit)"
        controller.mark_dirty()

        # Stay clear of anything beyond the retry cycle.
        await scheduler.advance(29.0)

        assert gateway.call_count("update_document") == 4

        errors = [e for e in sink.of_type(SaveEvent) if e.event_type == "error"]
        offsets = [(e.ts - start).total_seconds() for e in errors]
        assert offsets == [2.5, 4.5, 8.5, 16.5]
        assert [e.retry_count for e in errors] == [1, 2, 3, 0]
        assert [e.trigger for e in errors] == ["debounce", "retry", "retry", "retry"]
        assert {e.reason for e in errors} == {SaveFailureReason.NETWORK}

        states = [
            e.next_state
            for e in sink.of_type(IndicatorTransitionEvent)
            if e.next_state != indicator.SAVING
        ]
        assert states == [
            indicator.UNSAVED,
            indicator.RETRYING,
            indicator.RETRYING,
            indicator.RETRYING,
            indicator.QUEUED,
        ]

        status = controller.get_status()
        assert status.dirty is True
        assert status.retry_count == 0
        assert status.pending_saves == 1
        assert scheduler.pending_timers == 0

    asyncio.run(scenario())


def test_success_after_failure_resets_retry_count() -> None:
    async def scenario() -> None:
        scheduler = ManualScheduler()
        gateway = InMemoryPersistenceGateway([Rundown(id=1, title="Evening show")], clock=scheduler.utcnow)
        document = gateway.stored(1)
        controller = AutoSaveController(
            document=document,
            gateway=gateway,
            event_bus=EventBus(),
            scheduler=scheduler,
        )

        gateway.fail_next("update_document")
        controller.mark_dirty()
        await scheduler.advance(2.5)
        assert controller.get_status().retry_count == 1
        assert controller.indicator == indicator.RETRYING

        await scheduler.advance(2.0)
        status = controller.get_status()
        assert gateway.call_count("update_document") == 2
        assert status.retry_count == 0
        assert status.dirty is False
        assert controller.indicator == indicator.SAVED

    asyncio.run(scenario())


def test_new_edit_cancels_pending_retry() -> None:
    async def scenario() -> None:
        scheduler = ManualScheduler()
        gateway = InMemoryPersistenceGateway([Rundown(id=1, title="Evening show")], clock=scheduler.utcnow)
        document = gateway.stored(1)
        controller = AutoSaveController(
            document=document,
            gateway=gateway,
            event_bus=EventBus(),
            scheduler=scheduler,
        )

        gateway.fail_next("update_document")
        controller.mark_dirty()
        await scheduler.advance(2.5)

        # The retry would fire at t=4.5; an edit at t=3.0 replaces it with a
        # fresh quiet period ending at t=5.5.
        await scheduler.advance(0.5)
        controller.mark_dirty()
        await scheduler.advance(2.0)
        assert gateway.call_count("update_document") == 1

        await scheduler.advance(0.5)
        assert gateway.call_count("update_document") == 2
        assert controller.get_status().dirty is False

    asyncio.run(scenario())
