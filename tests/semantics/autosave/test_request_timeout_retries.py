"""
Semantic test: request timeout.

Invariant:
A save whose gateway call outlives request_timeout_s fails with reason
"timeout", shows the retrying indicator and is retried after the backoff
delay like any other transient failure.
"""

from __future__ import annotations

import asyncio

from rundown_sync.core.domain import indicator_state_machine as indicator
from rundown_sync.core.domain.failure_reasons import SaveFailureReason
from rundown_sync.core.domain.types import Rundown
from rundown_sync.core.events.event_bus import EventBus
from rundown_sync.core.events.events import SaveEvent
from rundown_sync.core.events.sinks.null_event_bus import RecordingSink
from rundown_sync.core.sync.autosave_config import AutoSaveConfig
from rundown_sync.core.sync.autosave_controller import AutoSaveController
from rundown_sync.core.timing.scheduler import ManualScheduler
from rundown_sync.gateway.memory_gateway import InMemoryPersistenceGateway


def test_hung_save_times_out_and_is_retried() -> None:
    async def scenario() -> None:
        scheduler = ManualScheduler()
        gateway = InMemoryPersistenceGateway([Rundown(id=1, title="News at nine")], clock=scheduler.utcnow)
        document = gateway.stored(1)
        sink = RecordingSink()
        controller = AutoSaveController(
            document=document,
            gateway=gateway,
            event_bus=EventBus(sinks=[sink]),
            scheduler=scheduler,
            config=AutoSaveConfig(request_timeout_s=0.05),
        )

        gateway.hold("update_document")
        document.title = "News at nine (updated)"
        controller.mark_dirty()

        assert await controller.save_now() is False

        status = controller.get_status()
        assert status.in_flight is False
        assert status.dirty is True
        assert status.retry_count == 1
        assert controller.indicator == indicator.RETRYING

        (failure,) = [e for e in sink.of_type(SaveEvent) if e.event_type == "error"]
        assert failure.reason == SaveFailureReason.TIMEOUT
        assert failure.retry_count == 1

        gateway.release("update_document")
        await scheduler.advance(2.0)

        assert gateway.call_count("update_document") == 2
        assert gateway.stored(1).title == "News at nine (updated)"
        assert controller.get_status().dirty is False
        successes = [e for e in sink.of_type(SaveEvent) if e.event_type == "success"]
        assert [e.trigger for e in successes] == ["retry"]

    asyncio.run(scenario())
