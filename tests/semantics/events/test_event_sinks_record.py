"""
Semantic test: event sinks.

Invariant:
Every emitted event reaches every sink and typed listener; a failing sink
is isolated; nothing is delivered after close. The file recorder writes
one JSON object per event and the Prometheus sink counts saves, failures,
reorders and conflicts, also when wired in by build_event_bus.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from prometheus_client import CollectorRegistry

from rundown_sync.core.events.event_bus import EventBus
from rundown_sync.core.events.events import (
    ConflictDetectedEvent,
    IndicatorTransitionEvent,
    ReorderEvent,
    SaveEvent,
)
from rundown_sync.core.events.sinks.file_recorder import FileRecorderSink
from rundown_sync.core.events.sinks.null_event_bus import RecordingSink
from rundown_sync.core.events.sinks.prometheus_sink import PrometheusEventSink
from rundown_sync.session import build_event_bus

TS = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class _BrokenSink:
    def on_event(self, event: object) -> None:
        raise RuntimeError("sink down")


def test_failing_sink_does_not_block_others() -> None:
    recorder = RecordingSink()
    bus = EventBus(sinks=[_BrokenSink(), recorder])

    bus.emit(SaveEvent(ts=TS, document_id=1, event_type="success", trigger="manual"))

    assert len(recorder.events) == 1


def test_file_recorder_writes_json_lines(tmp_path: Path) -> None:
    path = tmp_path / "events" / "session.jsonl"
    bus = EventBus(sinks=[FileRecorderSink(path)])

    bus.emit(IndicatorTransitionEvent(ts=TS, document_id=1, prev_state="idle", next_state="unsaved"))
    bus.emit(ReorderEvent(ts=TS, document_id=1, accepted=True, ordered_ids=[3, 1, 2]))
    bus.close()

    lines = path.read_text(encoding="utf-8").splitlines()
    records = [json.loads(line) for line in lines]

    assert [r["event_type"] for r in records] == ["IndicatorTransitionEvent", "ReorderEvent"]
    assert records[0]["ts"] == TS.isoformat()
    assert records[1]["ordered_ids"] == [3, 1, 2]


def test_prometheus_sink_counts_domain_events() -> None:
    registry = CollectorRegistry()
    bus = EventBus(sinks=[PrometheusEventSink(registry)])

    bus.emit(SaveEvent(ts=TS, document_id=1, event_type="success", trigger="debounce", duration_ms=250.0))
    bus.emit(SaveEvent(ts=TS, document_id=1, event_type="error", trigger="retry", reason="timeout"))
    bus.emit(ReorderEvent(ts=TS, document_id=1, accepted=False, reason="rejected"))
    bus.emit(
        ConflictDetectedEvent(
            ts=TS,
            document_id=1,
            local_last_save=TS,
            server_last_modified=TS,
        )
    )

    assert registry.get_sample_value(
        "rundown_saves_total", {"outcome": "success", "trigger": "debounce"}
    ) == 1.0
    assert registry.get_sample_value("rundown_save_failures_total", {"reason": "timeout"}) == 1.0
    assert registry.get_sample_value("rundown_save_duration_seconds_count") == 1.0
    assert registry.get_sample_value("rundown_save_duration_seconds_sum") == 0.25
    assert registry.get_sample_value("rundown_reorders_total", {"outcome": "rejected"}) == 1.0
    assert registry.get_sample_value("rundown_conflicts_total") == 1.0


def test_typed_listener_sees_only_its_event_type() -> None:
    bus = EventBus()
    seen: list[str] = []
    unsubscribe = bus.subscribe(IndicatorTransitionEvent, lambda e: seen.append(e.next_state))

    bus.emit(IndicatorTransitionEvent(ts=TS, document_id=1, prev_state="idle", next_state="unsaved"))
    bus.emit(SaveEvent(ts=TS, document_id=1, event_type="success", trigger="manual"))
    unsubscribe()
    bus.emit(IndicatorTransitionEvent(ts=TS, document_id=1, prev_state="unsaved", next_state="saving"))

    assert seen == ["unsaved"]


def test_closed_bus_drops_events_and_recorder_creates_no_file(tmp_path: Path) -> None:
    path = tmp_path / "unused.jsonl"
    recorder = RecordingSink()
    file_sink = FileRecorderSink(path)
    bus = EventBus(sinks=[recorder, file_sink])

    bus.close()
    bus.emit(SaveEvent(ts=TS, document_id=1, event_type="success", trigger="manual"))

    assert recorder.events == []
    assert file_sink.records_written == 0
    assert not path.exists()


def test_build_event_bus_wires_metrics_registry() -> None:
    registry = CollectorRegistry()
    bus = build_event_bus(metrics_registry=registry)

    bus.emit(SaveEvent(ts=TS, document_id=1, event_type="success", trigger="manual", duration_ms=100.0))
    bus.emit(IndicatorTransitionEvent(ts=TS, document_id=1, prev_state="saving", next_state="saved"))

    assert registry.get_sample_value(
        "rundown_saves_total", {"outcome": "success", "trigger": "manual"}
    ) == 1.0
    assert registry.get_sample_value("rundown_indicator_transitions_total", {"state": "saved"}) == 1.0
