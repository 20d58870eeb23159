"""
Prometheus metrics sink.

Counts saves, save failures by reason, reorders, conflicts and indicator
transitions for one editing session, with an optional Pushgateway push.
"""
from __future__ import annotations

import logging
import os
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Histogram, push_to_gateway

from rundown_sync.core.events.events import (
    ConflictDetectedEvent,
    IndicatorTransitionEvent,
    ReorderEvent,
    SaveEvent,
)

LOGGER = logging.getLogger(__name__)


class PrometheusEventSink:
    """Translates domain events into Prometheus metrics.

    Metrics live in a dedicated registry so several sessions (or tests) can
    create sinks without colliding in the global default registry.

    Optional environment:
    - PROMETHEUS_PUSHGATEWAY_URL: when set, push() sends the registry to the
      Pushgateway. Useful for short-lived editing sessions driven from scripts.

    Delivery is best-effort: callers should treat push() as a side-effect
    and never fail a session because of metrics delivery.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self._pushgateway_url = os.environ.get("PROMETHEUS_PUSHGATEWAY_URL")

        self._saves = Counter(
            "rundown_saves_total",
            "Save attempts by outcome.",
            labelnames=["outcome", "trigger"],
            registry=self.registry,
        )
        self._save_failures = Counter(
            "rundown_save_failures_total",
            "Failed save attempts by reason.",
            labelnames=["reason"],
            registry=self.registry,
        )
        self._save_duration = Histogram(
            "rundown_save_duration_seconds",
            "Duration of successful saves.",
            registry=self.registry,
        )
        self._reorders = Counter(
            "rundown_reorders_total",
            "Reorder operations by outcome.",
            labelnames=["outcome"],
            registry=self.registry,
        )
        self._conflicts = Counter(
            "rundown_conflicts_total",
            "Detected remote modifications.",
            registry=self.registry,
        )
        self._indicator = Counter(
            "rundown_indicator_transitions_total",
            "Indicator transitions by target state.",
            labelnames=["state"],
            registry=self.registry,
        )

    def on_event(self, event: Any) -> None:
        if isinstance(event, SaveEvent):
            self._saves.labels(outcome=event.event_type, trigger=event.trigger).inc()
            if event.event_type == "error":
                self._save_failures.labels(reason=event.reason or "unknown").inc()
            elif event.duration_ms is not None:
                self._save_duration.observe(event.duration_ms / 1000.0)
        elif isinstance(event, ReorderEvent):
            self._reorders.labels(outcome="accepted" if event.accepted else "rejected").inc()
        elif isinstance(event, ConflictDetectedEvent):
            self._conflicts.inc()
        elif isinstance(event, IndicatorTransitionEvent):
            self._indicator.labels(state=event.next_state).inc()

    def is_push_enabled(self) -> bool:
        return self._pushgateway_url is not None

    def push(self, *, job: str) -> None:
        if not self._pushgateway_url:
            return

        push_to_gateway(
            gateway=self._pushgateway_url,
            job=job,
            registry=self.registry,
        )

        LOGGER.info("Prometheus metrics pushed", extra={"job": job})
