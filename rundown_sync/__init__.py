"""Public API for the rundown_sync package.

Only symbols imported here are considered part of the stable,
supported external interface.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ----------------------------------------------------------------------
# Domain Types
# ----------------------------------------------------------------------
from rundown_sync.core.domain.errors import (
    GatewayError,
    GatewayRejected,
    GatewayTimeout,
    GatewayUnavailable,
    RundownSyncError,
    SaveValidationError,
)
from rundown_sync.core.domain.ordering import SiblingBox
from rundown_sync.core.domain.save_state import SaveStatus
from rundown_sync.core.domain.types import (
    Rundown,
    RundownSnapshot,
    Segment,
    SegmentContent,
    new_local_segment_id,
)

# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------
from rundown_sync.core.events.event_bus import EventBus
from rundown_sync.core.events.events import (
    ConflictDetectedEvent,
    ConflictResolvedEvent,
    IndicatorTransitionEvent,
    ReorderEvent,
    SaveEvent,
)
from rundown_sync.core.events.sinks.prometheus_sink import PrometheusEventSink

# ----------------------------------------------------------------------
# Ports
# ----------------------------------------------------------------------
from rundown_sync.core.ports.conflict_decision import (
    ConflictChoice,
    ConflictDecisionProvider,
    ConflictDecisionRequest,
)
from rundown_sync.core.ports.persistence_gateway import PersistenceGateway

# ----------------------------------------------------------------------
# Controllers and Config
# ----------------------------------------------------------------------
from rundown_sync.core.sync.autosave_config import AutoSaveConfig
from rundown_sync.core.sync.autosave_controller import AutoSaveController
from rundown_sync.core.sync.reorder_coordinator import ReorderCoordinator, ReorderOutcome
from rundown_sync.core.timing.scheduler import AsyncioScheduler, ManualScheduler

# ----------------------------------------------------------------------
# Gateways
# ----------------------------------------------------------------------
from rundown_sync.gateway.http_gateway import HttpPersistenceGateway
from rundown_sync.gateway.memory_gateway import InMemoryPersistenceGateway
from rundown_sync.session import EditingSession

# ----------------------------------------------------------------------
# Public API definition
# ----------------------------------------------------------------------

__all__ = [
    # Session
    "EditingSession",
    "AutoSaveController",
    "ReorderCoordinator",
    "ReorderOutcome",
    "AutoSaveConfig",
    "AsyncioScheduler",
    "ManualScheduler",

    # Domain
    "Rundown",
    "Segment",
    "SegmentContent",
    "RundownSnapshot",
    "SaveStatus",
    "SiblingBox",
    "new_local_segment_id",

    # Errors
    "RundownSyncError",
    "SaveValidationError",
    "GatewayError",
    "GatewayUnavailable",
    "GatewayTimeout",
    "GatewayRejected",

    # Ports and gateways
    "PersistenceGateway",
    "ConflictChoice",
    "ConflictDecisionProvider",
    "ConflictDecisionRequest",
    "HttpPersistenceGateway",
    "InMemoryPersistenceGateway",

    # Events
    "EventBus",
    "IndicatorTransitionEvent",
    "SaveEvent",
    "ConflictDetectedEvent",
    "ConflictResolvedEvent",
    "ReorderEvent",
    "PrometheusEventSink",

    # Version
    "__version__",
]

# ----------------------------------------------------------------------
# Package version
# ----------------------------------------------------------------------

try:
    __version__ = version("vidpod-rundown-sync")
except PackageNotFoundError:
    __version__ = "0.0.0"
