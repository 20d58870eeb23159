"""Auto-save controller for the rundown editor.

This module decides when in-memory edits are persisted, retries transient
failures with exponential backoff, queues snapshots while offline, and
detects (but never silently resolves) conflicting remote modifications.

Invariants:
- At most one save is in flight per document.
- No public coroutine raises; every path ends in an indicator state and,
  where relevant, a SaveEvent.
- Edits are never dropped: a document stays dirty until a snapshot taken
  after its last edit has been acknowledged.
"""

# pylint: disable=too-many-instance-attributes,too-many-arguments
from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from rundown_sync.core.domain import indicator_state_machine as indicator
from rundown_sync.core.domain.errors import GatewayError, GatewayTimeout, SaveValidationError
from rundown_sync.core.domain.failure_reasons import SaveFailureReason
from rundown_sync.core.domain.save_state import PendingSave, SaveState, SaveStatus
from rundown_sync.core.domain.types import RundownSnapshot
from rundown_sync.core.events.events import (
    ConflictDetectedEvent,
    ConflictResolvedEvent,
    IndicatorTransitionEvent,
    SaveEvent,
)
from rundown_sync.core.ports.conflict_decision import ConflictChoice, ConflictDecisionRequest
from rundown_sync.core.sync.autosave_config import AutoSaveConfig
from rundown_sync.core.sync.write_slot import DocumentWriteSlot
from rundown_sync.core.timing.timers import (
    Debouncer,
    OneShotTimer,
    PeriodicTimer,
    backoff_delay_s,
)

if TYPE_CHECKING:
    from rundown_sync.core.domain.types import Rundown
    from rundown_sync.core.events.event_bus import EventBus
    from rundown_sync.core.ports.conflict_decision import ConflictDecisionProvider
    from rundown_sync.core.ports.persistence_gateway import PersistenceGateway
    from rundown_sync.core.timing.scheduler import Scheduler

LOGGER = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps from the backend are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AutoSaveController:
    """Owns the dirty/in-flight state of one rundown and persists it."""

    def __init__(
        self,
        *,
        document: Rundown,
        gateway: PersistenceGateway,
        event_bus: EventBus,
        scheduler: Scheduler,
        config: AutoSaveConfig | None = None,
        decision_provider: ConflictDecisionProvider | None = None,
        write_slot: DocumentWriteSlot | None = None,
        online: bool = True,
    ) -> None:
        self._document = document
        self._gateway = gateway
        self._event_bus = event_bus
        self._scheduler = scheduler
        self.config = config if config is not None else AutoSaveConfig()
        self._decision_provider = decision_provider
        self._write_slot = write_slot if write_slot is not None else DocumentWriteSlot(document.id)

        self._state = SaveState(
            online=online,
            last_save_time=document.updated_at,
            pending=deque(maxlen=self.config.pending_queue_limit),
        )

        self._debouncer = Debouncer(scheduler, self.config.debounce_s, self._on_debounce)
        self._retry_timer = OneShotTimer(scheduler, self._on_retry)
        self._saved_revert_timer = OneShotTimer(scheduler, self._on_saved_revert)
        self._periodic = PeriodicTimer(scheduler, self.config.periodic_interval_s, self._on_periodic)

        # Result of the save currently on the wire; awaited by save_now().
        self._current_flight: asyncio.Future[bool] | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def document(self) -> Rundown:
        return self._document

    @property
    def indicator(self) -> str:
        return self._state.indicator

    def start(self) -> None:
        """Arm the periodic fallback timer."""
        if self._closed:
            return
        self._periodic.start()
        LOGGER.info("Auto-save started", extra={"document_id": self._document.id})

    def close(self) -> None:
        """Release every timer. The controller is unusable afterwards."""
        if self._closed:
            return
        self._debouncer.cancel()
        self._retry_timer.cancel()
        self._saved_revert_timer.cancel()
        self._periodic.stop()
        self._closed = True
        LOGGER.info(
            "Auto-save closed",
            extra={"document_id": self._document.id, "dirty": self._state.dirty},
        )

    def enable(self) -> None:
        """Resume automatic saving. Does not trigger a save by itself."""
        self._state.enabled = True

    def disable(self) -> None:
        """Pause automatic saving without losing dirty state."""
        self._state.enabled = False
        self._debouncer.cancel()
        self._retry_timer.cancel()

    def get_status(self) -> SaveStatus:
        return SaveStatus.from_state(self._state)

    # ------------------------------------------------------------------
    # Edit tracking
    # ------------------------------------------------------------------

    def mark_dirty(self) -> None:
        """Record an edit and (re)start the debounce quiet period."""
        if self._closed:
            return
        st = self._state
        st.generation += 1
        st.dirty = True
        self._set_indicator(indicator.UNSAVED)

        # A fresh edit supersedes any pending backoff retry.
        self._retry_timer.cancel()
        if st.enabled:
            self._debouncer.trigger()

    async def save_now(self, trigger: str = "manual") -> bool:
        """Save immediately, bypassing the debounce.

        Returns True once every edit made before the call is persisted (or the
        document was already clean). A save already in flight is awaited
        rather than duplicated; edits it did not carry are sent afterwards.
        """
        self._debouncer.cancel()
        st = self._state

        while st.in_flight and self._current_flight is not None:
            if not await asyncio.shield(self._current_flight):
                return False
            # The flight re-arms the debounce when it left edits behind.
            self._debouncer.cancel()

        if not st.dirty:
            return True

        if not st.online:
            self._queue_pending(SaveFailureReason.OFFLINE)
            self._set_indicator(indicator.OFFLINE)
            return False

        return await self._perform_save(trigger)

    # ------------------------------------------------------------------
    # Transport-level hooks
    # ------------------------------------------------------------------

    def set_online(self, online: bool) -> None:
        """Network monitor hook for online/offline transitions."""
        st = self._state
        if online == st.online:
            return
        st.online = online

        if not online:
            LOGGER.info("Network offline; suppressing saves", extra={"document_id": self._document.id})
            if st.dirty:
                self._set_indicator(indicator.OFFLINE)
            return

        LOGGER.info(
            "Network online; processing pending saves",
            extra={"document_id": self._document.id, "pending": len(st.pending)},
        )
        if st.pending:
            self._scheduler.spawn(self.process_pending_saves())
        elif st.dirty:
            self._set_indicator(indicator.UNSAVED)

    def on_visibility_hidden(self) -> None:
        """Page/tab became hidden: start an immediate save, do not wait."""
        if self._state.dirty and not self._closed:
            self._scheduler.spawn(self.save_now("visibility_hidden"))

    def on_before_unload(self) -> bool:
        """Page is unloading: start a final save.

        Returns True if unsaved changes exist, so the shell can warn the user.
        Completion before unload is not guaranteed.
        """
        if not self._state.dirty:
            return False
        if not self._closed:
            self._scheduler.spawn(self.save_now("unload"))
        return True

    # ------------------------------------------------------------------
    # Timer callbacks
    # ------------------------------------------------------------------

    def _on_debounce(self) -> None:
        self._scheduler.spawn(self._attempt_save("debounce"))

    def _on_retry(self) -> None:
        self._scheduler.spawn(self._attempt_save("retry"))

    def _on_periodic(self) -> None:
        # A pending backoff retry already owns the next attempt.
        if self._retry_timer.pending:
            return
        st = self._state
        if st.dirty and not st.in_flight and st.online:
            LOGGER.debug("Periodic auto-save triggered", extra={"document_id": self._document.id})
            self._scheduler.spawn(self._attempt_save("periodic"))

    def _on_saved_revert(self) -> None:
        if self._state.indicator == indicator.SAVED:
            self._set_indicator(indicator.IDLE)

    # ------------------------------------------------------------------
    # Save pipeline
    # ------------------------------------------------------------------

    async def _attempt_save(self, trigger: str) -> None:
        st = self._state
        if self._closed or not st.enabled or not st.dirty or st.in_flight:
            return

        if not st.online:
            self._queue_pending(SaveFailureReason.OFFLINE)
            self._set_indicator(indicator.OFFLINE)
            return

        await self._perform_save(trigger)

    def _collect_snapshot(self) -> RundownSnapshot:
        if not self._document.title.strip():
            raise SaveValidationError("Rundown title is required")
        return RundownSnapshot.from_rundown(
            self._document,
            taken_at=self._scheduler.utcnow(),
            generation=self._state.generation,
        )

    async def _perform_save(self, trigger: str) -> bool:
        try:
            snapshot = self._collect_snapshot()
        except SaveValidationError as exc:
            self._on_validation_failed(exc, trigger)
            return False

        error = await self._transmit_guarded(snapshot, trigger)
        if error is None:
            return True

        self._handle_save_error(error, trigger)
        return False

    async def _transmit_guarded(self, snapshot: RundownSnapshot, trigger: str) -> Exception | None:
        """Send ``snapshot`` with the in-flight guard held.

        Returns None on success, or the failure translated from the gateway.
        """
        st = self._state
        st.in_flight = True
        flight: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._current_flight = flight
        self._set_indicator(indicator.SAVING)

        started = self._scheduler.monotonic()
        error: Exception | None = None
        try:
            async with self._write_slot.acquire_for("autosave"):
                await asyncio.wait_for(
                    self._transmit(snapshot),
                    timeout=self.config.request_timeout_s,
                )
        except asyncio.TimeoutError:
            error = GatewayTimeout(f"Save timed out after {self.config.request_timeout_s}s")
        except GatewayError as exc:
            error = exc
        except asyncio.CancelledError:
            flight.set_result(False)
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.exception("Unexpected save failure", extra={"document_id": snapshot.rundown_id})
            error = exc
        finally:
            st.in_flight = False
            self._current_flight = None

        if error is None:
            self._on_save_succeeded(snapshot, trigger, started)
        flight.set_result(error is None)
        return error

    async def _transmit(self, snapshot: RundownSnapshot) -> None:
        await self._gateway.update_document(snapshot.rundown_id, snapshot.to_update())

        # One request at a time: a failure must not leave sibling updates on the wire.
        for seg in snapshot.segments:
            if not seg.is_persisted:
                LOGGER.debug(
                    "Skipping unsaved segment",
                    extra={"document_id": snapshot.rundown_id, "segment_id": seg.id},
                )
                continue
            await self._gateway.update_segment(seg.id, seg.to_update())

    def _on_save_succeeded(self, snapshot: RundownSnapshot, trigger: str, started: float) -> None:
        st = self._state
        now = self._scheduler.utcnow()
        duration_ms = (self._scheduler.monotonic() - started) * 1000.0

        st.retry_count = 0
        st.last_save_time = now
        st.pending.clear()
        self._retry_timer.cancel()

        # Edits made while the request was on the wire keep the document dirty.
        st.dirty = st.generation != snapshot.generation
        if st.dirty:
            self._set_indicator(indicator.UNSAVED)
            if st.enabled and not self._closed:
                self._debouncer.trigger()
        else:
            self._set_indicator(indicator.SAVED)
            self._saved_revert_timer.schedule(self.config.saved_indicator_s)

        LOGGER.info(
            "Auto-save completed",
            extra={"document_id": snapshot.rundown_id, "trigger": trigger, "duration_ms": duration_ms},
        )
        self._emit_save_event("success", trigger, duration_ms=duration_ms)

    def _on_validation_failed(self, exc: SaveValidationError, trigger: str) -> None:
        LOGGER.warning(
            "Save blocked by validation",
            extra={"document_id": self._document.id, "error": str(exc)},
        )
        self._set_indicator(indicator.ERROR)
        self._emit_save_event("error", trigger, error=str(exc), reason=exc.reason)

    def _handle_save_error(self, error: Exception, trigger: str) -> None:
        st = self._state
        reason = getattr(error, "reason", SaveFailureReason.UNEXPECTED)
        st.retry_count += 1

        if st.retry_count <= self.config.max_retries:
            delay_s = backoff_delay_s(
                st.retry_count,
                base_s=self.config.backoff_base_s,
                cap_s=self.config.backoff_cap_s,
            )
            LOGGER.warning(
                "Auto-save failed; retrying",
                extra={
                    "document_id": self._document.id,
                    "retry_count": st.retry_count,
                    "max_retries": self.config.max_retries,
                    "delay_s": delay_s,
                    "error": str(error),
                },
            )
            self._set_indicator(indicator.RETRYING)
            if not self._closed:
                self._retry_timer.schedule(delay_s)
            retry_count = st.retry_count
        else:
            LOGGER.error(
                "Auto-save retries exhausted; queuing for later",
                extra={"document_id": self._document.id, "error": str(error)},
            )
            self._queue_pending(reason)
            self._set_indicator(indicator.QUEUED)
            st.retry_count = 0
            retry_count = 0

        self._emit_save_event(
            "error",
            trigger,
            error=str(error),
            reason=reason,
            retry_count=retry_count,
        )

    def _queue_pending(self, reason: str) -> None:
        try:
            snapshot = self._collect_snapshot()
        except SaveValidationError as exc:
            LOGGER.warning(
                "Cannot queue save",
                extra={"document_id": self._document.id, "error": str(exc)},
            )
            return

        self._state.pending.append(
            PendingSave(snapshot=snapshot, queued_at=self._scheduler.utcnow(), reason=reason)
        )
        LOGGER.info(
            "Save queued",
            extra={"document_id": self._document.id, "reason": reason, "pending": len(self._state.pending)},
        )

    async def process_pending_saves(self) -> bool:
        """Transmit the most recent queued snapshot, discarding older ones.

        Returns True if the queue is empty afterwards.
        """
        st = self._state
        latest = st.latest_pending()
        if latest is None:
            return True
        if st.in_flight or not st.online or self._closed:
            return False

        LOGGER.info(
            "Processing pending saves",
            extra={"document_id": self._document.id, "pending": len(st.pending)},
        )
        error = await self._transmit_guarded(latest.snapshot, "pending")
        if error is None:
            return True

        self._set_indicator(indicator.ERROR)
        self._emit_save_event(
            "error",
            "pending",
            error=str(error),
            reason=getattr(error, "reason", SaveFailureReason.UNEXPECTED),
        )
        return False

    # ------------------------------------------------------------------
    # Conflict detection and resolution
    # ------------------------------------------------------------------

    async def check_for_conflicts(self) -> bool:
        """Return True if the server copy changed after this client's last save."""
        try:
            server_modified = await asyncio.wait_for(
                self._gateway.get_last_modified(self._document.id),
                timeout=self.config.request_timeout_s,
            )
        except (GatewayError, asyncio.TimeoutError) as exc:
            LOGGER.warning(
                "Could not check for conflicts",
                extra={"document_id": self._document.id, "error": str(exc)},
            )
            return False

        local = self._state.last_save_time
        if local is None:
            return False

        server_modified = _as_utc(server_modified)
        if server_modified <= _as_utc(local):
            return False

        LOGGER.warning(
            "Conflict detected; server version is newer",
            extra={
                "document_id": self._document.id,
                "local_last_save": local.isoformat(),
                "server_last_modified": server_modified.isoformat(),
            },
        )
        self._event_bus.emit(
            ConflictDetectedEvent(
                ts=self._scheduler.utcnow(),
                document_id=self._document.id,
                local_last_save=local,
                server_last_modified=server_modified,
            )
        )
        return True

    async def resolve_conflict(self) -> ConflictChoice | None:
        """Ask the user how to resolve a conflict and apply the answer.

        Returns the applied choice, or None when no decision could be made
        or applying it failed.
        """
        if self._decision_provider is None:
            LOGGER.error("No conflict decision provider configured", extra={"document_id": self._document.id})
            return None

        request = ConflictDecisionRequest(
            document_id=self._document.id,
            title=self._document.title,
            local_last_save=self._state.last_save_time,
            has_unsaved_changes=self._state.dirty,
        )
        choice = await self._decision_provider.decide(request)

        if choice is ConflictChoice.DISCARD_LOCAL:
            succeeded = await self._reload_from_server()
        else:
            self.mark_dirty()
            succeeded = await self.save_now("conflict_overwrite")

        self._event_bus.emit(
            ConflictResolvedEvent(
                ts=self._scheduler.utcnow(),
                document_id=self._document.id,
                choice=choice.value,
                succeeded=succeeded,
            )
        )
        return choice if succeeded else None

    async def _reload_from_server(self) -> bool:
        try:
            fresh = await asyncio.wait_for(
                self._gateway.get_document(self._document.id),
                timeout=self.config.request_timeout_s,
            )
        except (GatewayError, asyncio.TimeoutError) as exc:
            LOGGER.error(
                "Reload after conflict failed",
                extra={"document_id": self._document.id, "error": str(exc)},
            )
            self._set_indicator(indicator.ERROR)
            return False

        st = self._state
        self._debouncer.cancel()
        self._retry_timer.cancel()
        self._document.replace_with(fresh)
        st.dirty = False
        st.retry_count = 0
        st.pending.clear()
        st.last_save_time = fresh.updated_at if fresh.updated_at is not None else self._scheduler.utcnow()
        self._set_indicator(indicator.SAVED)
        self._saved_revert_timer.schedule(self.config.saved_indicator_s)

        LOGGER.info("Conflict resolved by reloading server data", extra={"document_id": self._document.id})
        return True

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def _set_indicator(self, next_state: str) -> None:
        st = self._state
        prev_state = st.indicator
        if prev_state == next_state:
            return

        if not indicator.is_valid_transition(prev_state, next_state):
            LOGGER.debug(
                "Unexpected indicator transition",
                extra={"document_id": self._document.id, "prev": prev_state, "next": next_state},
            )

        st.indicator = next_state
        if next_state != indicator.SAVED:
            self._saved_revert_timer.cancel()

        self._event_bus.emit(
            IndicatorTransitionEvent(
                ts=self._scheduler.utcnow(),
                document_id=self._document.id,
                prev_state=prev_state,
                next_state=next_state,
            )
        )

    def _emit_save_event(
        self,
        event_type: str,
        trigger: str,
        *,
        duration_ms: float | None = None,
        error: str | None = None,
        reason: str | None = None,
        retry_count: int = 0,
    ) -> None:
        self._event_bus.emit(
            SaveEvent(
                ts=self._scheduler.utcnow(),
                document_id=self._document.id,
                event_type=event_type,
                trigger=trigger,
                duration_ms=duration_ms,
                error=error,
                reason=reason,
                retry_count=retry_count,
            )
        )
