"""Drag-and-drop reorder coordinator.

The coordinator owns the segment order of a rundown while a drag is active.
It computes a speculative order locally for immediate feedback, persists the
full new order as one atomic operation on drop, and on any rejection reloads
the canonical order instead of retrying.

Invariant:
Pinned segments keep their index in every order the coordinator produces.
"""

# pylint: disable=too-many-arguments
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from rundown_sync.core.domain.errors import GatewayError, GatewayTimeout
from rundown_sync.core.domain.failure_reasons import SaveFailureReason
from rundown_sync.core.domain.ordering import (
    SiblingBox,
    constrain_pinned,
    find_insertion_target,
    move_before,
    renumber,
    sort_canonical,
)
from rundown_sync.core.events.events import ReorderEvent
from rundown_sync.core.sync.write_slot import DocumentWriteSlot

if TYPE_CHECKING:
    from rundown_sync.core.domain.types import Rundown, Segment, SegmentId
    from rundown_sync.core.events.event_bus import EventBus
    from rundown_sync.core.ports.persistence_gateway import PersistenceGateway
    from rundown_sync.core.timing.scheduler import Scheduler

LOGGER = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT_S: float = 15.0


@dataclass(slots=True)
class DragSession:
    """State of one in-progress drag gesture."""

    dragged_id: SegmentId
    # Canonical order when the drag began; pinned positions are taken from it.
    baseline: list[Segment]
    # Speculative visual order.
    order: list[Segment]
    dropped: bool = False


@dataclass(slots=True)
class ReorderOutcome:
    """Result of drop().

    - persisted: the new order was accepted by the gateway
    - changed: the drop produced a different order than the baseline
    - reloaded: canonical state was re-fetched after a rejection
    """

    persisted: bool
    changed: bool
    ordered_ids: list[SegmentId] = field(default_factory=list)
    error: str | None = None
    reloaded: bool = False


class ReorderCoordinator:
    """Reorders the segments of one rundown via a drag gesture."""

    def __init__(
        self,
        *,
        document: Rundown,
        gateway: PersistenceGateway,
        event_bus: EventBus,
        scheduler: Scheduler,
        write_slot: DocumentWriteSlot | None = None,
        request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S,
    ) -> None:
        self._document = document
        self._gateway = gateway
        self._event_bus = event_bus
        self._scheduler = scheduler
        self._write_slot = write_slot if write_slot is not None else DocumentWriteSlot(document.id)
        self._request_timeout_s = request_timeout_s

        self._drag: DragSession | None = None

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def dragging(self) -> bool:
        return self._drag is not None

    @property
    def visual_order(self) -> list[Segment]:
        """Order the view should render right now."""
        if self._drag is not None and not self._drag.dropped:
            return list(self._drag.order)
        return list(self._document.segments)

    def is_draggable(self, segment_id: SegmentId) -> bool:
        seg = self._document.segment(segment_id)
        return seg is not None and not seg.is_pinned

    # ------------------------------------------------------------------
    # Drag lifecycle
    # ------------------------------------------------------------------

    def begin_drag(self, segment_id: SegmentId) -> bool:
        """Start dragging ``segment_id``. Returns False if it cannot be dragged."""
        if self._drag is not None:
            LOGGER.debug("Drag already in progress", extra={"document_id": self._document.id})
            return False
        if not self.is_draggable(segment_id):
            LOGGER.debug(
                "Segment is not draggable",
                extra={"document_id": self._document.id, "segment_id": segment_id},
            )
            return False

        baseline = list(self._document.segments)
        self._drag = DragSession(dragged_id=segment_id, baseline=baseline, order=list(baseline))
        return True

    def drag_over(self, pointer_y: float, siblings: Sequence[SiblingBox]) -> int | None:
        """Move the dragged segment according to the pointer position.

        ``siblings`` are the rendered boxes of the other segments. Returns the
        dragged segment's index in the speculative order (after pinned
        clamping), or None when no drag is active.
        """
        drag = self._drag
        if drag is None or drag.dropped:
            return None

        target_id = find_insertion_target(pointer_y, siblings, drag.dragged_id)
        proposed = move_before(drag.order, drag.dragged_id, target_id)
        drag.order = constrain_pinned(drag.baseline, proposed)

        for index, seg in enumerate(drag.order):
            if seg.id == drag.dragged_id:
                return index
        return None

    def end_drag(self) -> None:
        """Finish the gesture. Without a prior drop() the speculative order is discarded."""
        drag = self._drag
        if drag is None:
            return
        if not drag.dropped:
            LOGGER.debug("Drag cancelled; discarding speculative order", extra={"document_id": self._document.id})
        self._drag = None

    async def drop(self) -> ReorderOutcome:
        """Persist the speculative order as the new canonical order."""
        drag = self._drag
        if drag is None or drag.dropped:
            return ReorderOutcome(persisted=False, changed=False)
        drag.dropped = True

        try:
            return await self._persist(drag)
        finally:
            self._drag = None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _persist(self, drag: DragSession) -> ReorderOutcome:
        new_order = list(drag.order)
        ordered_ids = [seg.id for seg in new_order]
        baseline_ids = [seg.id for seg in drag.baseline]

        if ordered_ids == baseline_ids:
            return ReorderOutcome(persisted=False, changed=False, ordered_ids=ordered_ids)

        if any(not seg.is_persisted for seg in new_order):
            # The backend cannot validate a sibling set that contains placeholders.
            message = "Cannot reorder while segments are unsaved"
            LOGGER.warning(message, extra={"document_id": self._document.id})
            self._emit(False, ordered_ids, error=message, reason=SaveFailureReason.UNSAVED_SEGMENTS)
            return ReorderOutcome(persisted=False, changed=True, ordered_ids=ordered_ids, error=message)

        # Speculative commit: the local order leads the server until acknowledged.
        self._document.segments = renumber(new_order)

        try:
            async with self._write_slot.acquire_for("reorder"):
                canonical = await asyncio.wait_for(
                    self._gateway.reorder_segments(self._document.id, ordered_ids),
                    timeout=self._request_timeout_s,
                )
        except (GatewayError, asyncio.TimeoutError) as exc:
            error = exc if isinstance(exc, GatewayError) else GatewayTimeout("Reorder timed out")
            LOGGER.warning(
                "Reorder rejected; reloading canonical order",
                extra={"document_id": self._document.id, "error": str(error)},
            )
            reloaded = await self._rollback(drag.baseline)
            self._emit(
                False,
                ordered_ids,
                error=str(error),
                reason=error.reason,
                reloaded=reloaded,
            )
            return ReorderOutcome(
                persisted=False,
                changed=True,
                ordered_ids=ordered_ids,
                error=str(error),
                reloaded=reloaded,
            )

        self._document.segments = renumber(sort_canonical(canonical))
        LOGGER.info(
            "Segments reordered",
            extra={"document_id": self._document.id, "ordered_ids": ordered_ids},
        )
        self._emit(True, ordered_ids)
        return ReorderOutcome(persisted=True, changed=True, ordered_ids=ordered_ids)

    async def reload(self) -> bool:
        """Replace the local segment list with the gateway's canonical one."""
        try:
            fresh = await asyncio.wait_for(
                self._gateway.get_document(self._document.id),
                timeout=self._request_timeout_s,
            )
        except (GatewayError, asyncio.TimeoutError) as exc:
            LOGGER.error(
                "Could not reload segments",
                extra={"document_id": self._document.id, "error": str(exc)},
            )
            return False

        self._document.segments = renumber(sort_canonical(fresh.segments))
        self._document.updated_at = fresh.updated_at
        return True

    async def _rollback(self, baseline: list[Segment]) -> bool:
        if await self.reload():
            return True
        # Last resort: the order we held before the drag started.
        self._document.segments = renumber(baseline)
        return False

    def _emit(
        self,
        accepted: bool,
        ordered_ids: list[SegmentId],
        *,
        error: str | None = None,
        reason: str | None = None,
        reloaded: bool = False,
    ) -> None:
        self._event_bus.emit(
            ReorderEvent(
                ts=self._scheduler.utcnow(),
                document_id=self._document.id,
                accepted=accepted,
                ordered_ids=list(ordered_ids),
                error=error,
                reason=reason,
                reloaded=reloaded,
            )
        )
