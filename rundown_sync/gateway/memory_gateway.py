"""In-memory persistence gateway.

Implements the PersistenceGateway contract against a dict store. It keeps
the backend's rules (atomic reorder with an exact sibling-set check, pinned
positions, server-side updated_at stamping) and supports failure injection,
which makes it the gateway of choice for tests and offline demos.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from rundown_sync.core.domain.errors import GatewayError, GatewayRejected
from rundown_sync.core.domain.ordering import sort_canonical
from rundown_sync.core.domain.types import Rundown, RundownUpdate, Segment, SegmentUpdate


@dataclass(slots=True)
class GatewayCall:
    """One recorded gateway invocation."""

    operation: str
    args: tuple[Any, ...]


class InMemoryPersistenceGateway:
    """Dict-backed gateway with failure injection and a call log."""

    def __init__(
        self,
        documents: list[Rundown] | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._documents: dict[int, Rundown] = {}
        for doc in documents or []:
            self.put_document(doc)

        self._clock = clock if clock is not None else (lambda: datetime.now(timezone.utc))
        self.calls: list[GatewayCall] = []

        # operation -> queued exceptions, consumed one per call
        self._failures: dict[str, deque[Exception]] = {}
        self._always_fail: dict[str, Exception] = {}
        # operation -> event the call waits on before completing
        self._gates: dict[str, asyncio.Event] = {}

    # ------------------------------------------------------------------
    # Test/demo controls
    # ------------------------------------------------------------------

    def put_document(self, document: Rundown) -> None:
        self._documents[document.id] = document.model_copy(deep=True)

    def stored(self, document_id: int) -> Rundown:
        """Return a copy of the stored rundown."""
        return self._require(document_id).model_copy(deep=True)

    def fail_next(self, operation: str, error: Exception | None = None, *, times: int = 1) -> None:
        queue = self._failures.setdefault(operation, deque())
        for _ in range(times):
            queue.append(error if error is not None else GatewayError(f"{operation} failed"))

    def fail_always(self, operation: str, error: Exception | None = None) -> None:
        self._always_fail[operation] = error if error is not None else GatewayError(f"{operation} failed")

    def recover(self, operation: str | None = None) -> None:
        if operation is None:
            self._failures.clear()
            self._always_fail.clear()
            return
        self._failures.pop(operation, None)
        self._always_fail.pop(operation, None)

    def hold(self, operation: str) -> asyncio.Event:
        """Make calls to ``operation`` wait until the returned event is set."""
        gate = asyncio.Event()
        self._gates[operation] = gate
        return gate

    def release(self, operation: str) -> None:
        gate = self._gates.pop(operation, None)
        if gate is not None:
            gate.set()

    def touch(self, document_id: int, *, delta: timedelta = timedelta(0)) -> None:
        """Simulate a write by another actor."""
        self._require(document_id).updated_at = self._clock() + delta

    def call_count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call.operation == operation)

    # ------------------------------------------------------------------
    # PersistenceGateway
    # ------------------------------------------------------------------

    async def update_document(self, document_id: int, update: RundownUpdate) -> None:
        await self._enter("update_document", document_id, update)
        doc = self._require(document_id)
        doc.title = update.title
        doc.description = update.description
        doc.status = update.status
        doc.updated_at = self._clock()

    async def update_segment(self, segment_id: int, update: SegmentUpdate) -> None:
        await self._enter("update_segment", segment_id, update)
        for doc in self._documents.values():
            seg = doc.segment(segment_id)
            if seg is None:
                continue
            seg.title = update.title
            seg.duration = update.duration
            seg.content = update.content.model_copy(deep=True)
            seg.notes = update.notes
            doc.updated_at = self._clock()
            return
        raise GatewayRejected(404, "Segment not found")

    async def get_last_modified(self, document_id: int) -> datetime:
        await self._enter("get_last_modified", document_id)
        doc = self._require(document_id)
        if doc.updated_at is None:
            raise GatewayRejected(404, "Rundown has no modification time")
        return doc.updated_at

    async def reorder_segments(self, document_id: int, ordered_ids: list[int]) -> list[Segment]:
        await self._enter("reorder_segments", document_id, list(ordered_ids))
        doc = self._require(document_id)

        current = sort_canonical(doc.segments)
        if sorted(map(str, ordered_ids)) != sorted(str(seg.id) for seg in current) or len(
            set(ordered_ids)
        ) != len(ordered_ids):
            raise GatewayRejected(409, "Segment set does not match the rundown")

        by_id = {seg.id: seg for seg in current}
        for index, seg in enumerate(current):
            if seg.is_pinned and ordered_ids[index] != seg.id:
                raise GatewayRejected(400, "Pinned segments cannot be moved")

        reordered = [by_id[segment_id] for segment_id in ordered_ids]
        for index, seg in enumerate(reordered):
            seg.order_index = index
        doc.segments = reordered
        doc.updated_at = self._clock()
        return [seg.model_copy(deep=True) for seg in reordered]

    async def get_document(self, document_id: int) -> Rundown:
        await self._enter("get_document", document_id)
        return self._require(document_id).model_copy(deep=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, document_id: int) -> Rundown:
        doc = self._documents.get(document_id)
        if doc is None:
            raise GatewayRejected(404, "Rundown not found")
        return doc

    async def _enter(self, operation: str, *args: Any) -> None:
        self.calls.append(GatewayCall(operation=operation, args=args))

        gate = self._gates.get(operation)
        if gate is not None:
            await gate.wait()

        queued = self._failures.get(operation)
        if queued:
            raise queued.popleft()
        error = self._always_fail.get(operation)
        if error is not None:
            raise error
