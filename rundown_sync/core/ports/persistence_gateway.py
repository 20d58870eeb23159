"""Persistence gateway protocol.

This module defines the abstract backend-facing boundary used by the sync
controllers. Concrete implementations adapt a specific transport (REST over
HTTP, an in-memory store) to this protocol.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from datetime import datetime

    from rundown_sync.core.domain.types import Rundown, RundownUpdate, Segment, SegmentUpdate


class PersistenceGateway(Protocol):
    """Durable storage for rundowns and their segments.

    Every operation is asynchronous. Failures are reported by raising
    GatewayError subclasses; implementations must not return partial results.
    """

    async def update_document(self, document_id: int, update: RundownUpdate) -> None:
        """Partially update rundown metadata (title, description, status)."""

    async def update_segment(self, segment_id: int, update: SegmentUpdate) -> None:
        """Partially update segment fields. Never changes position."""

    async def get_last_modified(self, document_id: int) -> datetime:
        """Return the server-side last-modified timestamp of a rundown."""

    async def reorder_segments(self, document_id: int, ordered_ids: list[int]) -> list[Segment]:
        """Atomically replace the sibling order.

        Must reject (not partially apply) if ``ordered_ids`` does not exactly
        match the current sibling set. Returns the updated segment list.
        """

    async def get_document(self, document_id: int) -> Rundown:
        """Return the full canonical rundown including segments."""
