"""Segment ordering primitives for drag-and-drop reordering.

All functions are pure: they take the current order and pointer/sibling
geometry and return a new order. The view layer adapts platform drag events
into these calls; nothing here knows about a UI toolkit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from rundown_sync.core.domain.types import Segment, SegmentId


@dataclass(frozen=True, slots=True)
class SiblingBox:
    """Vertical bounding box of one rendered segment."""

    segment_id: SegmentId
    top: float
    height: float

    @property
    def midpoint(self) -> float:
        return self.top + self.height / 2


def find_insertion_target(
    pointer_y: float,
    siblings: Sequence[SiblingBox],
    dragged_id: SegmentId | None = None,
) -> SegmentId | None:
    """Return the id of the sibling the dragged item goes before.

    The target is the first sibling whose vertical midpoint the pointer has
    not yet passed, i.e. the one with the smallest negative offset
    ``pointer_y - midpoint``. Returns None when the item belongs at the end.
    """
    best_offset = float("-inf")
    best_id: SegmentId | None = None

    for box in siblings:
        if dragged_id is not None and box.segment_id == dragged_id:
            continue
        offset = pointer_y - box.midpoint
        if offset < 0 and offset > best_offset:
            best_offset = offset
            best_id = box.segment_id

    return best_id


def move_before(
    order: Sequence[Segment],
    moved_id: SegmentId,
    target_id: SegmentId | None,
) -> list[Segment]:
    """Return a copy of ``order`` with ``moved_id`` placed before ``target_id``.

    A None target (or one that is not in the list) appends at the end.
    """
    moved: Segment | None = None
    rest: list[Segment] = []
    for seg in order:
        if seg.id == moved_id:
            moved = seg
        else:
            rest.append(seg)

    if moved is None:
        return list(order)

    for index, seg in enumerate(rest):
        if seg.id == target_id:
            rest.insert(index, moved)
            return rest

    rest.append(moved)
    return rest


def constrain_pinned(
    baseline: Sequence[Segment],
    proposed: Sequence[Segment],
) -> list[Segment]:
    """Force pinned segments back to their baseline index.

    Non-pinned segments keep their proposed relative order and fill the
    non-pinned slots of the baseline layout. This clamps a drop before a
    leading pinned segment (or after a trailing one) to the nearest legal slot.
    """
    free = [seg for seg in proposed if not seg.is_pinned]
    free_iter = iter(free)

    result: list[Segment] = []
    for seg in baseline:
        if seg.is_pinned:
            result.append(seg)
        else:
            result.append(next(free_iter))
    return result


def renumber(order: Sequence[Segment]) -> list[Segment]:
    """Rewrite order_index in place to a dense zero-based sequence."""
    segments = list(order)
    for index, seg in enumerate(segments):
        seg.order_index = index
    return segments


def sort_canonical(segments: Sequence[Segment]) -> list[Segment]:
    """Return segments in server order (order_index, then id for ties)."""
    return sorted(segments, key=lambda seg: (seg.order_index, str(seg.id)))
