"""Core shared data models.

This module defines the canonical Pydantic models for rundowns (the edited
document), their segments, and the payloads exchanged with the persistence
gateway. These types are treated as schema definitions and intentionally
prioritize structural clarity over minimal class size.
"""

# pylint: disable=missing-class-docstring,missing-function-docstring
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

RundownStatus = Literal["draft", "submitted", "approved", "rejected"]
SegmentType = Literal["intro", "story", "interview", "break", "outro", "custom"]

# Persisted segments carry the integer id assigned by the backend.
# Segments created locally carry a string placeholder until first persistence.
SegmentId = int | str

LOCAL_ID_PREFIX: str = "local-"


def new_local_segment_id() -> str:
    """Return a fresh placeholder id for a segment not yet persisted."""
    return f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex[:12]}"


def is_persisted_id(segment_id: SegmentId) -> bool:
    """Return True if the id was assigned by the backend."""
    return isinstance(segment_id, int) and not isinstance(segment_id, bool)


# ---------------------------------------------------------------------------
# Segment models
# ---------------------------------------------------------------------------


class SegmentContent(BaseModel):
    """Free-form editorial content of a segment.

    The backend stores content as a JSON object; keys other than the ones
    modeled here (e.g. UI expansion state) are preserved untouched.
    """

    intro: str = ""
    questions: list[str] = Field(default_factory=list)
    close: str = ""

    model_config = ConfigDict(extra="allow")


class Segment(BaseModel):
    id: SegmentId
    title: str = ""
    segment_type: SegmentType = "custom"
    duration: int = Field(default=0, ge=0, description="Duration in seconds.")
    order_index: int = Field(default=0, ge=0)
    is_pinned: bool = False
    content: SegmentContent = Field(default_factory=SegmentContent)
    notes: str | None = None

    model_config = ConfigDict(extra="forbid")

    @property
    def is_persisted(self) -> bool:
        return is_persisted_id(self.id)


# ---------------------------------------------------------------------------
# Rundown (document) model
# ---------------------------------------------------------------------------


class Rundown(BaseModel):
    """Editable rundown aggregate.

    Notes:
    - segments are kept in display order; order_index mirrors the list position.
    - updated_at is the last-known-saved timestamp reported by the backend.
    """

    id: int
    title: str = ""
    description: str = ""
    status: RundownStatus = "draft"
    segments: list[Segment] = Field(default_factory=list)
    updated_at: datetime | None = None

    model_config = ConfigDict(extra="forbid")

    def segment(self, segment_id: SegmentId) -> Segment | None:
        for seg in self.segments:
            if seg.id == segment_id:
                return seg
        return None

    def segment_ids(self) -> list[SegmentId]:
        return [seg.id for seg in self.segments]

    def replace_with(self, other: Rundown) -> None:
        """Overwrite every field in place with the values of ``other``.

        Views and coordinators hold a reference to the same Rundown object,
        so reloads must not rebind it.
        """
        for name in type(self).model_fields:
            setattr(self, name, getattr(other, name))


# ---------------------------------------------------------------------------
# Save payloads
# ---------------------------------------------------------------------------


class SegmentSnapshot(BaseModel):
    id: SegmentId
    title: str
    segment_type: SegmentType
    duration: int = Field(..., ge=0)
    order_index: int = Field(..., ge=0)
    is_pinned: bool
    content: SegmentContent
    notes: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def is_persisted(self) -> bool:
        return is_persisted_id(self.id)

    def to_update(self) -> SegmentUpdate:
        return SegmentUpdate(
            title=self.title,
            duration=self.duration,
            content=self.content,
            notes=self.notes,
        )


class RundownSnapshot(BaseModel):
    """Point-in-time copy of a rundown, ready for transmission.

    generation is the edit counter value at the time the snapshot was taken;
    it tells the controller whether edits arrived while the save was in flight.
    """

    rundown_id: int
    title: str = Field(..., min_length=1)
    description: str
    status: RundownStatus
    segments: tuple[SegmentSnapshot, ...]

    taken_at: datetime
    generation: int = Field(..., ge=0)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_rundown(cls, rundown: Rundown, *, taken_at: datetime, generation: int) -> RundownSnapshot:
        return cls(
            rundown_id=rundown.id,
            title=rundown.title,
            description=rundown.description,
            status=rundown.status,
            segments=tuple(
                SegmentSnapshot(
                    id=seg.id,
                    title=seg.title,
                    segment_type=seg.segment_type,
                    duration=seg.duration,
                    order_index=seg.order_index,
                    is_pinned=seg.is_pinned,
                    content=seg.content.model_copy(deep=True),
                    notes=seg.notes,
                )
                for seg in rundown.segments
            ),
            taken_at=taken_at,
            generation=generation,
        )

    def to_update(self) -> RundownUpdate:
        return RundownUpdate(
            title=self.title,
            description=self.description,
            status=self.status,
        )


class RundownUpdate(BaseModel):
    """Partial update of rundown metadata."""

    title: str = Field(..., min_length=1)
    description: str
    status: RundownStatus

    model_config = ConfigDict(extra="forbid")


class SegmentUpdate(BaseModel):
    """Partial update of a segment. Position is never part of it."""

    title: str
    duration: int = Field(..., ge=0)
    content: SegmentContent
    notes: str | None = None

    model_config = ConfigDict(extra="forbid")
