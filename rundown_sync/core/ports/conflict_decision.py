"""Conflict decision protocol.

Conflict resolution is always user-mediated. The core emits a decision
request and awaits the answer; any UI (web, CLI, desktop) can supply it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol


class ConflictChoice(str, Enum):
    DISCARD_LOCAL = "discard_local"
    OVERWRITE_REMOTE = "overwrite_remote"


@dataclass(frozen=True, slots=True)
class ConflictDecisionRequest:
    document_id: int
    title: str
    local_last_save: datetime | None
    has_unsaved_changes: bool


class ConflictDecisionProvider(Protocol):
    async def decide(self, request: ConflictDecisionRequest) -> ConflictChoice:
        """Ask the user to keep the server version or overwrite it."""


@dataclass(frozen=True, slots=True)
class FixedDecisionProvider:
    """Always answers with the same choice (used for tests and scripted runs)."""

    choice: ConflictChoice

    async def decide(self, request: ConflictDecisionRequest) -> ConflictChoice:
        return self.choice
