"""
Save indicator state machine definitions.

This module defines the canonical indicator states rendered by the view
layer and the allowed transitions between them. It is intentionally
passive and validation-only.

The state machine is used for observability and debugging. It must NOT
enforce behavior or raise exceptions in production paths.
"""

from __future__ import annotations

IDLE = "idle"
UNSAVED = "unsaved"
SAVING = "saving"
SAVED = "saved"
ERROR = "error"
RETRYING = "retrying"
OFFLINE = "offline"
QUEUED = "queued"

INDICATOR_STATES: frozenset[str] = frozenset(
    {
        IDLE,
        UNSAVED,
        SAVING,
        SAVED,
        ERROR,
        RETRYING,
        OFFLINE,
        QUEUED,
    }
)


# States in which local edits are known not to be persisted yet.
INDICATOR_UNPERSISTED_STATES: frozenset[str] = frozenset(
    {
        UNSAVED,
        ERROR,
        RETRYING,
        OFFLINE,
        QUEUED,
    }
)


# Allowed indicator transitions.
#
# Key   : previous state
# Value : set of allowed next states
#
# Notes:
# - Repeated states are never emitted, so self-transitions are not listed.
# - "saved" is transient and reverts to "idle".
# - A discard-local conflict resolution may jump to "saved" from anywhere.
INDICATOR_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    IDLE: frozenset({UNSAVED, SAVING, SAVED, OFFLINE, ERROR}),

    UNSAVED: frozenset({SAVING, SAVED, OFFLINE, QUEUED, ERROR}),

    SAVING: frozenset({SAVED, UNSAVED, RETRYING, QUEUED, ERROR}),

    SAVED: frozenset({IDLE, UNSAVED, SAVING, OFFLINE}),

    ERROR: frozenset({UNSAVED, SAVING, SAVED, OFFLINE, QUEUED}),

    RETRYING: frozenset({SAVING, UNSAVED, SAVED, OFFLINE, QUEUED, ERROR}),

    OFFLINE: frozenset({UNSAVED, SAVING, SAVED, QUEUED, ERROR}),

    QUEUED: frozenset({UNSAVED, SAVING, SAVED, OFFLINE, ERROR}),
}


def is_unpersisted_state(state: str) -> bool:
    """Return True if the indicator flags edits that are not persisted."""
    return state in INDICATOR_UNPERSISTED_STATES


def is_valid_transition(prev_state: str, next_state: str) -> bool:
    """Return True if the transition prev_state -> next_state is allowed."""
    allowed = INDICATOR_ALLOWED_TRANSITIONS.get(prev_state)
    if allowed is None:
        return False
    return next_state in allowed
