"""Canonical save failure reasons.

Reasons are plain strings so they can be used directly as event fields,
metric labels, and log context.
"""

from __future__ import annotations


class SaveFailureReason:
    """String constants classifying why a save did not complete."""

    VALIDATION = "validation"
    NETWORK = "network"
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    OFFLINE = "offline"
    UNEXPECTED = "unexpected"

    # Reorder-only
    UNSAVED_SEGMENTS = "unsaved_segments"
