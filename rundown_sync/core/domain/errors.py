"""Exception taxonomy.

Gateway implementations raise GatewayError subclasses; the controllers
translate them into indicator states and events at the call site.
"""

from __future__ import annotations

from rundown_sync.core.domain.failure_reasons import SaveFailureReason


class RundownSyncError(Exception):
    """Base class for all errors raised by this package."""

    reason: str = SaveFailureReason.UNEXPECTED


class SaveValidationError(RundownSyncError):
    """Local validation failed; nothing was sent to the network."""

    reason = SaveFailureReason.VALIDATION


class GatewayError(RundownSyncError):
    """The persistence gateway could not complete an operation."""

    reason = SaveFailureReason.NETWORK


class GatewayUnavailable(GatewayError):
    """Transport-level failure (connection refused, DNS, reset)."""

    reason = SaveFailureReason.NETWORK


class GatewayTimeout(GatewayError):
    """The request did not complete within the configured timeout."""

    reason = SaveFailureReason.TIMEOUT


class GatewayRejected(GatewayError):
    """The backend answered with a non-success status."""

    reason = SaveFailureReason.REJECTED

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def __str__(self) -> str:
        return f"HTTP {self.status_code}: {self.message}"
