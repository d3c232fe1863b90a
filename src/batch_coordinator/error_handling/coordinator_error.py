"""
Core exception classes for the batch coordinator.

Every error wraps a frozen ErrorDetail so callers and log processors get a
uniform structure regardless of which component raised it.
"""

from __future__ import annotations

from typing import Any

from batch_coordinator.error_handling.error_detail import ErrorDetail


class BatchCoordinatorError(Exception):
    """Base exception carrying a structured ErrorDetail."""

    def __init__(self, error_detail: ErrorDetail) -> None:
        self.error_detail = error_detail
        super().__init__(f"[{error_detail.error_code.value}] {error_detail.message}")

    @property
    def correlation_id(self) -> str:
        return str(self.error_detail.correlation_id)

    @property
    def error_code(self) -> str:
        return self.error_detail.error_code.value

    @property
    def service(self) -> str:
        return self.error_detail.service

    @property
    def operation(self) -> str:
        return self.error_detail.operation

    @property
    def details(self) -> dict[str, Any]:
        return self.error_detail.details

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured log fields and CLI output."""
        return {
            "error_code": self.error_code,
            "message": self.error_detail.message,
            "correlation_id": self.correlation_id,
            "timestamp": self.error_detail.timestamp.isoformat(),
            "service": self.service,
            "operation": self.operation,
            "details": self.details,
        }


class AlreadyExistsError(BatchCoordinatorError):
    """A live record already exists for the batch id being registered."""


class BatchNotFoundError(BatchCoordinatorError):
    """No live record for the batch id (expired, completed, or never registered)."""


class LockBusyError(BatchCoordinatorError):
    """The batch lock could not be acquired within the bounded retries."""


class StoreUnavailableError(BatchCoordinatorError):
    """The shared store could not be reached or timed out."""


class BatchValidationError(BatchCoordinatorError):
    """Caller supplied invalid registration input."""
