"""
Factory functions for raising structured coordinator errors.

Each factory builds an ErrorDetail with a fresh timestamp and raises the
matching exception type. Additional keyword arguments land in `details`.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, NoReturn
from uuid import UUID, uuid4

from batch_coordinator.error_enums import BatchCoordinationErrorCode, ErrorCode
from batch_coordinator.error_handling.coordinator_error import (
    AlreadyExistsError,
    BatchCoordinatorError,
    BatchNotFoundError,
    BatchValidationError,
    LockBusyError,
    StoreUnavailableError,
)
from batch_coordinator.error_handling.error_detail import ErrorDetail


def create_error_detail(
    error_code: BatchCoordinationErrorCode | ErrorCode,
    message: str,
    service: str,
    operation: str,
    correlation_id: UUID | None = None,
    details: dict[str, Any] | None = None,
) -> ErrorDetail:
    """Build an ErrorDetail, generating a correlation id when none is supplied."""
    return ErrorDetail(
        error_code=error_code,
        message=message,
        correlation_id=correlation_id or uuid4(),
        timestamp=datetime.now(UTC),
        service=service,
        operation=operation,
        details=details or {},
    )


def raise_already_exists(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID | None = None,
    **additional_context: Any,
) -> NoReturn:
    detail = create_error_detail(
        BatchCoordinationErrorCode.ALREADY_EXISTS,
        message,
        service,
        operation,
        correlation_id,
        additional_context,
    )
    raise AlreadyExistsError(detail)


def raise_batch_not_found(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID | None = None,
    **additional_context: Any,
) -> NoReturn:
    detail = create_error_detail(
        BatchCoordinationErrorCode.BATCH_NOT_FOUND,
        message,
        service,
        operation,
        correlation_id,
        additional_context,
    )
    raise BatchNotFoundError(detail)


def raise_lock_busy(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID | None = None,
    **additional_context: Any,
) -> NoReturn:
    detail = create_error_detail(
        BatchCoordinationErrorCode.LOCK_BUSY,
        message,
        service,
        operation,
        correlation_id,
        additional_context,
    )
    raise LockBusyError(detail)


def raise_store_unavailable(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID | None = None,
    **additional_context: Any,
) -> NoReturn:
    detail = create_error_detail(
        BatchCoordinationErrorCode.STORE_UNAVAILABLE,
        message,
        service,
        operation,
        correlation_id,
        additional_context,
    )
    raise StoreUnavailableError(detail)


def raise_validation_error(
    service: str,
    operation: str,
    field: str,
    message: str,
    correlation_id: UUID | None = None,
    **additional_context: Any,
) -> NoReturn:
    detail = create_error_detail(
        ErrorCode.VALIDATION_ERROR,
        message,
        service,
        operation,
        correlation_id,
        {"field": field, **additional_context},
    )
    raise BatchValidationError(detail)

