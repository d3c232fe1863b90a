"""Error handling utilities for the batch coordinator."""

from batch_coordinator.error_handling.coordinator_error import (
    AlreadyExistsError,
    BatchCoordinatorError,
    BatchNotFoundError,
    BatchValidationError,
    LockBusyError,
    StoreUnavailableError,
)
from batch_coordinator.error_handling.error_detail import ErrorDetail
from batch_coordinator.error_handling.factories import (
    create_error_detail,
    raise_already_exists,
    raise_batch_not_found,
    raise_lock_busy,
    raise_store_unavailable,
    raise_validation_error,
)

__all__ = [
    "AlreadyExistsError",
    "BatchCoordinatorError",
    "BatchNotFoundError",
    "BatchValidationError",
    "ErrorDetail",
    "LockBusyError",
    "StoreUnavailableError",
    "create_error_detail",
    "raise_already_exists",
    "raise_batch_not_found",
    "raise_lock_busy",
    "raise_store_unavailable",
    "raise_validation_error",
]
