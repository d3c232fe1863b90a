"""
batch_coordinator.error_enums - Centralized error code definitions.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"


class BatchCoordinationErrorCode(str, Enum):
    """
    Error codes specific to batch completion coordination.

    ALREADY_EXISTS and an exhausted LOCK_BUSY are caller-facing; the rest are
    absorbed (fallback routing, per-group isolation) and only logged.
    """

    ALREADY_EXISTS = "ALREADY_EXISTS"
    BATCH_NOT_FOUND = "BATCH_NOT_FOUND"
    LOCK_BUSY = "LOCK_BUSY"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    TRIGGER_FAILURE = "TRIGGER_FAILURE"
