"""
Standardized, PURE error data model for the batch coordinator.
"""

from datetime import datetime
from typing import Any, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from batch_coordinator.error_enums import BatchCoordinationErrorCode, ErrorCode


class ErrorDetail(BaseModel):
    """
    The canonical, PURE data model for a coordinator error.
    This model contains only data fields and no behavior.
    """

    error_code: Union[BatchCoordinationErrorCode, ErrorCode]
    message: str
    correlation_id: UUID
    timestamp: datetime
    service: str
    operation: str
    details: dict[str, Any] = Field(default_factory=dict)
    stack_trace: Optional[str] = None

    model_config = ConfigDict(frozen=True)
