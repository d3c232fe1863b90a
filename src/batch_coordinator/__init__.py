"""
Batch completion coordinator.

Counts independent job completions for a batch across worker processes and
runs a completion trigger exactly once when the last job reports.
"""

from batch_coordinator.coordinator import BatchCoordinator
from batch_coordinator.models import (
    BatchItem,
    BatchMetadata,
    BatchRecord,
    BatchStatus,
    CompletionSummary,
    JobResult,
)
from batch_coordinator.status_enums import BatchState, RecordOutcome

__all__ = [
    "BatchCoordinator",
    "BatchItem",
    "BatchMetadata",
    "BatchRecord",
    "BatchState",
    "BatchStatus",
    "CompletionSummary",
    "JobResult",
    "RecordOutcome",
]
