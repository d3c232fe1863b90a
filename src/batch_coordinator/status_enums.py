"""Status enums for batch lifecycle and job completion outcomes.

BatchState: Per-batch lifecycle state machine.
RecordOutcome: Result of reporting one job completion to the coordinator.
"""

from __future__ import annotations

from enum import Enum


class BatchState(str, Enum):
    """Batch lifecycle states.

    REGISTERED -> ACCUMULATING -> {COMPLETED | CANCELLED | EXPIRED}.
    COMPLETED and CANCELLED are reached through explicit calls; EXPIRED is
    implicit (the shared store dropped the record when its TTL elapsed).
    """

    REGISTERED = "registered"
    ACCUMULATING = "accumulating"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class RecordOutcome(str, Enum):
    """Outcome of a single `record_completion` call.

    None of these abort the reporting worker; the soft-failure outcomes
    (LOCK_UNAVAILABLE, BATCH_NOT_FOUND, DUPLICATE, ERROR) mean the batch's
    aggregate accounting did not absorb this job.
    """

    RECORDED = "recorded"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DUPLICATE = "duplicate"
    BATCH_NOT_FOUND = "batch_not_found"
    LOCK_UNAVAILABLE = "lock_unavailable"
    ERROR = "error"

    @property
    def counted(self) -> bool:
        """Whether the job's result was added to the batch tally."""
        return self in {RecordOutcome.RECORDED, RecordOutcome.COMPLETED, RecordOutcome.CANCELLED}
