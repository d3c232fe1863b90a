"""
Data models for batch completion tracking.

BatchRecord is the single unit of shared state; it is serialized to JSON and
stored under one key per batch. All mutation goes through `apply_result`,
which callers must only invoke while holding the batch lock.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from batch_coordinator.status_enums import BatchState

SOURCE_LABELS = {
    "ftp_scan": "FTP/SFTP Scheduled Scan",
    "ftp-scan": "FTP/SFTP Scheduled Scan",
    "manual-upload": "Manual Upload",
}


def utc_now() -> datetime:
    return datetime.now(UTC)


def format_duration(elapsed_ms: int) -> str:
    """Render a processing time the way the import summary shows it (ms, s, or m)."""
    if elapsed_ms < 1000:
        return f"{elapsed_ms}ms"
    if elapsed_ms < 60000:
        return f"{elapsed_ms / 1000:.1f}s"
    return f"{elapsed_ms / 60000:.1f}m"


def source_label(source: str | None) -> str:
    """Human-readable label for a batch origin tag."""
    if not source:
        return "System"
    return SOURCE_LABELS.get(source, source)


class JobResult(BaseModel):
    """Outcome of one job, as reported by a worker."""

    success: bool
    job_id: str | None = None
    group_key: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class BatchItem(BaseModel):
    """Per-job summary retained on the record for the completion trigger."""

    job_id: str | None = None
    success: bool
    group_key: str
    payload: dict[str, Any] = Field(default_factory=dict)
    recorded_at: datetime


class JobFailure(BaseModel):
    """Error detail for a failed job."""

    job_id: str | None = None
    error: str | None = None
    recorded_at: datetime


class BatchMetadata(BaseModel):
    """
    Caller-supplied context needed by the completion trigger.

    Unknown keys are kept as-is so hosts can carry their own context through
    the batch without the coordinator interpreting it.
    """

    initiated_by: str | None = None
    initiated_by_email: str | None = None
    source: str | None = None

    model_config = ConfigDict(extra="allow")


class BatchRecord(BaseModel):
    """Shared progress record for one batch."""

    batch_id: str = Field(frozen=True, min_length=1)
    expected_count: int = Field(frozen=True, ge=1)
    completed_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    items: list[BatchItem] = Field(default_factory=list)
    grouped_items: dict[str, list[BatchItem]] = Field(default_factory=dict)
    failures: list[JobFailure] = Field(default_factory=list)
    started_at: datetime = Field(frozen=True)
    updated_at: datetime | None = None
    metadata: BatchMetadata = Field(default_factory=BatchMetadata)
    cancelled: bool = False
    cancelled_at: datetime | None = None
    finalizing: bool = False

    @classmethod
    def new(
        cls,
        batch_id: str,
        expected_count: int,
        metadata: BatchMetadata | dict[str, Any] | None = None,
        started_at: datetime | None = None,
    ) -> BatchRecord:
        """Build the initial (REGISTERED) record for a batch."""
        if isinstance(metadata, dict):
            metadata = BatchMetadata.model_validate(metadata)
        return cls(
            batch_id=batch_id,
            expected_count=expected_count,
            started_at=started_at or utc_now(),
            metadata=metadata or BatchMetadata(),
        )

    @property
    def is_complete(self) -> bool:
        return self.completed_count >= self.expected_count

    @property
    def state(self) -> BatchState:
        if self.cancelled:
            return BatchState.CANCELLED
        if self.is_complete or self.finalizing:
            return BatchState.COMPLETED
        if self.completed_count == 0:
            return BatchState.REGISTERED
        return BatchState.ACCUMULATING

    def apply_result(self, result: JobResult, now: datetime | None = None) -> None:
        """
        Fold one job result into the counters and item detail.

        The count update and the item append happen together on this object;
        the caller persists the whole record in one write.
        """
        now = now or utc_now()
        self.completed_count += 1
        if result.success:
            self.success_count += 1
        else:
            self.failure_count += 1
            self.failures.append(JobFailure(job_id=result.job_id, error=result.error, recorded_at=now))

        if result.group_key is not None:
            item = BatchItem(
                job_id=result.job_id,
                success=result.success,
                group_key=result.group_key,
                payload=result.payload,
                recorded_at=now,
            )
            self.items.append(item)
            self.grouped_items.setdefault(result.group_key, []).append(item)

        self.updated_at = now

    def mark_cancelled(self, now: datetime | None = None) -> None:
        self.cancelled = True
        self.cancelled_at = now or utc_now()
        self.updated_at = self.cancelled_at

    def mark_finalizing(self, now: datetime | None = None) -> None:
        """Flag that the completion trigger is running for this record."""
        self.finalizing = True
        self.updated_at = now or utc_now()

    def elapsed_ms(self, now: datetime | None = None) -> int:
        delta = (now or utc_now()) - self.started_at
        return max(0, int(delta.total_seconds() * 1000))

    def to_status(self, now: datetime | None = None) -> BatchStatus:
        return BatchStatus(
            batch_id=self.batch_id,
            state=self.state,
            expected_count=self.expected_count,
            completed_count=self.completed_count,
            success_count=self.success_count,
            failure_count=self.failure_count,
            elapsed_ms=self.elapsed_ms(now),
            cancelled=self.cancelled,
            source=self.metadata.source,
            group_count=len(self.grouped_items),
            items_tracked=len(self.items),
        )


class BatchStatus(BaseModel):
    """Read-only progress view for operators and dashboards."""

    batch_id: str
    state: BatchState
    expected_count: int
    completed_count: int
    success_count: int
    failure_count: int
    elapsed_ms: int
    cancelled: bool
    source: str | None
    group_count: int
    items_tracked: int

    @property
    def progress_percent(self) -> float:
        return round(100.0 * self.completed_count / self.expected_count, 1)


class CompletionSummary(BaseModel):
    """The single audit record emitted when a batch's completion trigger runs."""

    batch_id: str
    expected_count: int
    completed_count: int
    success_count: int
    failure_count: int
    tracked_success_count: int
    untracked_success_count: int
    groups_notified: list[str] = Field(default_factory=list)
    groups_failed: list[str] = Field(default_factory=list)
    actions_dispatched: int = 0
    elapsed_ms: int
    processing_time: str
    source: str | None
    source_label: str
    initiated_by: str | None = None
    initiated_by_email: str | None = None
    forced: bool = False
    started_at: datetime
    completed_at: datetime
