"""
Completion trigger: the once-per-batch aggregation step.

Dispatches each group's successful items to the notification dispatcher and
emits exactly one audit summary. Failures are isolated per group and never
propagate to the worker that happened to complete the batch.
"""

from __future__ import annotations

from typing import Any

from batch_coordinator.error_enums import BatchCoordinationErrorCode
from batch_coordinator.logging_utils import create_service_logger
from batch_coordinator.models import (
    BatchRecord,
    CompletionSummary,
    format_duration,
    source_label,
    utc_now,
)
from batch_coordinator.protocols import AuditSinkProtocol, NotificationDispatcherProtocol

logger = create_service_logger(__name__)


class CompletionTrigger:
    """Runs dispatch and audit for a finished batch."""

    def __init__(
        self,
        dispatcher: NotificationDispatcherProtocol,
        audit_sink: AuditSinkProtocol,
        metrics: dict[str, Any] | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._audit_sink = audit_sink
        self._metrics = metrics

    async def fire(self, record: BatchRecord, forced: bool = False) -> CompletionSummary:
        completed_at = utc_now()
        elapsed_ms = record.elapsed_ms(completed_at)
        metadata = record.metadata

        logger.info(
            f"Batch {record.batch_id} complete: {record.success_count} succeeded, "
            f"{record.failure_count} failed in {format_duration(elapsed_ms)}",
            forced=forced,
        )

        groups_notified: list[str] = []
        groups_failed: list[str] = []
        actions_dispatched = 0
        tracked_success_count = 0

        for group_key, group_items in record.grouped_items.items():
            successful = [item for item in group_items if item.success]
            if not successful:
                continue
            tracked_success_count += len(successful)

            try:
                actions_dispatched += await self._dispatcher.dispatch_group(
                    record.batch_id, group_key, successful, metadata
                )
                groups_notified.append(group_key)
            except Exception as e:
                groups_failed.append(group_key)
                if self._metrics:
                    self._metrics["trigger_group_failures"].inc()
                logger.error(
                    f"Notification dispatch failed for group {group_key} "
                    f"in batch {record.batch_id}: {e}",
                    error_code=BatchCoordinationErrorCode.TRIGGER_FAILURE.value,
                    group_key=group_key,
                    exc_info=True,
                )

        summary = CompletionSummary(
            batch_id=record.batch_id,
            expected_count=record.expected_count,
            completed_count=record.completed_count,
            success_count=record.success_count,
            failure_count=record.failure_count,
            tracked_success_count=tracked_success_count,
            untracked_success_count=max(0, record.success_count - tracked_success_count),
            groups_notified=groups_notified,
            groups_failed=groups_failed,
            actions_dispatched=actions_dispatched,
            elapsed_ms=elapsed_ms,
            processing_time=format_duration(elapsed_ms),
            source=metadata.source,
            source_label=source_label(metadata.source),
            initiated_by=metadata.initiated_by,
            initiated_by_email=metadata.initiated_by_email,
            forced=forced,
            started_at=record.started_at,
            completed_at=completed_at,
        )

        try:
            await self._audit_sink.record_batch_completion(summary)
        except Exception as e:
            logger.error(
                f"Failed to record audit summary for batch {record.batch_id}: {e}",
                exc_info=True,
            )

        if self._metrics:
            self._metrics["batch_processing_duration"].observe(elapsed_ms / 1000)

        return summary
