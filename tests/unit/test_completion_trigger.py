"""Unit tests for the completion trigger."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest
from prometheus_client import CollectorRegistry

from batch_coordinator.implementations.completion_trigger import CompletionTrigger
from batch_coordinator.models import BatchMetadata, BatchRecord, JobResult, utc_now
from tests.coordinator_test_utils import RecordingAuditSink, RecordingDispatcher


def completed_record() -> BatchRecord:
    record = BatchRecord.new(
        "b1",
        5,
        BatchMetadata(
            initiated_by="user-1",
            initiated_by_email="user@example.com",
            source="ftp_scan",
        ),
        started_at=utc_now() - timedelta(seconds=2),
    )
    record.apply_result(JobResult(success=True, job_id="j1", group_key="A"))
    record.apply_result(JobResult(success=True, job_id="j2", group_key="B"))
    record.apply_result(JobResult(success=False, job_id="j3", group_key="B", error="x"))
    record.apply_result(JobResult(success=False, job_id="j4", group_key="C", error="y"))
    record.apply_result(JobResult(success=True, job_id="j5"))
    return record


class TestCompletionTrigger:
    @pytest.mark.asyncio
    async def test_dispatches_successful_items_per_group(self) -> None:
        dispatcher = RecordingDispatcher(actions_per_group=2)
        audit = RecordingAuditSink()
        trigger = CompletionTrigger(dispatcher, audit)

        summary = await trigger.fire(completed_record())

        dispatched = {group: [item.job_id for item in items] for _, group, items, _ in dispatcher.calls}
        assert dispatched == {"A": ["j1"], "B": ["j2"]}
        assert summary.groups_notified == ["A", "B"]
        assert summary.groups_failed == []
        assert summary.actions_dispatched == 4

    @pytest.mark.asyncio
    async def test_summary_contents(self) -> None:
        audit = RecordingAuditSink()
        trigger = CompletionTrigger(RecordingDispatcher(), audit)

        summary = await trigger.fire(completed_record())

        assert audit.summaries == [summary]
        assert summary.success_count == 3
        assert summary.failure_count == 2
        assert summary.tracked_success_count == 2
        assert summary.untracked_success_count == 1
        assert summary.source_label == "FTP/SFTP Scheduled Scan"
        assert summary.initiated_by == "user-1"
        assert summary.initiated_by_email == "user@example.com"
        assert summary.elapsed_ms >= 2000
        assert summary.processing_time.endswith("s")
        assert not summary.forced

    @pytest.mark.asyncio
    async def test_group_failure_is_isolated(
        self, metrics: dict[str, Any], metrics_registry: CollectorRegistry
    ) -> None:
        dispatcher = RecordingDispatcher(failing_groups={"A"})
        audit = RecordingAuditSink()
        trigger = CompletionTrigger(dispatcher, audit, metrics=metrics)

        summary = await trigger.fire(completed_record())

        assert summary.groups_failed == ["A"]
        assert summary.groups_notified == ["B"]
        assert len(audit.summaries) == 1
        assert metrics_registry.get_sample_value(
            "batch_coordinator_trigger_group_failures_total"
        ) == 1.0

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_raise(self) -> None:
        trigger = CompletionTrigger(RecordingDispatcher(), RecordingAuditSink(fail=True))

        summary = await trigger.fire(completed_record())

        assert summary.batch_id == "b1"

    @pytest.mark.asyncio
    async def test_forced_partial_batch(self) -> None:
        record = BatchRecord.new("b2", 10)
        record.apply_result(JobResult(success=True, job_id="j1", group_key="A"))
        audit = RecordingAuditSink()

        summary = await CompletionTrigger(RecordingDispatcher(), audit).fire(record, forced=True)

        assert summary.forced
        assert summary.completed_count == 1
        assert summary.expected_count == 10
        assert summary.source is None
        assert summary.source_label == "System"
        assert summary.groups_notified == ["A"]
