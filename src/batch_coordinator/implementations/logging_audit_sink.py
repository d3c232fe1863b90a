"""Audit sink that writes completion summaries to the structured log."""

from __future__ import annotations

from batch_coordinator.logging_utils import create_service_logger
from batch_coordinator.models import CompletionSummary

logger = create_service_logger("batch_coordinator.audit")


class LoggingAuditSink:
    """Default AuditSinkProtocol implementation for hosts without an audit store."""

    async def record_batch_completion(self, summary: CompletionSummary) -> None:
        logger.info(
            f"{summary.source_label} complete: {summary.success_count} of "
            f"{summary.expected_count} succeeded ({summary.processing_time})",
            audit_event="batch_completed",
            **summary.model_dump(mode="json"),
        )
