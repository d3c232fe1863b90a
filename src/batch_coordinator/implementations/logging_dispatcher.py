"""Notification dispatcher that only logs each group it receives."""

from __future__ import annotations

from batch_coordinator.logging_utils import create_service_logger
from batch_coordinator.models import BatchItem, BatchMetadata

logger = create_service_logger("batch_coordinator.dispatch")


class LoggingNotificationDispatcher:
    """
    Dispatcher used by the admin CLI when no real dispatcher is supplied.

    Reports one action per group so forced triggers still produce a
    meaningful summary.
    """

    async def dispatch_group(
        self,
        batch_id: str,
        group_key: str,
        items: list[BatchItem],
        metadata: BatchMetadata,
    ) -> int:
        logger.info(
            f"Group {group_key} in batch {batch_id}: {len(items)} successful items",
            group_key=group_key,
            job_ids=[item.job_id for item in items],
            initiated_by=metadata.initiated_by,
        )
        return 1
