"""
Batch completion coordinator.

Tracks N independent job completions for a batch across processes and fires
the completion trigger exactly once when the last one arrives. All mutation
happens under the per-batch distributed lock. The finished record is saved
as finalizing before the trigger runs and deleted afterwards, so a late or
duplicate report finds either a finalizing record or no record.
"""

from __future__ import annotations

from typing import Any

from batch_coordinator.error_handling import (
    raise_batch_not_found,
    raise_validation_error,
)
from batch_coordinator.implementations.completion_trigger import CompletionTrigger
from batch_coordinator.implementations.distributed_lock import DistributedLock
from batch_coordinator.logging_utils import bind_batch_context, create_service_logger
from batch_coordinator.models import (
    BatchMetadata,
    BatchRecord,
    BatchStatus,
    CompletionSummary,
    JobResult,
)
from batch_coordinator.protocols import SessionStoreProtocol
from batch_coordinator.status_enums import RecordOutcome

logger = create_service_logger("batch_coordinator.coordinator")

SERVICE_NAME = "batch_coordinator"


class BatchCoordinator:
    """Registration, completion counting and administration of batches."""

    def __init__(
        self,
        store: SessionStoreProtocol,
        lock: DistributedLock,
        trigger: CompletionTrigger,
        metrics: dict[str, Any] | None = None,
    ) -> None:
        self._store = store
        self._lock = lock
        self._trigger = trigger
        self._metrics = metrics

    def _count(self, name: str, **labels: str) -> None:
        if not self._metrics:
            return
        metric = self._metrics[name]
        (metric.labels(**labels) if labels else metric).inc()

    async def register(
        self,
        batch_id: str,
        expected_count: int,
        metadata: BatchMetadata | dict[str, Any] | None = None,
    ) -> BatchRecord:
        """
        Register a batch before dispatching its jobs.

        Raises:
            BatchValidationError: empty batch id or expected_count below 1
            AlreadyExistsError: a live record with this id exists
        """
        if not batch_id:
            raise_validation_error(
                service=SERVICE_NAME,
                operation="register",
                field="batch_id",
                message="batch_id must be a non-empty string",
            )
        if expected_count < 1:
            raise_validation_error(
                service=SERVICE_NAME,
                operation="register",
                field="expected_count",
                message=f"expected_count must be at least 1, got {expected_count}",
                batch_id=batch_id,
            )

        if isinstance(metadata, dict):
            metadata = BatchMetadata.model_validate(metadata)

        with bind_batch_context(batch_id):
            record = await self._store.create(batch_id, expected_count, metadata or BatchMetadata())
            self._count("batches_registered")
            logger.info(
                f"Registered batch {batch_id} expecting {expected_count} jobs",
                source=record.metadata.source,
            )
            return record

    async def record_completion(self, batch_id: str, result: JobResult) -> RecordOutcome:
        """
        Record one job's outcome. Never raises into the worker.

        The last report for a batch runs the completion trigger (unless the
        batch was cancelled) and deletes the record before the lock is released.
        """
        with bind_batch_context(batch_id, job_id=result.job_id):
            outcome = await self._record_completion(batch_id, result)
            self._count("job_completions", outcome=outcome.value)
            return outcome

    async def _record_completion(self, batch_id: str, result: JobResult) -> RecordOutcome:
        lease = await self._lock.acquire(batch_id)
        if lease is None:
            logger.error(
                f"Lock unavailable for batch {batch_id}; completion of job "
                f"{result.job_id} not counted"
            )
            return RecordOutcome.LOCK_UNAVAILABLE

        try:
            record = await self._store.get(batch_id)
            if record is None:
                logger.critical(
                    f"Batch {batch_id} not found for completion of job {result.job_id}; "
                    "the batch expired, was never registered, or already finished. "
                    "This completion is lost."
                )
                return RecordOutcome.BATCH_NOT_FOUND

            if record.is_complete or record.finalizing:
                logger.warning(
                    f"Duplicate completion for batch {batch_id}: already at "
                    f"{record.completed_count}/{record.expected_count}"
                )
                return RecordOutcome.DUPLICATE

            record.apply_result(result)
            logger.debug(
                f"Batch {batch_id} progress: {record.completed_count}/{record.expected_count}",
                success=result.success,
            )

            if not record.is_complete:
                await self._store.save(record)
                return RecordOutcome.RECORDED

            return await self._finish(record)
        except Exception as e:
            logger.error(
                f"Unexpected error recording completion for batch {batch_id}: {e}",
                exc_info=True,
            )
            return RecordOutcome.ERROR
        finally:
            await self._lock.release(lease)

    async def _finish(self, record: BatchRecord) -> RecordOutcome:
        """Trigger (unless cancelled) and delete. Caller holds the lock."""
        if not record.cancelled:
            await self._persist_finalizing(record)

        try:
            if record.cancelled:
                logger.info(
                    f"Batch {record.batch_id} reached {record.expected_count} completions "
                    "after cancellation; trigger suppressed"
                )
                self._count("batches_finished", result="cancelled")
                return RecordOutcome.CANCELLED

            await self._trigger.fire(record)
            self._count("batches_finished", result="triggered")
            return RecordOutcome.COMPLETED
        finally:
            await self._store.delete(record.batch_id)

    async def _persist_finalizing(self, record: BatchRecord) -> None:
        """
        Save the finished state before the trigger runs.

        The trigger may outlive the lock lease. A report that takes the lock
        after the lease lapses must find a finalizing record and stop there.
        """
        record.mark_finalizing()
        await self._store.save(record)

    async def cancel(self, batch_id: str) -> bool:
        """
        Mark a batch cancelled. Completions keep counting; the trigger is suppressed.

        Returns:
            False if the batch does not exist

        Raises:
            LockBusyError: the batch lock could not be acquired
        """
        with bind_batch_context(batch_id):
            async with self._lock.hold(batch_id, operation="cancel"):
                record = await self._store.get(batch_id)
                if record is None:
                    logger.warning(f"Cannot cancel batch {batch_id}: not found")
                    return False

                record.mark_cancelled()
                await self._store.save(record)
                logger.info(
                    f"Cancelled batch {batch_id} at "
                    f"{record.completed_count}/{record.expected_count}"
                )
                return True

    async def is_cancelled(self, batch_id: str) -> bool:
        """Cheap check for workers that want to stop early. Unknown batches are not cancelled."""
        record = await self._store.get(batch_id)
        return bool(record and record.cancelled)

    async def get_status(self, batch_id: str) -> BatchStatus | None:
        record = await self._store.get(batch_id)
        return record.to_status() if record else None

    async def list_active(self) -> list[BatchStatus]:
        """Status of every live batch. Batches that vanish mid-scan are skipped."""
        statuses: list[BatchStatus] = []
        for batch_id in await self._store.list_batch_ids():
            status = await self.get_status(batch_id)
            if status is not None:
                statuses.append(status)
        return statuses

    async def force_trigger(self, batch_id: str) -> CompletionSummary:
        """
        Run the completion trigger now with whatever has been recorded, then delete.

        Fires even for a cancelled batch, since an operator asked for it explicitly.

        Raises:
            BatchNotFoundError: the batch does not exist
            LockBusyError: the batch lock could not be acquired
        """
        with bind_batch_context(batch_id, forced=True):
            async with self._lock.hold(batch_id, operation="force_trigger"):
                record = await self._store.get(batch_id)
                if record is None:
                    raise_batch_not_found(
                        service=SERVICE_NAME,
                        operation="force_trigger",
                        message=f"Batch {batch_id} not found",
                        batch_id=batch_id,
                    )

                if record.finalizing:
                    logger.warning(
                        f"Batch {batch_id} is already finalizing; a previous trigger may "
                        "have been interrupted"
                    )
                logger.warning(
                    f"Force-triggering batch {batch_id} at "
                    f"{record.completed_count}/{record.expected_count}"
                )
                await self._persist_finalizing(record)
                try:
                    summary = await self._trigger.fire(record, forced=True)
                finally:
                    await self._store.delete(batch_id)

                self._count("batches_finished", result="forced")
                return summary
