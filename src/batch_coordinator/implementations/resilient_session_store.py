"""
Session store that routes between the shared Redis store and the local fallback.

Routing rules:
- Successful shared-store writes are mirrored into the fallback as clean copies.
- When the shared store is unavailable, writes land in the fallback as
  local-only entries, and a warning is logged once per batch.
- A local-only entry wins on read until the next successful shared write.
- A shared-store miss is authoritative; a clean mirror is never served then.
- A batch that finished while its shared record could not be deleted reads as
  missing, and the delete is retried on later calls.
- The once-per-batch warnings reset when a shared-store call succeeds again.
- Without a configured shared store everything goes to the fallback, with a
  single warning when the store is built.
"""

from __future__ import annotations

from typing import Any

from batch_coordinator.error_handling import StoreUnavailableError
from batch_coordinator.implementations.local_fallback_store import LocalFallbackStore
from batch_coordinator.implementations.redis_session_store import RedisSessionStore
from batch_coordinator.logging_utils import create_service_logger
from batch_coordinator.models import BatchMetadata, BatchRecord

logger = create_service_logger(__name__)


class ResilientSessionStore:
    """SessionStoreProtocol implementation with transparent local fallback."""

    def __init__(
        self,
        fallback: LocalFallbackStore,
        primary: RedisSessionStore | None = None,
        metrics: dict[str, Any] | None = None,
    ) -> None:
        self._primary = primary
        self._fallback = fallback
        self._metrics = metrics
        self._warned_batches: set[str] = set()

        if primary is None:
            logger.warning(
                "No shared store configured; batch state is held in-process only "
                "and is not shared between workers"
            )

    @property
    def fallback(self) -> LocalFallbackStore:
        return self._fallback

    @property
    def has_shared_store(self) -> bool:
        return self._primary is not None

    def _note_fallback(self, operation: str, batch_id: str | None, error: StoreUnavailableError) -> None:
        if self._metrics:
            self._metrics["store_fallbacks"].labels(operation=operation).inc()

        warn_key = batch_id or "*"
        if warn_key in self._warned_batches:
            logger.debug(f"Shared store still unavailable for {operation} on {warn_key}")
            return
        self._warned_batches.add(warn_key)
        logger.warning(
            f"Shared store unavailable during {operation}; using local fallback "
            f"(batch: {warn_key}): {error.error_detail.message}",
            correlation_id=error.correlation_id,
        )

    def _note_recovered(self) -> None:
        if not self._warned_batches:
            return
        logger.info(
            f"Shared store reachable again; {len(self._warned_batches)} batch(es) "
            "had fallen back to the local store"
        )
        self._warned_batches.clear()

    async def _replay_delete(self, batch_id: str) -> None:
        """Retry a shared-store delete left pending when the batch finished on the fallback."""
        assert self._primary is not None
        try:
            await self._primary.delete(batch_id)
        except StoreUnavailableError as e:
            self._note_fallback("delete", batch_id, e)
            return

        self._fallback.clear_pending_delete(batch_id)
        self._note_recovered()
        logger.info(f"Deleted stale shared record for finished batch {batch_id}")

    async def create(
        self,
        batch_id: str,
        expected_count: int,
        metadata: BatchMetadata,
    ) -> BatchRecord:
        if self._primary is None:
            return await self._fallback.create(batch_id, expected_count, metadata)

        if self._fallback.has_pending_delete(batch_id):
            await self._replay_delete(batch_id)

        try:
            record = await self._primary.create(batch_id, expected_count, metadata)
        except StoreUnavailableError as e:
            self._note_fallback("create", batch_id, e)
            return await self._fallback.create(batch_id, expected_count, metadata)

        self._note_recovered()
        self._fallback.mirror(record)
        return record

    async def get(self, batch_id: str) -> BatchRecord | None:
        if self._primary is None:
            return await self._fallback.get(batch_id)

        if self._fallback.is_local_only(batch_id):
            return await self._fallback.get(batch_id)

        # The batch already finished; its shared record is stale.
        if self._fallback.has_pending_delete(batch_id):
            await self._replay_delete(batch_id)
            return None

        try:
            record = await self._primary.get(batch_id)
        except StoreUnavailableError as e:
            self._note_fallback("get", batch_id, e)
            return await self._fallback.get(batch_id)

        self._note_recovered()
        if record is None:
            self._fallback.discard_mirror(batch_id)
            return None

        self._fallback.mirror(record)
        return record

    async def save(self, record: BatchRecord) -> None:
        if self._primary is None:
            await self._fallback.save(record)
            return

        try:
            await self._primary.save(record)
        except StoreUnavailableError as e:
            self._note_fallback("save", record.batch_id, e)
            await self._fallback.save(record)
            return

        self._note_recovered()
        self._fallback.mirror(record)

    async def delete(self, batch_id: str) -> None:
        if self._primary is not None:
            try:
                await self._primary.delete(batch_id)
            except StoreUnavailableError as e:
                self._note_fallback("delete", batch_id, e)
                self._fallback.mark_pending_delete(batch_id)
                logger.warning(
                    f"Shared record for finished batch {batch_id} could not be deleted; "
                    "it is treated as gone and the delete will be retried"
                )
            else:
                self._fallback.clear_pending_delete(batch_id)
                self._note_recovered()

        await self._fallback.delete(batch_id)
        self._warned_batches.discard(batch_id)

    async def list_batch_ids(self) -> list[str]:
        if self._primary is None:
            return await self._fallback.list_batch_ids()

        try:
            shared_ids = await self._primary.list_batch_ids()
        except StoreUnavailableError as e:
            self._note_fallback("list_batch_ids", None, e)
            return await self._fallback.list_batch_ids()

        self._note_recovered()
        pending = set(self._fallback.pending_delete_ids())
        for batch_id in sorted(pending):
            await self._replay_delete(batch_id)

        local_only = set(self._fallback.local_only_batch_ids())
        return sorted((set(shared_ids) - pending) | local_only)
