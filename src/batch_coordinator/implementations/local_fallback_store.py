"""
In-process fallback for batch records and batch locks.

Used when the shared store is unconfigured or unreachable. It is only
correct for a single process; entries written here while the shared store
is down are marked local-only so the routing layer can prefer them over the
shared store until the batch finishes.

When a batch finishes here but its shared record cannot be deleted, the
batch id is kept as a pending delete so the routing layer can retry the
delete and treat the shared record as gone in the meantime.

Entries and pending deletes are evicted by a periodic sweep once they exceed
the maximum age.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from batch_coordinator.error_handling import raise_already_exists
from batch_coordinator.logging_utils import create_service_logger
from batch_coordinator.models import BatchMetadata, BatchRecord, utc_now

logger = create_service_logger(__name__)

SERVICE_NAME = "batch_coordinator"


@dataclass
class FallbackEntry:
    record: BatchRecord
    local_only: bool


class LocalFallbackStore:
    """Thread-safe in-memory record store and lock backend."""

    def __init__(
        self,
        max_age_seconds: int = 86400,
        sweep_interval_seconds: int = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_age = timedelta(seconds=max_age_seconds)
        self._sweep_interval_seconds = sweep_interval_seconds
        self._entries: dict[str, FallbackEntry] = {}
        self._locks: dict[str, tuple[str, float]] = {}
        self._pending_deletes: dict[str, datetime] = {}
        self._mutex = threading.Lock()
        self._sweeper_task: asyncio.Task[None] | None = None
        self._clock = clock

    # ------------------------------------------------------------------
    # Record store
    # ------------------------------------------------------------------

    async def create(
        self,
        batch_id: str,
        expected_count: int,
        metadata: BatchMetadata,
    ) -> BatchRecord:
        record = BatchRecord.new(batch_id, expected_count, metadata)
        with self._mutex:
            if batch_id in self._entries:
                raise_already_exists(
                    service=SERVICE_NAME,
                    operation="create",
                    message=f"Batch {batch_id} is already registered in the local fallback",
                    batch_id=batch_id,
                )
            self._entries[batch_id] = FallbackEntry(record=record.model_copy(deep=True), local_only=True)
        return record

    async def get(self, batch_id: str) -> BatchRecord | None:
        with self._mutex:
            entry = self._entries.get(batch_id)
            return entry.record.model_copy(deep=True) if entry else None

    async def save(self, record: BatchRecord) -> None:
        """Store a record written while the shared store was unavailable."""
        self._put(record, local_only=True)

    def mirror(self, record: BatchRecord) -> None:
        """Keep a clean copy of a record that was persisted to the shared store."""
        self._put(record, local_only=False)

    def _put(self, record: BatchRecord, local_only: bool) -> None:
        with self._mutex:
            self._entries[record.batch_id] = FallbackEntry(
                record=record.model_copy(deep=True), local_only=local_only
            )

    def is_local_only(self, batch_id: str) -> bool:
        with self._mutex:
            entry = self._entries.get(batch_id)
            return bool(entry and entry.local_only)

    async def delete(self, batch_id: str) -> None:
        with self._mutex:
            self._entries.pop(batch_id, None)

    def discard_mirror(self, batch_id: str) -> None:
        """Drop a clean copy; local-only entries are kept."""
        with self._mutex:
            entry = self._entries.get(batch_id)
            if entry and not entry.local_only:
                del self._entries[batch_id]

    async def list_batch_ids(self) -> list[str]:
        with self._mutex:
            return sorted(self._entries)

    def local_only_batch_ids(self) -> list[str]:
        with self._mutex:
            return sorted(batch_id for batch_id, e in self._entries.items() if e.local_only)

    # ------------------------------------------------------------------
    # Pending shared-store deletes
    # ------------------------------------------------------------------

    def mark_pending_delete(self, batch_id: str) -> None:
        with self._mutex:
            self._pending_deletes[batch_id] = utc_now()

    def has_pending_delete(self, batch_id: str) -> bool:
        with self._mutex:
            return batch_id in self._pending_deletes

    def clear_pending_delete(self, batch_id: str) -> None:
        with self._mutex:
            self._pending_deletes.pop(batch_id, None)

    def pending_delete_ids(self) -> list[str]:
        with self._mutex:
            return sorted(self._pending_deletes)

    # ------------------------------------------------------------------
    # Lock backend
    # ------------------------------------------------------------------

    async def try_acquire(self, key: str, token: str, ttl_seconds: int) -> bool:
        now = self._clock()
        with self._mutex:
            current = self._locks.get(key)
            if current is not None and current[1] > now:
                return False
            self._locks[key] = (token, now + ttl_seconds)
            return True

    async def release(self, key: str, token: str) -> bool:
        now = self._clock()
        with self._mutex:
            current = self._locks.get(key)
            if current is None:
                return False
            held_token, expires_at = current
            if expires_at <= now:
                del self._locks[key]
                return False
            if held_token != token:
                return False
            del self._locks[key]
            return True

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def sweep_expired(self, now: datetime | None = None) -> int:
        """
        Evict records and pending deletes older than the maximum age, and expired locks.

        Returns:
            Number of records evicted
        """
        now = now or utc_now()
        cutoff = now - self._max_age
        monotonic_now = self._clock()
        with self._mutex:
            stale = [
                batch_id
                for batch_id, entry in self._entries.items()
                if entry.record.started_at < cutoff
            ]
            for batch_id in stale:
                del self._entries[batch_id]

            stale_deletes = [
                batch_id for batch_id, marked_at in self._pending_deletes.items() if marked_at < cutoff
            ]
            for batch_id in stale_deletes:
                del self._pending_deletes[batch_id]

            expired_locks = [key for key, (_, exp) in self._locks.items() if exp <= monotonic_now]
            for key in expired_locks:
                del self._locks[key]

        if stale:
            logger.info(f"Swept {len(stale)} stale batch records from local fallback store")
        return len(stale)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval_seconds)
            try:
                self.sweep_expired()
            except Exception as e:
                logger.error(f"Local fallback sweep failed: {e}", exc_info=True)

    def start_sweeper(self) -> None:
        """Start the periodic sweep on the running event loop (idempotent)."""
        if self._sweeper_task is None or self._sweeper_task.done():
            self._sweeper_task = asyncio.create_task(self._sweep_loop())
            logger.debug(f"Local fallback sweeper started (interval: {self._sweep_interval_seconds}s)")

    async def stop_sweeper(self) -> None:
        if self._sweeper_task is None:
            return
        self._sweeper_task.cancel()
        try:
            await self._sweeper_task
        except asyncio.CancelledError:
            pass
        self._sweeper_task = None
