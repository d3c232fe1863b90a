"""
Redis-backed session store for batch records.

One JSON value per batch under a fixed key prefix, written with a TTL that
is refreshed on every save. Every call is bounded by an operation timeout;
connection errors and timeouts surface as StoreUnavailableError so the
routing layer can fall back to the in-process store.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from pydantic import ValidationError
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from batch_coordinator.error_handling import raise_already_exists, raise_store_unavailable
from batch_coordinator.implementations.redis_script_manager import BatchKeyManager
from batch_coordinator.logging_utils import create_service_logger
from batch_coordinator.models import BatchMetadata, BatchRecord
from batch_coordinator.protocols import RedisClientProtocol

logger = create_service_logger(__name__)

SERVICE_NAME = "batch_coordinator"

T = TypeVar("T")

UNAVAILABLE_ERRORS = (RedisConnectionError, RedisTimeoutError, asyncio.TimeoutError, OSError)


class RedisSessionStore:
    """Shared, TTL-bound mapping from batch id to serialized BatchRecord."""

    def __init__(
        self,
        redis_client: RedisClientProtocol,
        key_manager: BatchKeyManager,
        ttl_seconds: int = 3600,
        operation_timeout: float = 5.0,
    ) -> None:
        self._redis = redis_client
        self._keys = key_manager
        self._ttl_seconds = ttl_seconds
        self._operation_timeout = operation_timeout

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    async def _call(self, operation: str, batch_id: str | None, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._operation_timeout)
        except UNAVAILABLE_ERRORS as e:
            raise_store_unavailable(
                service=SERVICE_NAME,
                operation=operation,
                message=f"Shared store unavailable during {operation}: {e}",
                batch_id=batch_id,
                error_type=type(e).__name__,
            )

    async def create(
        self,
        batch_id: str,
        expected_count: int,
        metadata: BatchMetadata,
    ) -> BatchRecord:
        """Atomically create the record; fails if a live record already exists."""
        record = BatchRecord.new(batch_id, expected_count, metadata)
        created = await self._call(
            "create",
            batch_id,
            self._redis.set_if_not_exists(
                self._keys.get_record_key(batch_id),
                record.model_dump_json(),
                ttl_seconds=self._ttl_seconds,
            ),
        )
        if not created:
            raise_already_exists(
                service=SERVICE_NAME,
                operation="create",
                message=f"Batch {batch_id} is already registered",
                batch_id=batch_id,
            )

        logger.info(
            f"Created batch record {batch_id} with {expected_count} expected jobs "
            f"(TTL: {self._ttl_seconds}s)"
        )
        return record

    async def get(self, batch_id: str) -> BatchRecord | None:
        raw = await self._call("get", batch_id, self._redis.get(self._keys.get_record_key(batch_id)))
        if raw is None:
            return None

        try:
            return BatchRecord.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Unreadable batch record for {batch_id}, treating as missing: {e}")
            return None

    async def save(self, record: BatchRecord) -> None:
        """Full overwrite; refreshes the TTL."""
        await self._call(
            "save",
            record.batch_id,
            self._redis.setex(
                self._keys.get_record_key(record.batch_id),
                self._ttl_seconds,
                record.model_dump_json(),
            ),
        )

    async def delete(self, batch_id: str) -> None:
        deleted = await self._call(
            "delete", batch_id, self._redis.delete_key(self._keys.get_record_key(batch_id))
        )
        logger.debug(f"Deleted batch record {batch_id} (existed={bool(deleted)})")

    async def list_batch_ids(self) -> list[str]:
        keys = await self._call(
            "list_batch_ids", None, self._redis.scan_pattern(self._keys.get_scan_pattern())
        )
        batch_ids = [self._keys.batch_id_from_key(key) for key in keys]
        return sorted(batch_id for batch_id in batch_ids if batch_id)
