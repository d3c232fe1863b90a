"""
Per-batch mutual exclusion across processes.

The lock is a key set-if-absent with a short expiry, holding an owner token.
Release is compare-and-delete so an owner whose lease expired never deletes
a successor's lock. Acquisition retries with randomized backoff and then
gives up, leaving the policy decision to the caller.
"""

from __future__ import annotations

import asyncio
import os
import random
import socket
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import NoScriptError
from redis.exceptions import TimeoutError as RedisTimeoutError

from batch_coordinator.error_handling import (
    StoreUnavailableError,
    raise_lock_busy,
    raise_store_unavailable,
)
from batch_coordinator.implementations.redis_script_manager import (
    BatchKeyManager,
    RedisScriptManager,
)
from batch_coordinator.logging_utils import create_service_logger
from batch_coordinator.protocols import LockBackendProtocol, RedisClientProtocol

logger = create_service_logger(__name__)

SERVICE_NAME = "batch_coordinator"

UNAVAILABLE_ERRORS = (RedisConnectionError, RedisTimeoutError, asyncio.TimeoutError, OSError)


def generate_owner_token() -> str:
    """Owner token unique across hosts, processes and acquisitions."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex}"


class RedisLockBackend:
    """LockBackendProtocol over Redis SET NX EX and a compare-and-delete script."""

    def __init__(self, redis_client: RedisClientProtocol, operation_timeout: float = 5.0) -> None:
        self._redis = redis_client
        self._scripts = RedisScriptManager(redis_client)
        self._operation_timeout = operation_timeout

    async def try_acquire(self, key: str, token: str, ttl_seconds: int) -> bool:
        try:
            return await asyncio.wait_for(
                self._redis.set_if_not_exists(key, token, ttl_seconds=ttl_seconds),
                timeout=self._operation_timeout,
            )
        except UNAVAILABLE_ERRORS as e:
            raise_store_unavailable(
                service=SERVICE_NAME,
                operation="lock_acquire",
                message=f"Lock backend unavailable: {e}",
                lock_key=key,
            )

    async def release(self, key: str, token: str) -> bool:
        try:
            try:
                return await asyncio.wait_for(
                    self._scripts.execute_release_script(key, token),
                    timeout=self._operation_timeout,
                )
            except NoScriptError:
                # Script cache was flushed (e.g. Redis restart); reload once
                self._scripts.invalidate()
                return await asyncio.wait_for(
                    self._scripts.execute_release_script(key, token),
                    timeout=self._operation_timeout,
                )
        except UNAVAILABLE_ERRORS as e:
            raise_store_unavailable(
                service=SERVICE_NAME,
                operation="lock_release",
                message=f"Lock backend unavailable: {e}",
                lock_key=key,
            )


@dataclass(frozen=True)
class LockLease:
    """Proof of lock ownership, needed to release."""

    batch_id: str
    key: str
    token: str
    backend: LockBackendProtocol


class DistributedLock:
    """
    Per-batch lock with bounded retries.

    `acquire` returns None once attempts are exhausted; `hold` raises
    LockBusyError instead. When the primary backend is unavailable the lock
    is taken on the fallback backend, which only excludes within this process.
    """

    def __init__(
        self,
        key_manager: BatchKeyManager,
        fallback_backend: LockBackendProtocol,
        primary_backend: LockBackendProtocol | None = None,
        ttl_seconds: int = 5,
        max_attempts: int = 10,
        retry_base_ms: int = 50,
        retry_jitter_ms: int = 100,
        metrics: dict[str, Any] | None = None,
    ) -> None:
        self._keys = key_manager
        self._primary = primary_backend
        self._fallback = fallback_backend
        self._ttl_seconds = ttl_seconds
        self._max_attempts = max_attempts
        self._retry_base_ms = retry_base_ms
        self._retry_jitter_ms = retry_jitter_ms
        self._metrics = metrics
        self._warned_fallback = False

    def _retry_delay(self) -> float:
        return (self._retry_base_ms + random.random() * self._retry_jitter_ms) / 1000

    async def _try_once(self, key: str, token: str) -> LockBackendProtocol | None:
        if self._primary is not None:
            try:
                if await self._primary.try_acquire(key, token, self._ttl_seconds):
                    return self._primary
                return None
            except StoreUnavailableError as e:
                if not self._warned_fallback:
                    self._warned_fallback = True
                    logger.warning(f"Lock backend unavailable, using in-process lock: {e}")

        if await self._fallback.try_acquire(key, token, self._ttl_seconds):
            return self._fallback
        return None

    async def acquire(self, batch_id: str) -> LockLease | None:
        """Try to take the batch lock; None when every attempt found it held."""
        key = self._keys.get_lock_key(batch_id)
        token = generate_owner_token()

        for attempt in range(1, self._max_attempts + 1):
            backend = await self._try_once(key, token)
            if backend is not None:
                if attempt > 1:
                    logger.debug(f"Acquired lock for batch {batch_id} on attempt {attempt}")
                return LockLease(batch_id=batch_id, key=key, token=token, backend=backend)

            if attempt < self._max_attempts:
                await asyncio.sleep(self._retry_delay())

        if self._metrics:
            self._metrics["lock_acquire_failures"].inc()
        logger.warning(
            f"Could not acquire lock for batch {batch_id} after {self._max_attempts} attempts"
        )
        return None

    async def release(self, lease: LockLease) -> None:
        """Release only if still owned; an expired lease is logged, not raised."""
        try:
            released = await lease.backend.release(lease.key, lease.token)
        except StoreUnavailableError as e:
            logger.error(
                f"Failed to release lock for batch {lease.batch_id}; it will expire: {e}",
            )
            return

        if not released:
            logger.warning(
                f"Lock for batch {lease.batch_id} expired before release; "
                f"critical section outlived the {self._ttl_seconds}s lease"
            )

    @asynccontextmanager
    async def hold(self, batch_id: str, operation: str = "hold") -> AsyncIterator[LockLease]:
        """Hold the batch lock for the duration of the block; raises LockBusyError."""
        lease = await self.acquire(batch_id)
        if lease is None:
            raise_lock_busy(
                service=SERVICE_NAME,
                operation=operation,
                message=f"Lock for batch {batch_id} is busy",
                batch_id=batch_id,
                attempts=self._max_attempts,
            )
        try:
            yield lease
        finally:
            await self.release(lease)
