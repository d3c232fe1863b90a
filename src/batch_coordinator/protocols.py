"""
Protocol interfaces for the batch coordinator.

Defines the contracts for the shared key-value store client, the session
store and lock backends, and the external collaborators reached by the
completion trigger.
"""

from __future__ import annotations

from typing import Any, Protocol

from batch_coordinator.models import BatchItem, BatchMetadata, BatchRecord, CompletionSummary

__all__ = [
    "AuditSinkProtocol",
    "LockBackendProtocol",
    "NotificationDispatcherProtocol",
    "RedisClientProtocol",
    "SessionStoreProtocol",
]


class RedisClientProtocol(Protocol):
    """Subset of Redis operations the coordinator depends on."""

    async def set_if_not_exists(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
    ) -> bool:
        """
        Atomic SET if NOT EXISTS with optional expiry.

        Returns:
            True if key was set, False if key already exists
        """
        ...

    async def get(self, key: str) -> str | None:
        """Get string value, or None if the key does not exist."""
        ...

    async def setex(self, key: str, ttl_seconds: int, value: str) -> bool:
        """Set string value with TTL."""
        ...

    async def delete_key(self, key: str) -> int:
        """Delete a key. Returns the number of keys deleted (0 or 1)."""
        ...

    async def scan_pattern(self, pattern: str) -> list[str]:
        """Return all keys matching a glob-style pattern."""
        ...

    async def register_script(self, script_body: str) -> str:
        """Load a Lua script and return its SHA1 hash."""
        ...

    async def execute_script(self, sha: str, keys: list[str], args: list[Any]) -> Any:
        """Execute a pre-loaded Lua script by its SHA1 hash."""
        ...

    async def ping(self) -> bool:
        """Health check."""
        ...


class SessionStoreProtocol(Protocol):
    """Batch record persistence contract shared by the Redis, fallback and routing stores."""

    async def create(
        self,
        batch_id: str,
        expected_count: int,
        metadata: BatchMetadata,
    ) -> BatchRecord:
        """Create a record; raises AlreadyExistsError if a live one exists."""
        ...

    async def get(self, batch_id: str) -> BatchRecord | None:
        """Load a record, or None if absent."""
        ...

    async def save(self, record: BatchRecord) -> None:
        """Overwrite the record and refresh its TTL."""
        ...

    async def delete(self, batch_id: str) -> None:
        """Delete the record. Deleting an absent record is not an error."""
        ...

    async def list_batch_ids(self) -> list[str]:
        """List ids of all live records."""
        ...


class LockBackendProtocol(Protocol):
    """Atomic set-if-absent-with-expiry primitive used by the distributed lock."""

    async def try_acquire(self, key: str, token: str, ttl_seconds: int) -> bool:
        """Set key to token only if absent, expiring after ttl_seconds."""
        ...

    async def release(self, key: str, token: str) -> bool:
        """Delete key only if it still holds token. Returns False if it did not."""
        ...


class NotificationDispatcherProtocol(Protocol):
    """External aggregation/notification step invoked once per group on completion."""

    async def dispatch_group(
        self,
        batch_id: str,
        group_key: str,
        items: list[BatchItem],
        metadata: BatchMetadata,
    ) -> int:
        """
        Hand off one group's successful items.

        Returns:
            Number of downstream actions dispatched (used for the audit summary only)
        """
        ...


class AuditSinkProtocol(Protocol):
    """Receives exactly one completion event per triggered batch."""

    async def record_batch_completion(self, summary: CompletionSummary) -> None:
        ...
