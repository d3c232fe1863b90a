"""
Redis key naming and Lua script management for batch coordination.

Centralizes the key layout (record key, lock key, scan pattern) and the
compare-and-delete script used to release batch locks safely.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from batch_coordinator.logging_utils import create_service_logger

if TYPE_CHECKING:
    from batch_coordinator.protocols import RedisClientProtocol

logger = create_service_logger(__name__)


# -----------------------------------------------------------------------------
# LOCK RELEASE LUA SCRIPT
# -----------------------------------------------------------------------------
# Deletes the lock key only if it still holds the caller's owner token.
#
# A holder whose lease expired mid-critical-section must not delete the lock
# that a successor has since acquired.
#
# KEYS[1]: lock key (e.g., batch:notification:{id}:lock)
# ARGV[1]: owner token
#
# Returns 1 if the lock was deleted, 0 if it was absent or held by another owner.
# -----------------------------------------------------------------------------
RELEASE_LOCK_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class BatchKeyManager:
    """Key naming for batch records and their locks."""

    def __init__(self, key_prefix: str = "batch:notification:", lock_suffix: str = ":lock") -> None:
        self._key_prefix = key_prefix
        self._lock_suffix = lock_suffix

    def get_record_key(self, batch_id: str) -> str:
        """Get Redis key for the serialized batch record."""
        return f"{self._key_prefix}{batch_id}"

    def get_lock_key(self, batch_id: str) -> str:
        """Get Redis key for the batch lock."""
        return f"{self.get_record_key(batch_id)}{self._lock_suffix}"

    def get_scan_pattern(self) -> str:
        """Glob pattern matching every record key (and lock keys, which callers filter)."""
        return f"{self._key_prefix}*"

    def batch_id_from_key(self, key: str) -> str | None:
        """Extract the batch id from a record key; None for lock keys and foreign keys."""
        if not key.startswith(self._key_prefix) or key.endswith(self._lock_suffix):
            return None
        return key[len(self._key_prefix) :]


class RedisScriptManager:
    """
    Loads and executes the lock-release Lua script.

    The SHA is cached after the first load; loading is guarded by an asyncio
    lock so concurrent first releases register the script once.
    """

    def __init__(self, redis_client: RedisClientProtocol) -> None:
        self._redis = redis_client
        self._script_load_lock = asyncio.Lock()
        self._release_lock_script_sha: str | None = None

    async def ensure_scripts_loaded(self) -> None:
        """Load Lua scripts if not already loaded, protected by a lock."""
        if self._release_lock_script_sha:
            return

        async with self._script_load_lock:
            if self._release_lock_script_sha is None:
                self._release_lock_script_sha = await self._redis.register_script(
                    RELEASE_LOCK_SCRIPT
                )
                logger.info("Loaded lock release script")

    def invalidate(self) -> None:
        """Forget cached SHAs, e.g. after Redis lost its script cache on restart."""
        self._release_lock_script_sha = None

    async def execute_release_script(self, lock_key: str, token: str) -> bool:
        """Run compare-and-delete for a lock key. Returns True if the lock was deleted."""
        await self.ensure_scripts_loaded()
        assert self._release_lock_script_sha is not None, "Script SHA must be loaded"
        result = await self._redis.execute_script(
            self._release_lock_script_sha, [lock_key], [token]
        )
        return int(result or 0) == 1
