"""
Redis client wrapper for the batch coordinator.

Provides the minimal Redis operations needed for batch records and batch
locks, with explicit start/stop lifecycle management.
"""

from __future__ import annotations

from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from batch_coordinator.logging_utils import create_service_logger
from batch_coordinator.protocols import RedisClientProtocol

logger = create_service_logger("redis-client")


class RedisClient(RedisClientProtocol):
    """Redis client with lifecycle management for batch coordination."""

    def __init__(
        self,
        *,
        client_id: str,
        redis_url: str,
        socket_timeout: float = 5.0,
    ):
        self.redis_url = redis_url
        self.client_id = client_id
        self.client = aioredis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
        )
        self._started = False

    @property
    def is_started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Initialize Redis connection with health verification."""
        if not self._started:
            try:
                await self.client.ping()
                self._started = True
                logger.info(f"Redis client '{self.client_id}' connected to {self.redis_url}")
            except RedisConnectionError as e:
                logger.error(f"Redis client '{self.client_id}' failed to connect: {e}")
                raise
            except Exception as e:
                logger.error(f"Redis client '{self.client_id}' startup error: {e}")
                raise

    async def stop(self) -> None:
        """Clean shutdown of Redis connection."""
        if self._started:
            try:
                await self.client.aclose()
                self._started = False
                logger.info(f"Redis client '{self.client_id}' disconnected")
            except Exception as e:
                logger.error(
                    f"Error stopping Redis client '{self.client_id}': {e}",
                    exc_info=True,
                )

    async def _ensure_started(self) -> None:
        """Lazily (re)connect; raises the connection error if Redis is still unreachable."""
        if not self._started:
            logger.warning(f"Redis client '{self.client_id}' not started. Attempting to start.")
            await self.start()

    async def set_if_not_exists(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
    ) -> bool:
        """
        Atomic SET if NOT EXISTS operation.

        Args:
            key: Redis key
            value: Value to store
            ttl_seconds: Optional TTL in seconds

        Returns:
            True if key was set, False if key already exists
        """
        await self._ensure_started()

        try:
            result = await self.client.set(key, value, ex=ttl_seconds, nx=True)
            success = bool(result)
            logger.debug(
                f"Redis SETNX by '{self.client_id}': key='{key}' "
                f"ttl={ttl_seconds}s result={'SET' if success else 'EXISTS'}",
            )
            return success
        except RedisTimeoutError:
            logger.error(f"Timeout on Redis SETNX by '{self.client_id}' for key '{key}'")
            raise
        except Exception as e:
            logger.error(
                f"Error in Redis SETNX by '{self.client_id}' for key '{key}': {e}",
                exc_info=True,
            )
            raise

    async def get(self, key: str) -> str | None:
        """
        Get string value from Redis.

        Returns:
            String value if key exists, None otherwise
        """
        await self._ensure_started()

        try:
            value = await self.client.get(key)
            logger.debug(
                f"Redis GET by '{self.client_id}': key='{key}' "
                f"result={'HIT' if value is not None else 'MISS'}",
            )
            return str(value) if value is not None else None
        except RedisTimeoutError:
            logger.error(f"Timeout on Redis GET by '{self.client_id}' for key '{key}'")
            raise
        except Exception as e:
            logger.error(
                f"Error in Redis GET by '{self.client_id}' for key '{key}': {e}",
                exc_info=True,
            )
            raise

    async def setex(self, key: str, ttl_seconds: int, value: str) -> bool:
        """
        Set string value with TTL.

        Returns:
            True if operation succeeded
        """
        await self._ensure_started()

        try:
            result = await self.client.setex(key, ttl_seconds, value)
            success = bool(result)
            logger.debug(
                f"Redis SETEX by '{self.client_id}': key='{key}' "
                f"ttl={ttl_seconds}s result={'SUCCESS' if success else 'FAILED'}",
            )
            return success
        except RedisTimeoutError:
            logger.error(f"Timeout on Redis SETEX by '{self.client_id}' for key '{key}'")
            raise
        except Exception as e:
            logger.error(
                f"Error in Redis SETEX by '{self.client_id}' for key '{key}': {e}",
                exc_info=True,
            )
            raise

    async def delete_key(self, key: str) -> int:
        """
        Delete a key from Redis.

        Returns:
            Number of keys deleted (0 or 1)
        """
        await self._ensure_started()

        try:
            deleted_count = await self.client.delete(key)
            logger.debug(
                f"Redis DELETE by '{self.client_id}': key='{key}' deleted={deleted_count}",
            )
            return int(deleted_count)
        except Exception as e:
            logger.error(
                f"Error deleting Redis key '{key}' by '{self.client_id}': {e}",
                exc_info=True,
            )
            raise

    async def scan_pattern(self, pattern: str) -> list[str]:
        """
        Scan for keys matching a pattern.

        Args:
            pattern: Redis glob pattern (e.g., "batch:notification:*")
        """
        await self._ensure_started()

        try:
            keys: list[str] = []
            cursor = 0
            while True:
                cursor, batch_keys = await self.client.scan(cursor=cursor, match=pattern, count=100)
                keys.extend(batch_keys)
                if cursor == 0:
                    break

            logger.debug(
                f"Redis SCAN by '{self.client_id}': pattern='{pattern}' found={len(keys)} keys",
            )
            return keys
        except RedisTimeoutError:
            logger.error(
                f"Timeout on Redis SCAN by '{self.client_id}' for pattern '{pattern}'",
            )
            raise
        except Exception as e:
            logger.error(
                f"Error in Redis SCAN by '{self.client_id}' for pattern '{pattern}': {e}",
                exc_info=True,
            )
            raise

    async def ping(self) -> bool:
        """
        Health check method to verify Redis connectivity.

        Returns:
            True if Redis connection is healthy
        """
        try:
            await self._ensure_started()
            result = await self.client.ping()
            is_healthy = bool(result)
            logger.debug(f"Redis PING by '{self.client_id}': result={is_healthy}")
            return is_healthy
        except Exception as e:
            logger.error(
                f"Error in Redis PING by '{self.client_id}': {e}",
                exc_info=True,
            )
            return False

    async def register_script(self, script_body: str) -> str:
        """
        Load a Lua script into Redis and return its SHA1 hash.

        Args:
            script_body: The Lua script as a string

        Returns:
            The SHA1 hash of the script for use with EVALSHA
        """
        await self._ensure_started()

        try:
            sha = await self.client.script_load(script_body)
            logger.debug(f"Lua script registered by '{self.client_id}' with SHA: {sha}")
            return str(sha)
        except Exception as e:
            logger.error(
                f"Error registering Lua script by '{self.client_id}': {e}",
                exc_info=True,
            )
            raise

    async def execute_script(self, sha: str, keys: list[str], args: list[Any]) -> Any:
        """
        Execute a pre-loaded Lua script by its SHA hash.

        Args:
            sha: The SHA1 hash of the script
            keys: Key names used by the script
            args: Argument values used by the script

        Returns:
            The result of the script execution
        """
        await self._ensure_started()

        try:
            result = await self.client.evalsha(sha, len(keys), *keys, *args)
            logger.debug(
                f"Executed Lua script by '{self.client_id}' with SHA: {sha}, keys: {keys}"
            )
            return result
        except Exception as e:
            logger.error(
                f"Error executing Lua script by '{self.client_id}' with SHA: {sha}: {e}",
                exc_info=True,
            )
            raise
