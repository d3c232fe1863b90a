"""
Unit tests for RedisClient core functionality.

Tests connection lifecycle, the operations used by the session store and the
lock, and error propagation, with the redis.asyncio connection mocked.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from batch_coordinator.redis_client import RedisClient


@pytest.fixture
def redis_client() -> RedisClient:
    return RedisClient(client_id="test-client", redis_url="redis://localhost:6379")


@pytest.fixture
def mock_redis_connection() -> AsyncMock:
    """Provide mock Redis connection for boundary testing."""
    mock = AsyncMock()
    mock.ping = AsyncMock(return_value=True)
    mock.aclose = AsyncMock()
    return mock


@pytest.fixture
def started_redis_client(redis_client: RedisClient, mock_redis_connection: AsyncMock) -> RedisClient:
    redis_client.client = mock_redis_connection
    redis_client._started = True
    return redis_client


class TestRedisClientLifecycle:
    @pytest.mark.asyncio
    async def test_start_success(
        self, redis_client: RedisClient, mock_redis_connection: AsyncMock
    ) -> None:
        redis_client.client = mock_redis_connection

        await redis_client.start()

        assert redis_client.is_started
        mock_redis_connection.ping.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_connection_failure_propagates(
        self, redis_client: RedisClient, mock_redis_connection: AsyncMock
    ) -> None:
        mock_redis_connection.ping.side_effect = RedisConnectionError("refused")
        redis_client.client = mock_redis_connection

        with pytest.raises(RedisConnectionError):
            await redis_client.start()

        assert not redis_client.is_started

    @pytest.mark.asyncio
    async def test_stop_closes_connection(
        self, started_redis_client: RedisClient, mock_redis_connection: AsyncMock
    ) -> None:
        await started_redis_client.stop()

        mock_redis_connection.aclose.assert_awaited_once()
        assert not started_redis_client.is_started

    @pytest.mark.asyncio
    async def test_operation_starts_lazily(
        self, redis_client: RedisClient, mock_redis_connection: AsyncMock
    ) -> None:
        mock_redis_connection.get.return_value = None
        redis_client.client = mock_redis_connection

        assert await redis_client.get("k") is None
        assert redis_client.is_started


class TestRedisClientOperations:
    @pytest.mark.asyncio
    async def test_set_if_not_exists_uses_nx_and_expiry(
        self, started_redis_client: RedisClient, mock_redis_connection: AsyncMock
    ) -> None:
        mock_redis_connection.set.return_value = True

        assert await started_redis_client.set_if_not_exists("k", "v", ttl_seconds=5) is True
        mock_redis_connection.set.assert_awaited_once_with("k", "v", ex=5, nx=True)

    @pytest.mark.asyncio
    async def test_set_if_not_exists_existing_key(
        self, started_redis_client: RedisClient, mock_redis_connection: AsyncMock
    ) -> None:
        mock_redis_connection.set.return_value = None

        assert await started_redis_client.set_if_not_exists("k", "v") is False

    @pytest.mark.asyncio
    async def test_setex(
        self, started_redis_client: RedisClient, mock_redis_connection: AsyncMock
    ) -> None:
        mock_redis_connection.setex.return_value = True

        assert await started_redis_client.setex("k", 60, "v")
        mock_redis_connection.setex.assert_awaited_once_with("k", 60, "v")

    @pytest.mark.asyncio
    async def test_delete_key(
        self, started_redis_client: RedisClient, mock_redis_connection: AsyncMock
    ) -> None:
        mock_redis_connection.delete.return_value = 1

        assert await started_redis_client.delete_key("k") == 1

    @pytest.mark.asyncio
    async def test_scan_pattern_follows_cursor(
        self, started_redis_client: RedisClient, mock_redis_connection: AsyncMock
    ) -> None:
        mock_redis_connection.scan.side_effect = [(7, ["a", "b"]), (0, ["c"])]

        keys = await started_redis_client.scan_pattern("batch:notification:*")

        assert keys == ["a", "b", "c"]
        assert mock_redis_connection.scan.await_count == 2

    @pytest.mark.asyncio
    async def test_script_register_and_execute(
        self, started_redis_client: RedisClient, mock_redis_connection: AsyncMock
    ) -> None:
        mock_redis_connection.script_load.return_value = "abc123"
        mock_redis_connection.evalsha.return_value = 1

        sha = await started_redis_client.register_script("return 1")
        result = await started_redis_client.execute_script(sha, ["lock-key"], ["token"])

        assert sha == "abc123"
        assert result == 1
        mock_redis_connection.evalsha.assert_awaited_once_with("abc123", 1, "lock-key", "token")

    @pytest.mark.asyncio
    async def test_timeout_is_reraised(
        self, started_redis_client: RedisClient, mock_redis_connection: AsyncMock
    ) -> None:
        mock_redis_connection.get.side_effect = RedisTimeoutError("slow")

        with pytest.raises(RedisTimeoutError):
            await started_redis_client.get("k")

    @pytest.mark.asyncio
    async def test_ping_reports_unhealthy_instead_of_raising(
        self, started_redis_client: RedisClient, mock_redis_connection: AsyncMock
    ) -> None:
        mock_redis_connection.ping.side_effect = RedisConnectionError("down")

        assert await started_redis_client.ping() is False
