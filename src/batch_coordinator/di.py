"""Dependency injection configuration for the batch coordinator using Dishka."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Any

from dishka import AsyncContainer, Provider, Scope, make_async_container, provide
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from batch_coordinator.config import Settings
from batch_coordinator.config import settings as app_settings
from batch_coordinator.coordinator import BatchCoordinator
from batch_coordinator.implementations.completion_trigger import CompletionTrigger
from batch_coordinator.implementations.distributed_lock import DistributedLock, RedisLockBackend
from batch_coordinator.implementations.local_fallback_store import LocalFallbackStore
from batch_coordinator.implementations.logging_audit_sink import LoggingAuditSink
from batch_coordinator.implementations.redis_script_manager import BatchKeyManager
from batch_coordinator.implementations.redis_session_store import RedisSessionStore
from batch_coordinator.implementations.resilient_session_store import ResilientSessionStore
from batch_coordinator.logging_utils import create_service_logger
from batch_coordinator.protocols import AuditSinkProtocol, NotificationDispatcherProtocol
from batch_coordinator.redis_client import RedisClient

logger = create_service_logger("batch_coordinator.di")


@dataclass
class SharedStoreHandle:
    """The shared-store client, or None when no shared store is configured."""

    redis_client: RedisClient | None


class CoordinatorProvider(Provider):
    """
    Provider for the coordinator and its infrastructure.

    The host supplies the notification dispatcher and, optionally, an audit
    sink; everything else is built from settings.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcherProtocol,
        audit_sink: AuditSinkProtocol | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__()
        self._dispatcher = dispatcher
        self._audit_sink = audit_sink or LoggingAuditSink()
        self._settings = settings or app_settings

    @provide(scope=Scope.APP)
    def provide_settings(self) -> Settings:
        return self._settings

    @provide(scope=Scope.APP)
    def provide_metrics(self, settings: Settings) -> dict[str, Any]:
        """Provide shared Prometheus metrics; empty when metrics are disabled."""
        if not settings.ENABLE_METRICS:
            return {}

        from batch_coordinator.metrics import get_metrics

        return get_metrics()

    @provide(scope=Scope.APP)
    def provide_dispatcher(self) -> NotificationDispatcherProtocol:
        return self._dispatcher

    @provide(scope=Scope.APP)
    def provide_audit_sink(self) -> AuditSinkProtocol:
        return self._audit_sink

    @provide(scope=Scope.APP)
    def provide_key_manager(self, settings: Settings) -> BatchKeyManager:
        return BatchKeyManager(
            key_prefix=settings.BATCH_KEY_PREFIX, lock_suffix=settings.LOCK_SUFFIX
        )

    @provide(scope=Scope.APP)
    async def provide_shared_store(
        self, settings: Settings
    ) -> AsyncGenerator[SharedStoreHandle, None]:
        """Provide the Redis client with cleanup; an unreachable Redis degrades, not fails."""
        redis_url = settings.redis_connection_url
        if redis_url is None:
            yield SharedStoreHandle(redis_client=None)
            return

        redis_client = RedisClient(
            client_id=f"{settings.SERVICE_NAME}-redis",
            redis_url=redis_url,
            socket_timeout=settings.STORE_OPERATION_TIMEOUT_SECONDS,
        )
        try:
            await redis_client.start()
        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            logger.warning(f"Redis unreachable at startup, will retry on use: {e}")

        try:
            yield SharedStoreHandle(redis_client=redis_client)
        finally:
            await redis_client.stop()

    @provide(scope=Scope.APP)
    async def provide_fallback_store(
        self, settings: Settings
    ) -> AsyncGenerator[LocalFallbackStore, None]:
        """Provide the local fallback store with its sweeper running."""
        fallback = LocalFallbackStore(
            max_age_seconds=settings.FALLBACK_MAX_AGE_SECONDS,
            sweep_interval_seconds=settings.FALLBACK_SWEEP_INTERVAL_SECONDS,
        )
        fallback.start_sweeper()
        try:
            yield fallback
        finally:
            await fallback.stop_sweeper()

    @provide(scope=Scope.APP)
    def provide_session_store(
        self,
        settings: Settings,
        shared: SharedStoreHandle,
        fallback: LocalFallbackStore,
        key_manager: BatchKeyManager,
        metrics: dict[str, Any],
    ) -> ResilientSessionStore:
        primary = None
        if shared.redis_client is not None:
            primary = RedisSessionStore(
                shared.redis_client,
                key_manager,
                ttl_seconds=settings.BATCH_TTL_SECONDS,
                operation_timeout=settings.STORE_OPERATION_TIMEOUT_SECONDS,
            )
        return ResilientSessionStore(fallback=fallback, primary=primary, metrics=metrics)

    @provide(scope=Scope.APP)
    def provide_lock(
        self,
        settings: Settings,
        shared: SharedStoreHandle,
        fallback: LocalFallbackStore,
        key_manager: BatchKeyManager,
        metrics: dict[str, Any],
    ) -> DistributedLock:
        primary = None
        if shared.redis_client is not None:
            primary = RedisLockBackend(
                shared.redis_client,
                operation_timeout=settings.STORE_OPERATION_TIMEOUT_SECONDS,
            )
        return DistributedLock(
            key_manager,
            fallback_backend=fallback,
            primary_backend=primary,
            ttl_seconds=settings.LOCK_TTL_SECONDS,
            max_attempts=settings.LOCK_MAX_ATTEMPTS,
            retry_base_ms=settings.LOCK_RETRY_BASE_MS,
            retry_jitter_ms=settings.LOCK_RETRY_JITTER_MS,
            metrics=metrics,
        )

    @provide(scope=Scope.APP)
    def provide_trigger(
        self,
        dispatcher: NotificationDispatcherProtocol,
        audit_sink: AuditSinkProtocol,
        metrics: dict[str, Any],
    ) -> CompletionTrigger:
        return CompletionTrigger(dispatcher, audit_sink, metrics=metrics)

    @provide(scope=Scope.APP)
    def provide_coordinator(
        self,
        store: ResilientSessionStore,
        lock: DistributedLock,
        trigger: CompletionTrigger,
        metrics: dict[str, Any],
    ) -> BatchCoordinator:
        return BatchCoordinator(store, lock, trigger, metrics=metrics)


def create_coordinator_container(
    dispatcher: NotificationDispatcherProtocol,
    audit_sink: AuditSinkProtocol | None = None,
    settings: Settings | None = None,
) -> AsyncContainer:
    """Build an APP-scoped container; close it with `await container.close()`."""
    return make_async_container(CoordinatorProvider(dispatcher, audit_sink, settings))
