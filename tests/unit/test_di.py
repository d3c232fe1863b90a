"""Tests for the Dishka container wiring."""

from __future__ import annotations

from typing import Any

import pytest

from batch_coordinator.config import Settings
from batch_coordinator.coordinator import BatchCoordinator
from batch_coordinator.di import SharedStoreHandle, create_coordinator_container
from batch_coordinator.implementations.local_fallback_store import LocalFallbackStore
from batch_coordinator.implementations.resilient_session_store import ResilientSessionStore
from batch_coordinator.models import JobResult
from batch_coordinator.status_enums import RecordOutcome
from tests.coordinator_test_utils import RecordingAuditSink, RecordingDispatcher


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "REDIS_URL": None,
        "REDIS_HOST": None,
        "ENABLE_METRICS": False,
        "LOCK_RETRY_BASE_MS": 1,
        "LOCK_RETRY_JITTER_MS": 1,
        "STORE_OPERATION_TIMEOUT_SECONDS": 1.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestCoordinatorProvider:
    @pytest.mark.asyncio
    async def test_container_without_shared_store(self) -> None:
        dispatcher = RecordingDispatcher()
        audit_sink = RecordingAuditSink()
        container = create_coordinator_container(dispatcher, audit_sink, make_settings())
        try:
            coordinator = await container.get(BatchCoordinator)
            shared = await container.get(SharedStoreHandle)
            store = await container.get(ResilientSessionStore)

            await coordinator.register("b1", 1)
            outcome = await coordinator.record_completion(
                "b1", JobResult(success=True, group_key="A")
            )
        finally:
            await container.close()

        assert shared.redis_client is None
        assert not store.has_shared_store
        assert outcome == RecordOutcome.COMPLETED
        assert len(audit_sink.summaries) == 1
        assert dispatcher.calls[0][1] == "A"

    @pytest.mark.asyncio
    async def test_app_scope_shares_instances(self) -> None:
        container = create_coordinator_container(RecordingDispatcher(), settings=make_settings())
        try:
            first = await container.get(BatchCoordinator)
            second = await container.get(BatchCoordinator)
            fallback = await container.get(LocalFallbackStore)
            store = await container.get(ResilientSessionStore)
        finally:
            await container.close()

        assert first is second
        assert store.fallback is fallback

    @pytest.mark.asyncio
    async def test_metrics_disabled_yields_empty_mapping(self) -> None:
        container = create_coordinator_container(RecordingDispatcher(), settings=make_settings())
        try:
            metrics = await container.get(dict[str, Any])
        finally:
            await container.close()

        assert metrics == {}

    @pytest.mark.asyncio
    async def test_metrics_enabled(self) -> None:
        container = create_coordinator_container(
            RecordingDispatcher(), settings=make_settings(ENABLE_METRICS=True)
        )
        try:
            metrics = await container.get(dict[str, Any])
        finally:
            await container.close()

        assert "job_completions" in metrics
        assert "batch_processing_duration" in metrics
