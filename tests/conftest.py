"""Pytest configuration for the batch coordinator test suite.

Public API:
    - _clear_prometheus_registry: Fixture to clear the global Prometheus registry.
    - metrics / metrics_registry: Coordinator metrics on an isolated registry.
    - fake_redis: In-memory Redis double.
    - harness / degraded_harness: Fully wired coordinators (Redis-backed / fallback only).
    - assert_coordinator_error: Assert a BatchCoordinatorError has the expected structure.
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest
import structlog
from prometheus_client import REGISTRY, CollectorRegistry

# Route structlog through stdlib logging so pytest's handlers (and caplog) see it
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer(colors=False),
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=False,
)

from batch_coordinator.error_handling import BatchCoordinatorError  # noqa: E402
from batch_coordinator.metrics import create_metrics  # noqa: E402
from tests.coordinator_test_utils import CoordinatorHarness, build_coordinator  # noqa: E402
from tests.redis_test_utils import FakeRedisClient  # noqa: E402


@pytest.fixture(autouse=True)
def _clear_prometheus_registry() -> Generator[None, None, None]:
    """Clear the global Prometheus registry before each test.

    Prevents `ValueError: Duplicated timeseries` when the default-registry
    metrics singleton is created by more than one test in the same process.
    """
    collectors = list(REGISTRY._collector_to_names.keys())
    for collector in collectors:
        REGISTRY.unregister(collector)
    yield


@pytest.fixture
def metrics_registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(metrics_registry: CollectorRegistry) -> dict[str, Any]:
    return create_metrics(metrics_registry)


@pytest.fixture
def fake_redis() -> FakeRedisClient:
    return FakeRedisClient()


@pytest.fixture
def harness(fake_redis: FakeRedisClient, metrics: dict[str, Any]) -> CoordinatorHarness:
    """Coordinator backed by the fake Redis, with the local fallback behind it."""
    return build_coordinator(fake_redis, metrics=metrics)


@pytest.fixture
def degraded_harness(metrics: dict[str, Any]) -> CoordinatorHarness:
    """Coordinator with no shared store configured."""
    return build_coordinator(None, metrics=metrics)


def assert_coordinator_error(
    error: BatchCoordinatorError,
    expected_code: str,
    expected_operation: str | None = None,
    **expected_details: Any,
) -> None:
    """Assert a BatchCoordinatorError has the expected code, operation and details."""
    assert isinstance(error, BatchCoordinatorError)
    assert error.error_code == expected_code
    assert error.error_detail.correlation_id is not None
    assert error.service == "batch_coordinator"
    if expected_operation is not None:
        assert error.operation == expected_operation
    for key, value in expected_details.items():
        assert error.details.get(key) == value, f"details[{key!r}] != {value!r}"
