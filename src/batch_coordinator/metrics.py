"""
Prometheus metrics for the batch coordinator.

Metrics are created once per process through `get_metrics()` so that every
coordinator instance in a worker shares the same collectors. Tests build
their own set against a private registry with `create_metrics(registry)`.
"""

from __future__ import annotations

from typing import Any

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

from batch_coordinator.logging_utils import create_service_logger

logger = create_service_logger("batch_coordinator.metrics")

# Global metrics instances (created once, shared by all coordinators in the process)
_metrics: dict[str, Any] | None = None


def get_metrics() -> dict[str, Any]:
    """Singleton accessor for the process-wide metrics on the default registry."""
    global _metrics
    if _metrics is None:
        _metrics = create_metrics(REGISTRY)
    return _metrics


def create_metrics(registry: CollectorRegistry) -> dict[str, Any]:
    """Create all coordinator metrics against the given registry."""
    metrics = {
        "batches_registered": Counter(
            "batch_coordinator_batches_registered_total",
            "Batches registered with the coordinator",
            registry=registry,
        ),
        "job_completions": Counter(
            "batch_coordinator_job_completions_total",
            "Job completion reports by outcome",
            ["outcome"],
            registry=registry,
        ),
        "batches_finished": Counter(
            "batch_coordinator_batches_finished_total",
            "Batches that reached a terminal state (triggered, cancelled, forced)",
            ["result"],
            registry=registry,
        ),
        "trigger_group_failures": Counter(
            "batch_coordinator_trigger_group_failures_total",
            "Groups whose notification dispatch raised during a completion trigger",
            registry=registry,
        ),
        "lock_acquire_failures": Counter(
            "batch_coordinator_lock_acquire_failures_total",
            "Lock acquisitions that exhausted all retry attempts",
            registry=registry,
        ),
        "store_fallbacks": Counter(
            "batch_coordinator_store_fallbacks_total",
            "Store operations served by the local fallback because the shared store failed",
            ["operation"],
            registry=registry,
        ),
        "batch_processing_duration": Histogram(
            "batch_coordinator_batch_duration_seconds",
            "Batch duration from registration to completion trigger",
            buckets=[1, 5, 30, 60, 300, 600, 1800, 3600],  # 1s to 1hr
            registry=registry,
        ),
    }

    logger.debug("Batch coordinator metrics created")
    return metrics
