"""Admin CLI for inspecting and steering in-flight batches."""

from __future__ import annotations

import asyncio
import importlib
import inspect
import json
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import typer

from batch_coordinator.config import settings
from batch_coordinator.coordinator import BatchCoordinator
from batch_coordinator.di import create_coordinator_container
from batch_coordinator.error_handling import BatchCoordinatorError, BatchNotFoundError
from batch_coordinator.implementations.logging_dispatcher import LoggingNotificationDispatcher
from batch_coordinator.logging_utils import configure_service_logging
from batch_coordinator.models import BatchStatus
from batch_coordinator.protocols import NotificationDispatcherProtocol

app = typer.Typer(help="Batch completion coordinator admin CLI")

T = TypeVar("T")


@app.callback()
def main() -> None:
    """Configure logging before any command runs; logs go to stderr, results to stdout."""
    configure_service_logging(
        "batch-coordinator-cli",
        environment=settings.ENVIRONMENT.value,
        log_level=settings.LOG_LEVEL,
        stream=sys.stderr,
    )


def load_dispatcher(reference: str) -> NotificationDispatcherProtocol:
    """Resolve a `module:attr` reference; classes are instantiated without arguments."""
    module_name, _, attr = reference.partition(":")
    if not module_name or not attr:
        typer.secho(
            f"Dispatcher must be given as module:attr, got {reference!r}",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=2)

    try:
        target = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        typer.secho(f"Cannot load dispatcher {reference}: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from e

    return target() if inspect.isclass(target) else target


@asynccontextmanager
async def _open_coordinator(
    dispatcher: NotificationDispatcherProtocol,
) -> AsyncIterator[BatchCoordinator]:
    container = create_coordinator_container(dispatcher)
    try:
        yield await container.get(BatchCoordinator)
    finally:
        await container.close()


def _run(
    action: Callable[[BatchCoordinator], Awaitable[T]],
    dispatcher: NotificationDispatcherProtocol | None = None,
) -> T:
    async def runner() -> T:
        async with _open_coordinator(dispatcher or LoggingNotificationDispatcher()) as coordinator:
            return await action(coordinator)

    try:
        return asyncio.run(runner())
    except BatchNotFoundError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from e
    except BatchCoordinatorError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=3) from e


def _status_json(status: BatchStatus) -> dict[str, Any]:
    data = status.model_dump(mode="json")
    data["progress_percent"] = status.progress_percent
    return data


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2))


@app.command("status")
def status_command(batch_id: str = typer.Argument(..., help="Batch ID")) -> None:
    """Show progress for one batch."""
    status = _run(lambda coordinator: coordinator.get_status(batch_id))
    if status is None:
        typer.secho(f"Batch {batch_id} not found", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    _echo_json(_status_json(status))


@app.command("list")
def list_command() -> None:
    """List all active batches."""
    statuses = _run(lambda coordinator: coordinator.list_active())
    _echo_json([_status_json(status) for status in statuses])


@app.command("cancel")
def cancel_command(batch_id: str = typer.Argument(..., help="Batch ID")) -> None:
    """Cancel a batch; remaining completions are counted but no notifications are sent."""
    cancelled = _run(lambda coordinator: coordinator.cancel(batch_id))
    if not cancelled:
        typer.secho(f"Batch {batch_id} not found", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    _echo_json({"batch_id": batch_id, "cancelled": True})


def _resolve_trigger_dispatcher(
    reference: str | None, log_only: bool
) -> NotificationDispatcherProtocol:
    """Pick the dispatcher for force-trigger; refuses to fall back to logging silently."""
    if log_only:
        if reference:
            typer.secho(
                "--dispatcher and --log-only are mutually exclusive", fg=typer.colors.RED, err=True
            )
            raise typer.Exit(code=2)
        return LoggingNotificationDispatcher()

    reference = reference or settings.NOTIFICATION_DISPATCHER
    if not reference:
        typer.secho(
            "No notification dispatcher configured. Pass --dispatcher module:attr, set "
            "BATCH_COORDINATOR_NOTIFICATION_DISPATCHER, or use --log-only to discard "
            "the notifications.",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=2)
    return load_dispatcher(reference)


@app.command("force-trigger")
def force_trigger_command(
    batch_id: str = typer.Argument(..., help="Batch ID"),
    dispatcher: str | None = typer.Option(
        None,
        "--dispatcher",
        help="Notification dispatcher as module:attr "
        "(defaults to BATCH_COORDINATOR_NOTIFICATION_DISPATCHER)",
    ),
    log_only: bool = typer.Option(
        False,
        "--log-only",
        help="Log the notifications instead of sending them; the batch is still deleted",
    ),
) -> None:
    """Run the completion trigger now with the results recorded so far."""
    summary = _run(
        lambda coordinator: coordinator.force_trigger(batch_id),
        dispatcher=_resolve_trigger_dispatcher(dispatcher, log_only),
    )
    _echo_json(summary.model_dump(mode="json"))


if __name__ == "__main__":
    app()
