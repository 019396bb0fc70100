"""queuectl CLI - Main Entry Point"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer

from queuectl.cli.context import QueueContext, stop_running_workers
from queuectl.cli.formatting import (
    console,
    create_dlq_table,
    create_jobs_table,
    create_status_tables,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from queuectl.config import get_settings
from queuectl.constants import PERSISTED_STATES
from queuectl.db import close_db, init_db
from queuectl.errors import QueueError
from queuectl.observability.logging import setup_logging
from queuectl.observability.metrics import setup_metrics
from queuectl.observability.tracing import setup_tracing

T = TypeVar("T")

app = typer.Typer(
    name="queuectl",
    help="Background job queue with retries and a dead letter queue",
    no_args_is_help=True,
)
worker_app = typer.Typer(name="worker", help="Worker management commands", no_args_is_help=True)
dlq_app = typer.Typer(name="dlq", help="Dead Letter Queue management", no_args_is_help=True)
config_app = typer.Typer(name="config", help="Configuration management", no_args_is_help=True)

app.add_typer(worker_app, name="worker")
app.add_typer(dlq_app, name="dlq")
app.add_typer(config_app, name="config")


def _run(operation: Callable[[QueueContext], Awaitable[T]]) -> T:
    """Run one operation against a fresh database connection and context."""

    async def _main() -> T:
        await init_db()
        try:
            return await operation(QueueContext())
        finally:
            await close_db()

    try:
        return asyncio.run(_main())
    except QueueError as e:
        print_error(str(e))
        raise typer.Exit(1) from None


@app.callback()
def main(
    log_level: str | None = typer.Option(None, "--log-level", help="Override QUEUECTL_LOG_LEVEL"),
):
    """Configure logging before any command runs"""
    setup_logging(log_level=log_level)


@app.command("enqueue")
def enqueue(
    job_json: str = typer.Argument(..., help='Job as JSON, e.g. \'{"command": "echo hi"}\''),
):
    """Add a new job to the queue"""
    job = _run(lambda ctx: ctx.enqueue(job_json))
    print_success(f"Job enqueued: {job.id}")
    console.print_json(json.dumps(job.to_row()))


@worker_app.command("start")
def worker_start(
    count: int = typer.Option(1, "--count", "-c", help="Number of workers to start"),
):
    """Start workers in the foreground until SIGINT/SIGTERM or `worker stop`"""
    settings = get_settings()
    setup_tracing()
    setup_metrics(settings.prometheus_port if settings.metrics_enabled else None)

    print_info(f"Starting {count} worker(s). Press Ctrl+C to stop")
    _run(lambda ctx: ctx.run_workers(count))
    print_success("All workers stopped")


@worker_app.command("stop")
def worker_stop():
    """Gracefully stop running workers (in-flight jobs finish first)"""
    pid = stop_running_workers()
    if pid is None:
        print_warning("No running workers found")
        return
    print_success(f"Sent stop signal to worker process {pid}")


@app.command("status")
def status():
    """Show queue status and statistics"""
    result = _run(lambda ctx: ctx.status())
    for table in create_status_tables(result):
        console.print(table)


@app.command("list")
def list_jobs(
    state: str | None = typer.Option(
        None,
        "--state",
        "-s",
        help=f"Filter by state ({', '.join(s.value for s in PERSISTED_STATES)})",
    ),
):
    """List jobs"""
    if state is not None and state not in {s.value for s in PERSISTED_STATES}:
        print_error(f"Unknown state: {state}")
        raise typer.Exit(1)

    jobs = _run(lambda ctx: ctx.list_jobs(state))
    if not jobs:
        print_info("No jobs found")
        return
    console.print(create_jobs_table(jobs))


@dlq_app.command("list")
def dlq_list():
    """List jobs in the Dead Letter Queue"""
    jobs = _run(lambda ctx: ctx.dlq_list())
    if not jobs:
        print_info("Dead Letter Queue is empty")
        return
    console.print(create_dlq_table(jobs))


@dlq_app.command("retry")
def dlq_retry(job_id: str = typer.Argument(..., help="Job ID to retry")):
    """Retry a job from the Dead Letter Queue"""
    _run(lambda ctx: ctx.dlq_retry(job_id))
    print_success(f"Job {job_id} moved from DLQ to pending queue")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="max-retries or backoff-base"),
    value: str = typer.Argument(..., help="Positive integer"),
):
    """Set a configuration value"""
    number = _run(lambda ctx: ctx.set_config(key, value))
    print_success(f"Configuration updated: {key} = {number}")


@config_app.command("get")
def config_get(key: str | None = typer.Argument(None, help="Key to show, all if omitted")):
    """Get configuration value(s)"""
    entries = _run(lambda ctx: ctx.get_config(key))
    if not entries:
        print_warning(f"Config key '{key}' not found")
        return
    for entry_key, entry_value in entries.items():
        console.print(f"[cyan]{entry_key}[/cyan] = [yellow]{entry_value}[/yellow]")


@app.command("recover")
def recover():
    """Return jobs with stale locks to the pending queue"""
    count = _run(lambda ctx: ctx.reaper.run_once())
    print_success(f"Recovered {count} job(s)")


def run() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    run()
