"""Rich formatting helpers for CLI output"""

from rich import box
from rich.console import Console
from rich.table import Table

from queuectl.types.job import JobRecord

console = Console()
err_console = Console(stderr=True)

STATE_STYLES = {
    "pending": "blue",
    "processing": "yellow",
    "completed": "green",
    "dead": "bold red",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    err_console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def _truncate(text: str | None, width: int) -> str:
    if not text:
        return "-"
    return text if len(text) <= width else text[: width - 3] + "..."


def _timestamp(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def create_jobs_table(jobs: list[JobRecord]) -> Table:
    """Create a formatted table for a job listing"""
    table = Table(title=f"Jobs ({len(jobs)})", box=box.ROUNDED)

    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Command", style="white")
    table.add_column("State", justify="center")
    table.add_column("Attempts", justify="center")
    table.add_column("Next Retry", justify="center", style="yellow")
    table.add_column("Created At", justify="center")

    for job in jobs:
        style = STATE_STYLES.get(job.state.value, "white")
        table.add_row(
            job.id,
            _truncate(job.command, 30),
            f"[{style}]{job.state.value}[/{style}]",
            f"{job.attempts}/{job.max_retries}",
            _timestamp(job.next_retry_at),
            _timestamp(job.created_at),
        )

    return table


def create_dlq_table(jobs: list[JobRecord]) -> Table:
    """Create a formatted table for dead-lettered jobs"""
    table = Table(title=f"Dead Letter Queue ({len(jobs)})", box=box.ROUNDED)

    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Command", style="white")
    table.add_column("Attempts", justify="center")
    table.add_column("Error", style="red")
    table.add_column("Failed At", justify="center")

    for job in jobs:
        table.add_row(
            job.id,
            _truncate(job.command, 25),
            str(job.attempts),
            _truncate(job.error, 40),
            _timestamp(job.completed_at),
        )

    return table


def create_status_tables(status: dict) -> list[Table]:
    """Create the state-count and configuration tables for `status`"""
    counts = Table(title="Queue Status", box=box.ROUNDED)
    counts.add_column("State", style="cyan")
    counts.add_column("Count", justify="right")
    for state, count in status["counts"].items():
        if state == "total":
            continue
        style = STATE_STYLES.get(state, "white")
        counts.add_row(state, f"[{style}]{count}[/{style}]")
    counts.add_row("[bold]total[/bold]", f"[bold]{status['counts']['total']}[/bold]")

    config = Table(title="Configuration", box=box.ROUNDED)
    config.add_column("Key", style="cyan")
    config.add_column("Value", justify="right", style="yellow")
    for key, value in status["config"].items():
        config.add_row(key, value)

    return [counts, config]
