"""
Process-lifetime context for the command-line interface.

Owns the queue and the worker pool handle so that status and shutdown
handlers receive the pool explicitly instead of reading module state.
"""

import asyncio
import logging
import os
import signal
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from queuectl.config import get_settings
from queuectl.constants import MAX_WORKERS, MIN_WORKERS, RECOGNIZED_CONFIG_KEYS
from queuectl.core.queue import JobQueue
from queuectl.errors import ValidationError
from queuectl.reaper.main import Reaper
from queuectl.types.job import JobRecord
from queuectl.worker.pool import WorkerPool

logger = logging.getLogger(__name__)


def _pid_file() -> Path:
    return Path(get_settings().worker_pid_file)


def stop_running_workers() -> int | None:
    """
    Ask the process running `worker start` to shut down.

    Sends SIGTERM to the pid recorded in the pid file; the pool drains
    its in-flight jobs before exiting.

    Returns:
        The signalled pid, or None if no worker process is running.
    """
    path = _pid_file()
    try:
        pid = int(path.read_text().strip())
    except (FileNotFoundError, ValueError):
        return None

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        logger.warning("Removing stale pid file", extra={"pid": pid, "path": str(path)})
        path.unlink(missing_ok=True)
        return None

    logger.info("Sent SIGTERM to workers", extra={"pid": pid})
    return pid


class QueueContext:
    """
    Facade consumed by the CLI.

    Enforces the CLI-boundary rules the engine itself does not: only the
    recognized config keys with positive integer values, and a worker
    count between MIN_WORKERS and MAX_WORKERS.
    """

    def __init__(
        self,
        queue: JobQueue | None = None,
        poll_interval: float | None = None,
        install_signal_handlers: bool = True,
    ):
        self.queue = queue or JobQueue()
        self.pool = WorkerPool(
            self.queue,
            poll_interval=poll_interval,
            install_signal_handlers=install_signal_handlers,
        )
        self.reaper = Reaper(self.queue)
        self._reaper_task: asyncio.Task | None = None

    async def enqueue(self, payload: Mapping[str, Any] | str) -> JobRecord:
        return await self.queue.enqueue(payload)

    async def status(self) -> dict[str, Any]:
        """Counts per state, configuration and active workers."""
        return {
            "counts": await self.queue.stats(),
            "config": await self.queue.list_config(),
            "workers": self.pool.active_count,
        }

    async def list_jobs(self, state: str | None = None) -> list[JobRecord]:
        return await self.queue.list_jobs(state)

    async def dlq_list(self) -> list[JobRecord]:
        return await self.queue.dlq_list()

    async def dlq_retry(self, job_id: str) -> JobRecord:
        return await self.queue.retry_from_dlq(job_id)

    async def get_config(self, key: str | None = None) -> dict[str, str]:
        """Get one config entry, or all of them when ``key`` is None."""
        if key is None:
            return await self.queue.list_config()
        value = await self.queue.get_config(key)
        return {key: value} if value is not None else {}

    async def set_config(self, key: str, value: str) -> int:
        """
        Validate and store a recognized config entry.

        Raises:
            ValidationError: On an unknown key or a non-positive value.
        """
        if key not in RECOGNIZED_CONFIG_KEYS:
            raise ValidationError(
                f"Invalid config key. Valid keys: {', '.join(RECOGNIZED_CONFIG_KEYS)}"
            )
        try:
            number = int(value)
        except ValueError:
            number = 0
        if number < 1:
            raise ValidationError("Config value must be a positive integer")

        await self.queue.set_config(key, number)
        return number

    async def start_workers(self, count: int) -> None:
        """
        Start the pool and the stale lock reaper.

        Raises:
            ValidationError: If count is outside the allowed range.
        """
        if not MIN_WORKERS <= count <= MAX_WORKERS:
            raise ValidationError(
                f"Worker count must be between {MIN_WORKERS} and {MAX_WORKERS}"
            )
        if self.pool.is_running:
            logger.warning("Workers are already running")
            return

        self.pool.start(count)
        self._reaper_task = asyncio.create_task(self.reaper.start(), name="reaper")

    async def stop_workers(self) -> None:
        """Drain and stop all workers, then the reaper."""
        await self.pool.stop()
        if self._reaper_task is not None:
            await self.reaper.stop()
            await self._reaper_task
            self._reaper_task = None

    async def run_workers(self, count: int) -> None:
        """Start workers and block until a shutdown signal has drained them."""
        await self.start_workers(count)
        pid_file = _pid_file()
        pid_file.write_text(str(os.getpid()))
        try:
            await self.pool.wait()
        finally:
            await self.stop_workers()
            pid_file.unlink(missing_ok=True)
