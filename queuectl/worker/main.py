"""
Worker for executing jobs.

A worker repeatedly picks the oldest claimable job, claims it, runs its
command and reports the outcome back to the queue, idling for a fixed
poll interval whenever there is nothing to do.
"""

import asyncio
import logging
import time

from queuectl.config import get_settings
from queuectl.constants import (
    COMMAND_TIMEOUT_SECONDS,
    CONFIG_BACKOFF_BASE,
    DEFAULT_BACKOFF_BASE,
    SPAN_EXECUTE_JOB,
    JobState,
)
from queuectl.core.backoff import calculate_delay, format_delay, next_retry_at
from queuectl.core.queue import JobQueue
from queuectl.errors import ExecutionError, StorageError
from queuectl.observability.logging import bind_context, clear_context
from queuectl.observability.metrics import get_metrics
from queuectl.observability.tracing import get_tracer
from queuectl.types.job import JobRecord
from queuectl.worker.executor import run_command

logger = logging.getLogger(__name__)


class Worker:
    """
    Sequential job worker bound to one queue.

    Features:
    - Claims through the queue's atomic conditional update
    - One job at a time, bounded by a fixed command timeout
    - Exponential backoff on failure, DLQ once attempts are exhausted
    - Cooperative shutdown: an in-flight command is always allowed to finish
    """

    def __init__(
        self,
        queue: JobQueue,
        worker_id: str,
        poll_interval: float | None = None,
        command_timeout: float = COMMAND_TIMEOUT_SECONDS,
    ):
        """
        Initialize the worker.

        Args:
            queue: The queue to pull jobs from.
            worker_id: Identifier written to locked_by; must be unique
                across every worker sharing the store.
            poll_interval: Seconds to idle when no job is available.
            command_timeout: Seconds before a running command is killed.
        """
        settings = get_settings()

        self.queue = queue
        self.worker_id = worker_id
        self.poll_interval = poll_interval or settings.worker_poll_interval_seconds
        self.command_timeout = command_timeout

        self._running = False
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._current_job: str | None = None
        self._metrics = get_metrics()

    @property
    def is_running(self) -> bool:
        """Check if the poll loop is active."""
        return self._running

    @property
    def current_job(self) -> str | None:
        """Id of the job being executed, if any."""
        return self._current_job

    def start(self) -> None:
        """Schedule the poll loop on the running event loop and return."""
        if self._running:
            logger.warning("Worker already running", extra={"worker_id": self.worker_id})
            return

        self._running = True
        self._wakeup.clear()
        self._task = asyncio.create_task(self._run(), name=f"worker-{self.worker_id}")
        logger.info("Worker started", extra={"worker_id": self.worker_id})

    async def stop(self) -> None:
        """
        Stop the worker gracefully.

        Wakes an idle worker immediately; a worker executing a job
        finishes the command and its report first.
        """
        self._running = False
        self._wakeup.set()

        if self._task is None:
            return

        if self._current_job is not None:
            logger.info(
                "Waiting for current job to complete",
                extra={"worker_id": self.worker_id, "job_id": self._current_job},
            )

        await self._task
        self._task = None
        logger.info("Worker stopped", extra={"worker_id": self.worker_id})

    async def _run(self) -> None:
        """Main polling loop."""
        bind_context(worker_id=self.worker_id)

        try:
            while self._running:
                try:
                    processed = await self.process_next_job()
                except Exception as e:
                    logger.exception(
                        f"Error in worker loop: {e}",
                        extra={"worker_id": self.worker_id},
                    )
                    processed = False

                if processed or not self._running:
                    continue

                await self._idle()
        finally:
            clear_context()

    async def _idle(self) -> None:
        """Wait one poll interval, returning early if stop() is called."""
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass

    async def process_next_job(self) -> bool:
        """
        Run one poll cycle.

        Returns:
            True if a job was claimed and executed.
        """
        job = await self.queue.next_claimable()
        if job is None:
            return False

        if not await self.queue.claim(job.id, self.worker_id):
            return False

        self._current_job = job.id
        try:
            await self._execute_job(job)
        finally:
            self._current_job = None
        return True

    async def _execute_job(self, job: JobRecord) -> None:
        """
        Execute a claimed job and report the outcome.

        Args:
            job: The job as read before claiming.
        """
        logger.info(
            "Processing job",
            extra={"worker_id": self.worker_id, "job_id": job.id, "command": job.command},
        )
        start_time = time.monotonic()

        try:
            with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
                span.set_attribute("job_id", job.id)
                span.set_attribute("worker_id", self.worker_id)
                span.set_attribute("attempts", job.attempts)

                result = await run_command(job.command, timeout=self.command_timeout)
        except ExecutionError as e:
            await self._handle_failure(job, str(e), time.monotonic() - start_time)
            return

        if result.stdout.strip():
            logger.info(
                "Command output",
                extra={"job_id": job.id, "output": result.stdout.strip()},
            )

        await self.queue.complete(job.id, worker_id=self.worker_id)
        self._metrics.record_job_finished(JobState.COMPLETED.value, result.duration_seconds)
        logger.info(
            "Job completed successfully",
            extra={"job_id": job.id, "duration": f"{result.duration_seconds:.2f}s"},
        )

    async def _handle_failure(self, job: JobRecord, error: str, duration: float) -> None:
        """Schedule a retry with exponential backoff, or let the queue dead-letter it."""
        base = await self._backoff_base()
        retry_at = next_retry_at(job.attempts, base)

        logger.warning(
            "Job failed",
            extra={
                "job_id": job.id,
                "error": error,
                "retry_in": format_delay(calculate_delay(job.attempts, base)),
            },
        )

        updated = await self.queue.fail(job.id, error, retry_at, worker_id=self.worker_id)

        outcome = JobState.FAILED_RETRY.value
        if updated is not None and updated.state == JobState.DEAD:
            outcome = JobState.DEAD.value
        self._metrics.record_job_finished(outcome, duration)

    async def _backoff_base(self) -> int:
        # The failure must still be reported when the config read fails
        try:
            value = await self.queue.get_config(CONFIG_BACKOFF_BASE)
        except StorageError as e:
            logger.warning(
                "Could not read backoff base, using default",
                extra={"error": str(e), "default": DEFAULT_BACKOFF_BASE},
            )
            return DEFAULT_BACKOFF_BASE
        try:
            base = int(value) if value is not None else DEFAULT_BACKOFF_BASE
        except ValueError:
            base = DEFAULT_BACKOFF_BASE
        return base if base >= 1 else DEFAULT_BACKOFF_BASE
