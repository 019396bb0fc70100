"""
Integration tests for worker functionality.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from queuectl.constants import JobState
from queuectl.core.queue import JobQueue
from queuectl.errors import StorageError
from queuectl.worker.main import Worker


class TestWorkerIntegration:
    """Integration tests for worker job processing."""

    @pytest.fixture
    def worker(self, queue: JobQueue) -> Worker:
        """Create a worker with a short poll interval."""
        return Worker(queue, worker_id="test-worker", poll_interval=0.05)

    async def test_successful_job_completes(self, queue: JobQueue, worker: Worker):
        """Test a succeeding command ends completed without counting an attempt."""
        job = await queue.enqueue({"command": "echo hi", "max_retries": 1})

        assert await worker.process_next_job() is True

        done = await queue.get_job(job.id)
        assert done.state == JobState.COMPLETED
        assert done.attempts == 0
        assert done.completed_at is not None
        assert done.locked_by is None

    async def test_no_job_available(self, worker: Worker):
        assert await worker.process_next_job() is False

    async def test_failure_schedules_backoff(self, queue: JobQueue, worker: Worker):
        """Test the first failure returns the job to pending one second out."""
        job = await queue.enqueue({"command": "exit 1", "max_retries": 2})
        before = datetime.now(timezone.utc)

        assert await worker.process_next_job() is True

        failed = await queue.get_job(job.id)
        assert failed.state == JobState.PENDING
        assert failed.attempts == 1
        assert failed.error == "Command exited with code 1"
        assert failed.next_retry_at >= before
        delay = (failed.next_retry_at - failed.updated_at).total_seconds()
        assert delay == pytest.approx(1, abs=0.1)

        # Not claimable again until the delay has passed
        assert await worker.process_next_job() is False

    async def test_retry_then_dead(self, queue: JobQueue, worker: Worker, wait_for_state):
        """Test a job failing every attempt lands in the DLQ after its retries."""
        job = await queue.enqueue({"command": "exit 1", "max_retries": 2})

        worker.start()
        try:
            dead = await wait_for_state(job.id, JobState.DEAD)
        finally:
            await worker.stop()

        assert dead.attempts == 2
        assert dead.error == "Command exited with code 1"
        assert dead.completed_at is not None
        assert [j.id for j in await queue.dlq_list()] == [job.id]

    async def test_backoff_base_from_config(self, queue: JobQueue, worker: Worker):
        """Test the configured base is applied to the attempt count."""
        await queue.set_config("backoff-base", 3)
        job = await queue.enqueue({"command": "exit 1", "max_retries": 5})
        await queue.claim(job.id, "other")
        await queue.fail(job.id, "first", None)

        assert await worker.process_next_job() is True

        failed = await queue.get_job(job.id)
        assert failed.attempts == 2
        delay = (failed.next_retry_at - failed.updated_at).total_seconds()
        assert delay == pytest.approx(3, abs=0.1)

    async def test_timeout_counts_as_failure(self, queue: JobQueue):
        worker = Worker(queue, worker_id="test-worker", poll_interval=0.05, command_timeout=0.2)
        job = await queue.enqueue({"command": "sleep 5", "max_retries": 1})

        assert await worker.process_next_job() is True

        dead = await queue.get_job(job.id)
        assert dead.state == JobState.DEAD
        assert "timed out" in dead.error

    async def test_lost_claim_skips_job(
        self,
        queue: JobQueue,
        worker: Worker,
        monkeypatch: pytest.MonkeyPatch,
    ):
        """Test a worker that loses the claim race never runs the command."""
        job = await queue.enqueue({"command": "echo hi"})
        candidate = await queue.next_claimable()
        await queue.claim(job.id, "faster-worker")
        monkeypatch.setattr(queue, "next_claimable", AsyncMock(return_value=candidate))

        assert await worker.process_next_job() is False

        stored = await queue.get_job(job.id)
        assert stored.state == JobState.PROCESSING
        assert stored.locked_by == "faster-worker"

    async def test_stop_waits_for_current_job(self, queue: JobQueue, worker: Worker):
        """Test stop lets an in-flight command finish and report."""
        job = await queue.enqueue({"command": "sleep 0.5"})

        worker.start()
        for _ in range(100):
            if worker.current_job is not None:
                break
            await asyncio.sleep(0.01)
        assert worker.current_job == job.id

        await worker.stop()

        assert worker.is_running is False
        assert (await queue.get_job(job.id)).state == JobState.COMPLETED

    async def test_stop_interrupts_idle_wait(self, queue: JobQueue):
        """Test an idle worker stops without waiting out its poll interval."""
        worker = Worker(queue, worker_id="idle-worker", poll_interval=30)
        worker.start()
        await asyncio.sleep(0.1)

        await asyncio.wait_for(worker.stop(), timeout=2)

        assert worker.is_running is False

    async def test_loop_survives_errors(
        self,
        queue: JobQueue,
        worker: Worker,
        monkeypatch: pytest.MonkeyPatch,
        wait_for_state,
    ):
        """Test an unexpected error in one cycle does not end the worker."""
        job = await queue.enqueue({"command": "echo hi"})
        real_next_claimable = queue.next_claimable
        calls = []

        async def flaky_next_claimable(now=None):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("store hiccup")
            return await real_next_claimable(now)

        monkeypatch.setattr(queue, "next_claimable", flaky_next_claimable)

        worker.start()
        try:
            await wait_for_state(job.id, JobState.COMPLETED)
        finally:
            await worker.stop()

    async def test_failure_reported_when_config_unreadable(
        self,
        queue: JobQueue,
        worker: Worker,
        monkeypatch: pytest.MonkeyPatch,
    ):
        """Test a failed job leaves processing even if backoff-base cannot be read."""
        job = await queue.enqueue({"command": "exit 1", "max_retries": 3})
        monkeypatch.setattr(
            queue,
            "get_config",
            AsyncMock(side_effect=StorageError("Store operation failed: database is locked")),
        )

        assert await worker.process_next_job() is True

        failed = await queue.get_job(job.id)
        assert failed.state == JobState.PENDING
        assert failed.attempts == 1
        assert failed.locked_by is None
        delay = (failed.next_retry_at - failed.updated_at).total_seconds()
        assert delay == pytest.approx(1, abs=0.1)
