"""
Unit tests for the stale lock reaper.
"""

import asyncio
from datetime import timedelta

from queuectl.constants import JobState
from queuectl.core.queue import JobQueue
from queuectl.reaper.main import Reaper
from queuectl.utils import utcnow


class TestReaper:
    """Tests for Reaper."""

    async def test_defaults_from_settings(self, queue: JobQueue):
        reaper = Reaper(queue)

        assert reaper.interval == 60
        assert reaper.stale_after == timedelta(seconds=900)

    async def test_run_once_recovers_stale_jobs(self, queue: JobQueue):
        job = await queue.enqueue({"command": "ls"})
        await queue.claim(job.id, "vanished", now=utcnow() - timedelta(hours=1))

        count = await Reaper(queue).run_once()

        assert count == 1
        recovered = await queue.get_job(job.id)
        assert recovered.state == JobState.PENDING
        assert recovered.locked_by is None

    async def test_run_once_leaves_live_jobs(self, queue: JobQueue):
        job = await queue.enqueue({"command": "ls"})
        await queue.claim(job.id, "alive")

        assert await Reaper(queue).run_once() == 0
        assert (await queue.get_job(job.id)).locked_by == "alive"

    async def test_loop_runs_until_stopped(self, queue: JobQueue):
        """Test the loop recovers on its first pass and stops promptly."""
        job = await queue.enqueue({"command": "ls"})
        await queue.claim(job.id, "vanished", now=utcnow() - timedelta(hours=1))
        reaper = Reaper(queue, interval_seconds=30)

        task = asyncio.create_task(reaper.start())
        await asyncio.sleep(0.2)
        await reaper.stop()
        await asyncio.wait_for(task, timeout=2)

        assert (await queue.get_job(job.id)).state == JobState.PENDING
