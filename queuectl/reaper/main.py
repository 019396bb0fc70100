"""
Stale lock reaper.

A worker process that dies while executing a job leaves the row in
processing with its lock set. The reaper periodically returns such jobs
to the pending pool so they run again (at-least-once delivery).
"""

import asyncio
import logging
from datetime import timedelta

from queuectl.config import get_settings
from queuectl.core.queue import JobQueue

logger = logging.getLogger(__name__)


class Reaper:
    """
    Stale lock reaper.

    Runs periodically to:
    1. Find processing jobs locked longer than the stale threshold
    2. Return them to pending with the lock cleared

    The threshold must exceed the command timeout, otherwise a job that
    is still running could be handed to a second worker.
    """

    def __init__(
        self,
        queue: JobQueue,
        interval_seconds: float | None = None,
        stale_after_seconds: float | None = None,
    ):
        """
        Initialize the reaper.

        Args:
            queue: The queue to recover jobs in.
            interval_seconds: Seconds between reaper runs.
            stale_after_seconds: Lock age after which a job is recovered.
        """
        settings = get_settings()
        self.queue = queue
        self.interval = interval_seconds or settings.reaper_interval_seconds
        self.stale_after = timedelta(
            seconds=stale_after_seconds or settings.reaper_stale_lock_seconds
        )
        self._running = False
        self._wakeup = asyncio.Event()

    async def start(self) -> None:
        """Run the reaper loop until stop() is called."""
        logger.info(f"Reaper starting with interval {self.interval}s")
        self._running = True
        self._wakeup.clear()

        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.exception(f"Error in reaper loop: {e}")

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Reaper stopped")

    async def stop(self) -> None:
        """Stop the reaper."""
        logger.info("Reaper stopping")
        self._running = False
        self._wakeup.set()

    async def run_once(self) -> int:
        """
        Run the reaper once (for testing or cron-style execution).

        Returns:
            Number of jobs recovered.
        """
        return await self.queue.recover_stale_locks(self.stale_after)
