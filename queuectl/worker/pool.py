"""
Worker pool supervising a fixed set of workers for the process lifetime.
"""

import asyncio
import logging
import os
import signal

from queuectl.constants import COMMAND_TIMEOUT_SECONDS
from queuectl.core.queue import JobQueue
from queuectl.worker.main import Worker

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class WorkerPool:
    """
    Starts N workers and joins them on shutdown.

    Worker ids embed the host name and process id so that pools in
    different processes sharing one store never reuse a lock owner name.
    """

    def __init__(
        self,
        queue: JobQueue,
        poll_interval: float | None = None,
        command_timeout: float | None = None,
        install_signal_handlers: bool = True,
    ):
        """
        Initialize the pool.

        Args:
            queue: Queue handed to every worker.
            poll_interval: Idle interval for workers; settings default if None.
            command_timeout: Per-command timeout; the fixed default if None.
            install_signal_handlers: Stop the pool on SIGINT/SIGTERM.
        """
        self.queue = queue
        self.poll_interval = poll_interval
        self.command_timeout = command_timeout or COMMAND_TIMEOUT_SECONDS
        self.install_signal_handlers = install_signal_handlers

        self._workers: list[Worker] = []
        self._running = False
        self._stopped = asyncio.Event()
        self._stop_task: asyncio.Task | None = None
        self._signals_installed: list[signal.Signals] = []

    @property
    def is_running(self) -> bool:
        """Check if the pool has been started and not stopped."""
        return self._running

    @property
    def active_count(self) -> int:
        """Number of workers currently running."""
        return sum(1 for worker in self._workers if worker.is_running)

    @property
    def workers(self) -> tuple[Worker, ...]:
        """Workers started by this pool."""
        return tuple(self._workers)

    def _worker_id(self, index: int) -> str:
        return f"{os.uname().nodename}-{os.getpid()}-{index}"

    def start(self, count: int = 1) -> None:
        """
        Spawn ``count`` workers and return.

        Args:
            count: Number of workers to start.
        """
        if self._running:
            logger.warning("Workers are already running", extra={"active": self.active_count})
            return

        self._running = True
        self._stopped.clear()
        logger.info(f"Starting {count} worker(s)")

        for index in range(1, count + 1):
            worker = Worker(
                self.queue,
                worker_id=self._worker_id(index),
                poll_interval=self.poll_interval,
                command_timeout=self.command_timeout,
            )
            worker.start()
            self._workers.append(worker)

        if self.install_signal_handlers:
            self._setup_signal_handlers()

        logger.info(f"{count} worker(s) started")

    async def stop(self) -> None:
        """
        Stop all workers and wait until every one has drained.
        """
        if not self._running:
            logger.warning("No workers are running")
            return

        logger.info("Stopping workers gracefully")
        self._running = False
        self._remove_signal_handlers()

        await asyncio.gather(*(worker.stop() for worker in self._workers))

        self._workers = []
        self._stopped.set()
        logger.info("All workers stopped")

    async def wait(self) -> None:
        """Block until the pool has been stopped."""
        await self._stopped.wait()

    def _setup_signal_handlers(self) -> None:
        """Stop the pool when the process receives a shutdown signal."""
        loop = asyncio.get_running_loop()

        def _handle(sig: signal.Signals) -> None:
            logger.info(f"Received {sig.name}, shutting down gracefully")
            if self._stop_task is None or self._stop_task.done():
                self._stop_task = asyncio.create_task(self.stop())

        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, _handle, sig)
            except NotImplementedError:
                logger.warning(f"Signal handlers not supported for {sig.name}")
                continue
            self._signals_installed.append(sig)

    def _remove_signal_handlers(self) -> None:
        if not self._signals_installed:
            return
        loop = asyncio.get_running_loop()
        for sig in self._signals_installed:
            loop.remove_signal_handler(sig)
        self._signals_installed = []
