"""
Worker module.
Contains the worker poll loop, the worker pool and command execution.
"""

from queuectl.worker.executor import run_command
from queuectl.worker.main import Worker
from queuectl.worker.pool import WorkerPool

__all__ = ["Worker", "WorkerPool", "run_command"]
