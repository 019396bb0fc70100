"""
Command-line interface.
"""

from queuectl.cli.context import QueueContext, stop_running_workers
from queuectl.cli.main import app, run

__all__ = ["app", "run", "QueueContext", "stop_running_workers"]
