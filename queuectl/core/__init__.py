"""
Job lifecycle engine.
Contains the backoff policy and the job queue state machine.
"""

from queuectl.core.backoff import calculate_delay, format_delay, next_retry_at
from queuectl.core.queue import JobQueue

__all__ = [
    "JobQueue",
    "calculate_delay",
    "next_retry_at",
    "format_delay",
]
