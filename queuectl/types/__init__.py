"""
Type definitions for the job queue.
"""

from queuectl.types.job import ExecutionResult, JobRecord, generate_job_id

__all__ = [
    "JobRecord",
    "ExecutionResult",
    "generate_job_id",
]
