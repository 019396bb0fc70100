"""
Error taxonomy for the job queue.

Every error raised by the queue engine derives from QueueError so callers
at the CLI boundary can catch a single type.
"""


class QueueError(Exception):
    """Base class for all queue errors."""


class ValidationError(QueueError):
    """A submission payload was rejected; no job was created."""


class NotFoundError(QueueError):
    """An operation referenced a job id that does not exist."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidStateError(QueueError):
    """An operation is not legal for the job's current state."""


class StorageError(QueueError):
    """The durable store failed to perform an operation."""


class ExecutionError(QueueError):
    """
    The external command exited non-zero, could not be started, or
    exceeded its timeout.
    """

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.timed_out = timed_out
