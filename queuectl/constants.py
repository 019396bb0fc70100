"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobState(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - PENDING -> PROCESSING (claimed by a worker)
    - PROCESSING -> COMPLETED (command exited 0)
    - PROCESSING -> PENDING (failed, retry scheduled via next_retry_at)
    - PROCESSING -> DEAD (failed, attempts exhausted)
    - DEAD -> PENDING (manual DLQ retry)
    - PROCESSING -> PENDING (stale lock recovered)

    FAILED_RETRY names the retry-scheduled outcome in logs and metrics.
    It is never written to the store; such jobs are stored as PENDING.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED_RETRY = "failed_retry"
    DEAD = "dead"


PERSISTED_STATES: tuple[JobState, ...] = (
    JobState.PENDING,
    JobState.PROCESSING,
    JobState.COMPLETED,
    JobState.DEAD,
)

TERMINAL_STATES: frozenset[JobState] = frozenset({JobState.COMPLETED, JobState.DEAD})

# Config keys recognized at the CLI boundary
CONFIG_MAX_RETRIES = "max-retries"
CONFIG_BACKOFF_BASE = "backoff-base"
RECOGNIZED_CONFIG_KEYS: tuple[str, ...] = (CONFIG_MAX_RETRIES, CONFIG_BACKOFF_BASE)

# Default values
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 2
COMMAND_TIMEOUT_SECONDS = 300.0
# Upper bound on a scheduled retry; larger delays would overflow datetime
MAX_RETRY_DELAY_SECONDS = 365 * 24 * 3600
MIN_WORKERS = 1
MAX_WORKERS = 10

# Metrics names
METRIC_QUEUE_DEPTH = "queuectl_queue_depth"
METRIC_JOBS_SUBMITTED = "queuectl_jobs_submitted_total"
METRIC_JOBS_FINISHED = "queuectl_jobs_finished_total"
METRIC_JOB_DURATION = "queuectl_job_duration_seconds"
METRIC_CLAIMS = "queuectl_claims_total"
METRIC_LOCKS_RECOVERED = "queuectl_stale_locks_recovered_total"

# Trace span names
SPAN_ENQUEUE_JOB = "enqueue_job"
SPAN_CLAIM_JOB = "claim_job"
SPAN_EXECUTE_JOB = "execute_job"
