"""
Job queue: the state machine for a job's lifecycle.

JobQueue is the only component that mutates job rows. Each transition
is a single conditional UPDATE against the store, so concurrent workers
(in this process or others) coordinate through the database alone.
"""

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from queuectl.constants import (
    CONFIG_MAX_RETRIES,
    DEFAULT_MAX_RETRIES,
    PERSISTED_STATES,
    SPAN_CLAIM_JOB,
    SPAN_ENQUEUE_JOB,
    JobState,
)
from queuectl.db import JobRepository, get_session_context
from queuectl.db.models import Job
from queuectl.errors import InvalidStateError, NotFoundError, StorageError
from queuectl.observability.metrics import get_metrics
from queuectl.observability.tracing import get_tracer
from queuectl.types.job import JobRecord
from queuectl.utils import to_iso, utcnow

logger = logging.getLogger(__name__)


def _config_int(value: str | None, default: int) -> int:
    try:
        parsed = int(value) if value is not None else default
    except ValueError:
        logger.warning("Ignoring non-integer config value", extra={"value": value})
        return default
    return parsed


class JobQueue:
    """
    Orchestrates job state transitions against the durable store.

    States: pending -> processing -> completed | pending (retry) | dead,
    and dead -> pending through ``retry_from_dlq``.

    ``claim`` is the only mutual-exclusion primitive. ``next_claimable`` is
    advisory: callers must always claim and check the result.
    """

    def __init__(self) -> None:
        self._metrics = get_metrics()

    @asynccontextmanager
    async def _repository(self) -> AsyncIterator[JobRepository]:
        """Open a committing session and translate store failures."""
        try:
            async with get_session_context() as session:
                yield JobRepository(session)
        except SQLAlchemyError as e:
            logger.error("Store operation failed", extra={"error": str(e)})
            raise StorageError(f"Store operation failed: {e}") from e

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def enqueue(self, payload: Mapping[str, Any] | str) -> JobRecord:
        """
        Validate and persist a new pending job.

        Args:
            payload: Mapping or JSON string with ``command`` and optional
                ``id`` and ``max_retries``.

        Returns:
            The stored JobRecord.

        Raises:
            ValidationError: If the payload is invalid.
            StorageError: If the job could not be written (e.g. duplicate id).
        """
        with get_tracer().start_as_current_span(SPAN_ENQUEUE_JOB):
            default_max_retries = _config_int(
                await self.get_config(CONFIG_MAX_RETRIES), DEFAULT_MAX_RETRIES
            )
            job = JobRecord.from_payload(payload, default_max_retries=default_max_retries)
            job = job.model_copy(
                update={
                    "state": JobState.PENDING,
                    "attempts": 0,
                    "next_retry_at": None,
                    "locked_by": None,
                    "locked_at": None,
                    "completed_at": None,
                    "error": None,
                }
            )

            try:
                async with self._repository() as repo:
                    await repo.create_job(job.to_row())
            except StorageError as e:
                if isinstance(e.__cause__, IntegrityError):
                    raise StorageError(f"Job '{job.id}' already exists") from e.__cause__
                raise

        self._metrics.record_job_submitted()
        logger.info(
            "Job enqueued",
            extra={"job_id": job.id, "command": job.command, "max_retries": job.max_retries},
        )
        return job

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_job(self, job_id: str) -> JobRecord | None:
        """Get a job by ID, or None if it does not exist."""
        async with self._repository() as repo:
            row = await repo.get_job(job_id)
            return JobRecord.from_row(row.to_dict()) if row is not None else None

    async def list_jobs(self, state: JobState | str | None = None) -> list[JobRecord]:
        """List jobs, optionally filtered by state."""
        state_value = JobState(state).value if state is not None else None
        async with self._repository() as repo:
            rows = await repo.list_jobs(state_value)
            return [JobRecord.from_row(row.to_dict()) for row in rows]

    async def dlq_list(self) -> list[JobRecord]:
        """List dead-lettered jobs."""
        return await self.list_jobs(JobState.DEAD)

    async def next_claimable(self, now: datetime | None = None) -> JobRecord | None:
        """
        Get the oldest pending, unlocked job whose retry time has passed.

        Has no side effects; another worker may claim the job before the
        caller does.
        """
        now_iso = to_iso(now or utcnow())
        async with self._repository() as repo:
            row = await repo.get_next_pending(now_iso)
            return JobRecord.from_row(row.to_dict()) if row is not None else None

    async def stats(self) -> dict[str, int]:
        """Get job counts for every persisted state plus a total."""
        async with self._repository() as repo:
            raw = await repo.get_job_stats()

        counts = {state.value: raw.get(state.value, 0) for state in PERSISTED_STATES}
        counts["total"] = sum(raw.values())
        self._metrics.update_queue_depth(counts)
        return counts

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def claim(self, job_id: str, worker_id: str, now: datetime | None = None) -> bool:
        """
        Atomically take ownership of a job.

        A single conditional UPDATE sets the lock and moves the job to
        processing if it is unlocked and pending, or already locked by
        ``worker_id``. Of any number of concurrent callers with distinct
        worker ids at most one gets True.

        Args:
            job_id: The job identifier.
            worker_id: The claiming worker's identifier.
            now: Lock timestamp, defaults to the current time.

        Returns:
            True if this worker now owns the job.
        """
        now_iso = to_iso(now or utcnow())
        with get_tracer().start_as_current_span(SPAN_CLAIM_JOB) as span:
            span.set_attribute("job_id", job_id)
            span.set_attribute("worker_id", worker_id)

            async with self._repository() as repo:
                affected = await repo.conditional_update(
                    job_id,
                    or_(
                        and_(Job.locked_by.is_(None), Job.state == JobState.PENDING.value),
                        Job.locked_by == worker_id,
                    ),
                    {
                        "locked_by": worker_id,
                        "locked_at": now_iso,
                        "state": JobState.PROCESSING.value,
                        "updated_at": now_iso,
                    },
                )

            claimed = affected > 0
            span.set_attribute("claimed", claimed)

        self._metrics.record_claim(worker_id, claimed)
        if claimed:
            logger.info("Job claimed", extra={"job_id": job_id, "worker_id": worker_id})
        else:
            logger.debug("Lost claim race", extra={"job_id": job_id, "worker_id": worker_id})
        return claimed

    async def complete(
        self,
        job_id: str,
        worker_id: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Mark a processing job as completed and release its lock.

        Repeated calls and calls for jobs that are not processing are
        no-ops; a dead job is never touched.

        Args:
            job_id: The job identifier.
            worker_id: If given, the update applies only while this worker
                holds the lock.
            now: Completion timestamp.

        Returns:
            True if the job transitioned to completed.
        """
        now_iso = to_iso(now or utcnow())
        predicate = Job.state == JobState.PROCESSING.value
        if worker_id is not None:
            predicate = and_(predicate, Job.locked_by == worker_id)

        async with self._repository() as repo:
            affected = await repo.conditional_update(
                job_id,
                predicate,
                {
                    "state": JobState.COMPLETED.value,
                    "completed_at": now_iso,
                    "updated_at": now_iso,
                    "locked_by": None,
                    "locked_at": None,
                    "next_retry_at": None,
                    "error": None,
                },
            )
            if affected == 0:
                current = await repo.get_job(job_id)

        if affected == 0:
            logger.warning(
                "Completion ignored",
                extra={
                    "job_id": job_id,
                    "worker_id": worker_id,
                    "state": current.state if current is not None else None,
                    "locked_by": current.locked_by if current is not None else None,
                },
            )
            return False

        logger.info("Job completed", extra={"job_id": job_id, "worker_id": worker_id})
        return True

    async def fail(
        self,
        job_id: str,
        error: str,
        next_retry_at: datetime | None,
        worker_id: str | None = None,
        now: datetime | None = None,
    ) -> JobRecord | None:
        """
        Record a failed attempt.

        The attempt counter is incremented together with the state change.
        If ``attempts_before + 1 >= max_retries`` the job is dead-lettered,
        otherwise it returns to pending and becomes claimable again at
        ``next_retry_at``.

        A missing job is logged and ignored, as is a job that is no longer
        processing or is locked by someone other than ``worker_id``.

        Args:
            job_id: The job identifier.
            error: Failure message to record.
            next_retry_at: Earliest retry time for the pending outcome.
            worker_id: If given, the update applies only while this worker
                holds the lock.
            now: Failure timestamp.

        Returns:
            The updated JobRecord, or None if nothing was changed.
        """
        now_iso = to_iso(now or utcnow())

        async with self._repository() as repo:
            row = await repo.get_job(job_id)
            if row is None:
                logger.warning(
                    "Failure reported for missing job",
                    extra={"job_id": job_id, "error": error},
                )
                return None

            if row.state != JobState.PROCESSING.value or (
                worker_id is not None and row.locked_by != worker_id
            ):
                logger.warning(
                    "Failure ignored, job not held by reporter",
                    extra={
                        "job_id": job_id,
                        "worker_id": worker_id,
                        "state": row.state,
                        "locked_by": row.locked_by,
                    },
                )
                return None

            attempts_before = row.attempts
            exhausted = attempts_before + 1 >= row.max_retries

            values: dict[str, Any] = {
                "error": error,
                "updated_at": now_iso,
                "locked_by": None,
                "locked_at": None,
            }
            if exhausted:
                values.update(
                    state=JobState.DEAD.value,
                    completed_at=now_iso,
                    next_retry_at=None,
                )
            else:
                values.update(
                    state=JobState.PENDING.value,
                    next_retry_at=to_iso(next_retry_at),
                )

            # Guard on the values just read so a concurrent change is not overwritten
            predicate = and_(
                Job.state == JobState.PROCESSING.value,
                Job.attempts == attempts_before,
            )
            if worker_id is not None:
                predicate = and_(predicate, Job.locked_by == worker_id)

            affected = await repo.increment_attempts(job_id, predicate, values)
            if affected == 0:
                logger.warning(
                    "Failure ignored, job changed concurrently",
                    extra={"job_id": job_id, "worker_id": worker_id},
                )
                return None

            updated = await repo.get_job(job_id)

        record = JobRecord.from_row(updated.to_dict())
        if exhausted:
            logger.warning(
                "Job moved to DLQ (max retries exceeded)",
                extra={
                    "job_id": job_id,
                    "attempts": record.attempts,
                    "max_retries": record.max_retries,
                    "error": error,
                },
            )
        else:
            logger.warning(
                "Job failed, will retry",
                extra={
                    "job_id": job_id,
                    "attempts": record.attempts,
                    "max_retries": record.max_retries,
                    "next_retry_at": to_iso(record.next_retry_at),
                    "error": error,
                },
            )
        return record

    async def retry_from_dlq(self, job_id: str, now: datetime | None = None) -> JobRecord:
        """
        Move a dead job back to pending with a fresh attempt budget.

        Raises:
            NotFoundError: If the job does not exist.
            InvalidStateError: If the job is not dead.
        """
        now_iso = to_iso(now or utcnow())

        async with self._repository() as repo:
            row = await repo.get_job(job_id)
            if row is None:
                raise NotFoundError(job_id)
            if row.state != JobState.DEAD.value:
                raise InvalidStateError(
                    f"Job {job_id} is not in DLQ (current state: {row.state})"
                )

            affected = await repo.conditional_update(
                job_id,
                Job.state == JobState.DEAD.value,
                {
                    "state": JobState.PENDING.value,
                    "attempts": 0,
                    "error": None,
                    "next_retry_at": None,
                    "completed_at": None,
                    "locked_by": None,
                    "locked_at": None,
                    "updated_at": now_iso,
                },
            )
            if affected == 0:
                raise InvalidStateError(f"Job {job_id} left the DLQ concurrently")

            updated = await repo.get_job(job_id)

        logger.info("Job moved from DLQ to pending queue", extra={"job_id": job_id})
        return JobRecord.from_row(updated.to_dict())

    async def recover_stale_locks(
        self,
        older_than: timedelta,
        now: datetime | None = None,
    ) -> int:
        """
        Return jobs whose owner stopped reporting to the pending pool.

        A processing job locked longer than ``older_than`` ago is unlocked
        and set back to pending. No attempt is counted.

        Returns:
            Number of recovered jobs.
        """
        now = now or utcnow()
        async with self._repository() as repo:
            count = await repo.release_stale_locks(to_iso(now - older_than), to_iso(now))

        self._metrics.record_locks_recovered(count)
        if count > 0:
            logger.warning("Recovered stale locks", extra={"count": count})
        return count

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    async def get_config(self, key: str) -> str | None:
        """Get a config value, or None if unset."""
        async with self._repository() as repo:
            return await repo.get_config(key)

    async def set_config(self, key: str, value: str | int) -> None:
        """Set a config value. Any key is accepted."""
        async with self._repository() as repo:
            await repo.set_config(key, str(value))
        logger.info("Configuration updated", extra={"key": key, "value": str(value)})

    async def list_config(self) -> dict[str, str]:
        """Get all config entries."""
        async with self._repository() as repo:
            return await repo.list_config()
