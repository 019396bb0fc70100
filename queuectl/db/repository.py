"""
Job repository for database operations.
Implements the durable store primitives the queue engine is built on.
"""

import logging
from collections.abc import Mapping
from typing import Any, Sequence

from sqlalchemy import ColumnElement, and_, func, or_, select, update
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from queuectl.constants import JobState
from queuectl.db.models import ConfigEntry, Job

logger = logging.getLogger(__name__)


class JobRepository:
    """
    Repository for job and config rows.

    Every method is a single statement and therefore individually atomic.
    Mutations are exposed only as conditional updates that report how many
    rows they touched, so callers can detect lost races.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            session: The async database session.
        """
        self._session = session

    async def create_job(self, row: Mapping[str, Any]) -> None:
        """
        Insert a new job row.

        Args:
            row: Column values, timestamps already serialized.
        """
        self._session.add(Job(**row))
        await self._session.flush()

    async def get_job(self, job_id: str) -> Job | None:
        """
        Get a job by ID.

        Args:
            job_id: The job identifier.

        Returns:
            The Job or None if not found.
        """
        stmt = select(Job).where(Job.id == job_id).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_jobs(self, state: str | None = None) -> Sequence[Job]:
        """
        List jobs, optionally filtered by state.

        A state filter returns oldest first (queue order); the unfiltered
        listing returns newest first.
        """
        stmt = select(Job)
        if state is not None:
            stmt = stmt.where(Job.state == state).order_by(Job.created_at.asc(), Job.id.asc())
        else:
            stmt = stmt.order_by(Job.created_at.desc(), Job.id.desc())

        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def get_next_pending(self, now: str) -> Job | None:
        """
        Select the oldest claimable job without locking it.

        Args:
            now: Current time as a stored timestamp string.

        Returns:
            The candidate Job or None.
        """
        stmt = (
            select(Job)
            .where(
                and_(
                    Job.state == JobState.PENDING.value,
                    Job.locked_by.is_(None),
                    or_(Job.next_retry_at.is_(None), Job.next_retry_at <= now),
                )
            )
            .order_by(Job.created_at.asc(), Job.id.asc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def conditional_update(
        self,
        job_id: str,
        predicate: ColumnElement[bool] | None,
        values: Mapping[str, Any],
    ) -> int:
        """
        Apply ``values`` to a job only if ``predicate`` holds for its current row.

        The check and the write happen in one UPDATE statement.

        Args:
            job_id: The job identifier.
            predicate: Extra WHERE clause evaluated against the current row.
            values: Columns to set.

        Returns:
            Number of rows affected (0 or 1).
        """
        condition = Job.id == job_id
        if predicate is not None:
            condition = and_(condition, predicate)

        stmt = (
            update(Job)
            .where(condition)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def increment_attempts(
        self,
        job_id: str,
        predicate: ColumnElement[bool] | None,
        values: Mapping[str, Any],
    ) -> int:
        """
        Increment ``attempts`` and apply ``values`` in the same statement.

        Returns:
            Number of rows affected (0 or 1).
        """
        return await self.conditional_update(
            job_id,
            predicate,
            {**values, "attempts": Job.attempts + 1},
        )

    async def release_stale_locks(self, locked_before: str, now: str) -> int:
        """
        Return processing jobs locked before ``locked_before`` to pending.

        Returns:
            Number of recovered jobs.
        """
        stmt = (
            update(Job)
            .where(
                and_(
                    Job.state == JobState.PROCESSING.value,
                    Job.locked_at < locked_before,
                )
            )
            .values(
                state=JobState.PENDING.value,
                locked_by=None,
                locked_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def get_job_stats(self) -> dict[str, int]:
        """
        Get job counts grouped by state.

        Returns:
            Dictionary of state -> count for states that have rows.
        """
        stmt = select(Job.state, func.count()).group_by(Job.state)
        result = await self._session.execute(stmt)
        return {state: count for state, count in result.all()}

    async def get_config(self, key: str) -> str | None:
        """Get a config value or None if unset."""
        stmt = select(ConfigEntry.value).where(ConfigEntry.key == key)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def set_config(self, key: str, value: str) -> None:
        """Insert or overwrite a config value (last write wins)."""
        stmt = (
            insert(ConfigEntry)
            .values(key=key, value=value)
            .on_conflict_do_update(index_elements=["key"], set_={"value": value})
        )
        await self._session.execute(stmt)

    async def list_config(self) -> dict[str, str]:
        """Get all config entries ordered by key."""
        stmt = select(ConfigEntry).order_by(ConfigEntry.key)
        result = await self._session.execute(stmt)
        return {entry.key: entry.value for entry in result.scalars().all()}
