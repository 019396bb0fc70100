"""
SQLAlchemy database models.
Defines the jobs and config tables.
"""

from typing import Any

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from queuectl.constants import JobState


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Job(Base):
    """
    Job model representing a unit of work in the queue.

    This is the authoritative source of truth for job state.
    All lifecycle transitions go through JobQueue, which mutates rows only
    with single conditional UPDATE statements.

    Timestamps are stored as ISO-8601 UTC strings of fixed width, so
    string comparison in SQL orders them chronologically.

    Key constraints:
    - locked_by is set exactly while state is processing
    - completed_at is set exactly while state is completed or dead
    """

    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    command: Mapped[str] = mapped_column(Text, nullable=False)

    state: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=JobState.PENDING.value,
        index=True,
    )

    # Retry tracking
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(40), nullable=False)
    updated_at: Mapped[str] = mapped_column(String(40), nullable=False)
    next_retry_at: Mapped[str | None] = mapped_column(String(40), nullable=True)
    completed_at: Mapped[str | None] = mapped_column(String(40), nullable=True)

    # Lock management
    locked_by: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    locked_at: Mapped[str | None] = mapped_column(String(40), nullable=True)

    # Error tracking
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        # Index for the claimable-job poll
        Index("ix_jobs_poll", "state", "next_retry_at", "created_at"),
    )

    def to_dict(self) -> dict[str, Any]:
        """Return the row as a plain column -> value mapping."""
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}

    def __repr__(self) -> str:
        return (
            f"Job(id={self.id}, state={self.state}, "
            f"attempts={self.attempts}/{self.max_retries}, locked_by={self.locked_by})"
        )


class ConfigEntry(Base):
    """Key/value configuration, independent of jobs."""

    __tablename__ = "config"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"ConfigEntry({self.key}={self.value})"
