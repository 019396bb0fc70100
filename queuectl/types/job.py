"""
Job-related type definitions.
"""

import json
from collections.abc import Mapping
from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from queuectl.constants import DEFAULT_MAX_RETRIES, TERMINAL_STATES, JobState
from queuectl.errors import ValidationError
from queuectl.utils import ensure_utc, parse_iso, to_iso, utcnow

# Columns whose storage form is an ISO-8601 string
TIMESTAMP_FIELDS = (
    "created_at",
    "updated_at",
    "next_retry_at",
    "locked_at",
    "completed_at",
)


def generate_job_id() -> str:
    """Generate an opaque unique job identifier."""
    return str(uuid4())


class JobRecord(BaseModel):
    """
    One submitted unit of work.

    Built from a submission payload with ``from_payload`` or from a store
    row with ``from_row``; ``to_row`` produces the flat key-value form that
    is persisted. The two are exact inverses.
    """

    model_config = ConfigDict(extra="ignore")

    id: StrictStr = Field(default_factory=generate_job_id, min_length=1)
    command: StrictStr
    state: JobState = JobState.PENDING
    attempts: StrictInt = Field(default=0, ge=0)
    max_retries: StrictInt = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    next_retry_at: datetime | None = None
    locked_by: str | None = None
    locked_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None

    @field_validator("command")
    @classmethod
    def _command_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("command must be a non-empty string")
        return value

    @field_validator(*TIMESTAMP_FIELDS)
    @classmethod
    def _normalize_timestamp(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return ensure_utc(value)

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any] | str,
        default_max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> "JobRecord":
        """
        Build a new job from a submission payload.

        Args:
            payload: A mapping or a JSON object string.
            default_max_retries: Used when the payload omits max_retries.

        Returns:
            A validated JobRecord.

        Raises:
            ValidationError: If the payload is malformed.
        """
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Invalid job JSON: {e}") from e

        if not isinstance(payload, Mapping):
            raise ValidationError("Job payload must be a JSON object")

        data = dict(payload)
        if data.get("max_retries") is None:
            data["max_retries"] = default_max_retries
        if data.get("id") is None:
            data.pop("id", None)

        return cls._validate(data)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "JobRecord":
        """Rebuild a job from its stored row."""
        data = dict(row)
        for name in TIMESTAMP_FIELDS:
            if isinstance(data.get(name), str):
                data[name] = parse_iso(data[name])
        return cls._validate(data)

    @classmethod
    def _validate(cls, data: dict[str, Any]) -> "JobRecord":
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            messages = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}"
                for err in e.errors()
            )
            raise ValidationError(f"Invalid job: {messages}") from e

    def to_row(self) -> dict[str, Any]:
        """Serialize to the flat key-value row stored in the jobs table."""
        row = self.model_dump()
        row["state"] = self.state.value
        for name in TIMESTAMP_FIELDS:
            row[name] = to_iso(getattr(self, name))
        return row

    @property
    def is_terminal(self) -> bool:
        """Check if the job reached completed or dead."""
        return self.state in TERMINAL_STATES

    @property
    def remaining_attempts(self) -> int:
        """Get remaining attempts before the job is dead-lettered."""
        return max(0, self.max_retries - self.attempts)


class ExecutionResult(BaseModel):
    """
    Result of a successful command execution.
    Failed executions raise ExecutionError instead.
    """

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float
