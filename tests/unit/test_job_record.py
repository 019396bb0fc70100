"""
Unit tests for the job record model.
"""

import json
from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest

from queuectl.constants import JobState
from queuectl.errors import ValidationError
from queuectl.types.job import JobRecord, generate_job_id


class TestFromPayload:
    """Tests for building jobs from submission payloads."""

    def test_minimal_payload(self):
        """Test defaults are filled in for a command-only payload."""
        job = JobRecord.from_payload({"command": "echo hi"})

        UUID(job.id)
        assert job.command == "echo hi"
        assert job.state == JobState.PENDING
        assert job.attempts == 0
        assert job.max_retries == 3
        assert job.created_at.tzinfo is not None
        assert job.next_retry_at is None
        assert job.locked_by is None
        assert job.error is None

    def test_json_string_payload(self):
        """Test a JSON object string is accepted."""
        job = JobRecord.from_payload('{"id": "job-1", "command": "ls", "max_retries": 5}')

        assert job.id == "job-1"
        assert job.max_retries == 5

    def test_default_max_retries_used_when_omitted(self):
        """Test the caller's default applies only when max_retries is missing."""
        assert JobRecord.from_payload({"command": "ls"}, default_max_retries=7).max_retries == 7
        assert (
            JobRecord.from_payload(
                {"command": "ls", "max_retries": 1}, default_max_retries=7
            ).max_retries
            == 1
        )

    def test_zero_max_retries_allowed(self):
        """Test max_retries of zero is a valid value."""
        assert JobRecord.from_payload({"command": "ls", "max_retries": 0}).max_retries == 0

    def test_null_id_generates_one(self):
        """Test an explicit null id is replaced by a generated id."""
        job = JobRecord.from_payload({"id": None, "command": "ls"})
        assert job.id

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"command": ""},
            {"command": "   "},
            {"command": 123},
            {"command": "ls", "max_retries": -1},
            {"command": "ls", "max_retries": "3"},
            {"command": "ls", "id": ""},
            {"command": "ls", "id": 42},
        ],
    )
    def test_invalid_payload(self, payload):
        """Test malformed payloads raise ValidationError."""
        with pytest.raises(ValidationError):
            JobRecord.from_payload(payload)

    def test_invalid_json(self):
        """Test unparseable JSON raises ValidationError."""
        with pytest.raises(ValidationError, match="Invalid job JSON"):
            JobRecord.from_payload("{not json")

    def test_non_object_json(self):
        """Test JSON that is not an object raises ValidationError."""
        with pytest.raises(ValidationError, match="JSON object"):
            JobRecord.from_payload(json.dumps(["echo hi"]))

    def test_error_message_names_field(self):
        """Test the error message points at the offending field."""
        with pytest.raises(ValidationError) as exc_info:
            JobRecord.from_payload({"command": "ls", "max_retries": -1})
        assert "max_retries" in str(exc_info.value)


class TestRowConversion:
    """Tests for the stored row form."""

    def test_row_round_trip(self):
        """Test a fully populated record survives to_row/from_row unchanged."""
        t0 = datetime(2025, 3, 1, 8, 30, 15, 123456, tzinfo=timezone.utc)
        job = JobRecord(
            id="job-1",
            command="echo hi",
            state=JobState.DEAD,
            attempts=3,
            max_retries=3,
            created_at=t0,
            updated_at=t0 + timedelta(seconds=1),
            next_retry_at=t0 + timedelta(seconds=2),
            locked_by="w1",
            locked_at=t0 + timedelta(seconds=3),
            completed_at=t0 + timedelta(seconds=4),
            error="boom",
        )

        assert JobRecord.from_row(job.to_row()) == job

    def test_row_uses_strings(self):
        """Test timestamps and state are stored as plain strings."""
        row = JobRecord(command="ls").to_row()

        assert row["state"] == "pending"
        assert isinstance(row["created_at"], str)
        assert row["created_at"].endswith("+00:00")
        assert row["next_retry_at"] is None

    def test_timestamps_sort_lexicographically(self):
        """Test stored timestamps order the same way as the times they encode."""
        early = datetime(2025, 1, 1, 9, 59, 59, 999999, tzinfo=timezone.utc)
        late = datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc)

        early_row = JobRecord(command="ls", created_at=early).to_row()
        late_row = JobRecord(command="ls", created_at=late).to_row()

        assert early_row["created_at"] < late_row["created_at"]

    def test_naive_timestamps_treated_as_utc(self):
        """Test naive datetimes are interpreted as UTC."""
        job = JobRecord(command="ls", created_at=datetime(2025, 1, 1))
        assert job.created_at == datetime(2025, 1, 1, tzinfo=timezone.utc)

    def test_from_row_rejects_unknown_state(self):
        """Test a corrupt state value is reported as ValidationError."""
        row = JobRecord(command="ls").to_row()
        row["state"] = "bogus"

        with pytest.raises(ValidationError):
            JobRecord.from_row(row)


class TestJobRecordProperties:
    """Tests for derived properties."""

    def test_remaining_attempts(self):
        assert JobRecord(command="ls", attempts=1, max_retries=3).remaining_attempts == 2
        assert JobRecord(command="ls", attempts=5, max_retries=3).remaining_attempts == 0

    @pytest.mark.parametrize(
        ("state", "terminal"),
        [
            (JobState.PENDING, False),
            (JobState.PROCESSING, False),
            (JobState.COMPLETED, True),
            (JobState.DEAD, True),
        ],
    )
    def test_is_terminal(self, state: JobState, terminal: bool):
        assert JobRecord(command="ls", state=state).is_terminal is terminal

    def test_generated_ids_are_unique(self):
        assert len({generate_job_id() for _ in range(100)}) == 100
