"""
Unit tests for the exponential backoff policy.
"""

from datetime import datetime, timedelta, timezone

import pytest

from queuectl.constants import MAX_RETRY_DELAY_SECONDS
from queuectl.core.backoff import calculate_delay, format_delay, next_retry_at


class TestCalculateDelay:
    """Tests for calculate_delay."""

    @pytest.mark.parametrize(
        ("attempts", "base", "expected"),
        [
            (0, 2, 1),
            (1, 2, 2),
            (3, 2, 8),
            (2, 3, 9),
            (5, 1, 1),
        ],
    )
    def test_delay_is_base_to_the_attempts(self, attempts: int, base: int, expected: int):
        """Test delay = base ** attempts."""
        assert calculate_delay(attempts, base) == expected

    def test_delay_is_monotonic(self):
        """Test delays never decrease as attempts grow."""
        delays = [calculate_delay(attempts, 2) for attempts in range(10)]
        assert delays == sorted(delays)

    @pytest.mark.parametrize("base", [0, -3, True, "2"])
    def test_invalid_base_falls_back_to_default(self, base):
        """Test a base below 1 or of the wrong type uses base 2."""
        assert calculate_delay(3, base) == 8

    def test_negative_attempts_treated_as_zero(self):
        """Test negative attempt counts give the minimum delay."""
        assert calculate_delay(-1, 2) == 1


class TestNextRetryAt:
    """Tests for next_retry_at."""

    def test_offset_from_now(self):
        """Test the retry time is now plus the delay."""
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert next_retry_at(2, 2, now=now) == now + timedelta(seconds=4)

    def test_huge_delay_is_clamped(self):
        """Test extreme exponents do not overflow datetime arithmetic."""
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        result = next_retry_at(200, 10, now=now)
        assert result == now + timedelta(seconds=MAX_RETRY_DELAY_SECONDS)

    def test_defaults_to_current_time(self):
        """Test the reference time defaults to now."""
        before = datetime.now(timezone.utc)
        result = next_retry_at(0)
        assert before + timedelta(seconds=1) <= result
        assert result <= datetime.now(timezone.utc) + timedelta(seconds=1)


class TestFormatDelay:
    """Tests for format_delay."""

    def test_seconds(self):
        assert format_delay(45) == "45s"

    def test_minutes(self):
        assert format_delay(128) == "2m 8s"
