"""
Unit tests for shell command execution.
"""

import asyncio

import pytest

from queuectl.errors import ExecutionError
from queuectl.worker.executor import MAX_ERROR_LENGTH, run_command


class TestRunCommand:
    """Tests for run_command."""

    async def test_success_captures_output(self):
        """Test a zero exit code returns the captured output."""
        result = await run_command("echo hi")

        assert result.exit_code == 0
        assert result.stdout == "hi\n"
        assert result.duration_seconds >= 0

    async def test_shell_features(self):
        """Test the command line is interpreted by the shell."""
        result = await run_command("echo a && echo b | tr b c")
        assert result.stdout.split() == ["a", "c"]

    async def test_non_zero_exit(self):
        """Test a failing command raises with its exit code."""
        with pytest.raises(ExecutionError) as exc_info:
            await run_command("exit 1")

        assert exc_info.value.exit_code == 1
        assert exc_info.value.timed_out is False
        assert str(exc_info.value) == "Command exited with code 1"

    async def test_stderr_becomes_error_message(self):
        """Test stderr is preferred as the failure message."""
        with pytest.raises(ExecutionError) as exc_info:
            await run_command("echo boom >&2; exit 3")

        assert exc_info.value.exit_code == 3
        assert str(exc_info.value) == "boom"

    async def test_unknown_command(self):
        """Test a missing executable is reported as a failure, not a crash."""
        with pytest.raises(ExecutionError) as exc_info:
            await run_command("definitely-not-a-real-command-xyz")

        assert exc_info.value.exit_code == 127

    async def test_long_error_truncated(self):
        """Test stored error messages are bounded."""
        with pytest.raises(ExecutionError) as exc_info:
            await run_command(f"printf '%{MAX_ERROR_LENGTH * 2}s' x >&2; exit 1")

        assert len(str(exc_info.value)) <= MAX_ERROR_LENGTH

    async def test_timeout_kills_command(self):
        """Test a command exceeding the timeout is killed and reported."""
        with pytest.raises(ExecutionError) as exc_info:
            await run_command("sleep 5", timeout=0.2)

        assert exc_info.value.timed_out is True
        assert "timed out" in str(exc_info.value)

    async def test_timeout_kills_compound_command(self):
        """Test the timeout also bounds commands whose shell forks children."""
        loop = asyncio.get_running_loop()
        started = loop.time()

        with pytest.raises(ExecutionError) as exc_info:
            await run_command("sleep 5; echo done", timeout=0.3)

        assert exc_info.value.timed_out is True
        assert loop.time() - started < 2

    async def test_timeout_kills_background_children(self, tmp_path):
        """Test nothing the command started keeps running after the timeout."""
        marker = tmp_path / "marker"

        with pytest.raises(ExecutionError):
            await run_command(f"(sleep 1; touch {marker}) & wait", timeout=0.2)

        await asyncio.sleep(1.5)
        assert not marker.exists()
