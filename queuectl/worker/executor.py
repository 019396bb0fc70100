"""
Shell command execution for jobs.

Commands must be idempotent - with at-least-once delivery a command may
run more than once if a worker dies after starting it.
"""

import asyncio
import logging
import os
import signal
import time

from queuectl.constants import COMMAND_TIMEOUT_SECONDS
from queuectl.errors import ExecutionError
from queuectl.types.job import ExecutionResult

logger = logging.getLogger(__name__)

# Keep stored error messages bounded
MAX_ERROR_LENGTH = 1000


def _decode(data: bytes | None) -> str:
    return data.decode("utf-8", errors="replace") if data else ""


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    """Kill the shell and everything it started; the shell leads its own session."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


async def run_command(
    command: str,
    timeout: float = COMMAND_TIMEOUT_SECONDS,
) -> ExecutionResult:
    """
    Run a command through the system shell and wait for it to exit.

    Args:
        command: The shell command line.
        timeout: Seconds before the child is killed.

    Returns:
        ExecutionResult for a zero exit code.

    Raises:
        ExecutionError: If the command exits non-zero, cannot be started,
            or exceeds the timeout.
    """
    start_time = time.monotonic()

    try:
        process = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        raise ExecutionError(f"Failed to start command: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        _kill_process_group(process)
        await process.wait()
        raise ExecutionError(
            f"Command timed out after {timeout:g}s",
            exit_code=process.returncode,
            timed_out=True,
        ) from None

    duration = time.monotonic() - start_time
    out_text = _decode(stdout)
    err_text = _decode(stderr)

    if process.returncode != 0:
        message = err_text.strip() or f"Command exited with code {process.returncode}"
        raise ExecutionError(message[:MAX_ERROR_LENGTH], exit_code=process.returncode)

    logger.debug(
        "Command finished",
        extra={"command": command, "duration": f"{duration:.2f}s"},
    )

    return ExecutionResult(
        exit_code=process.returncode,
        stdout=out_text,
        stderr=err_text,
        duration_seconds=duration,
    )
