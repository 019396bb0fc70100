"""
Exponential backoff policy.

delay = base ** attempts seconds, where attempts is the job's attempt
count before the failure being handled.
"""

import logging
from datetime import datetime, timedelta

from queuectl.constants import DEFAULT_BACKOFF_BASE, MAX_RETRY_DELAY_SECONDS
from queuectl.utils import utcnow

logger = logging.getLogger(__name__)


def _sanitize(attempts: int, base: int) -> tuple[int, int]:
    if not isinstance(base, int) or isinstance(base, bool) or base < 1:
        logger.warning(
            "Invalid backoff base, using default",
            extra={"base": base, "default": DEFAULT_BACKOFF_BASE},
        )
        base = DEFAULT_BACKOFF_BASE
    if not isinstance(attempts, int) or isinstance(attempts, bool) or attempts < 0:
        logger.warning("Invalid attempt count, using 0", extra={"attempts": attempts})
        attempts = 0
    return attempts, base


def calculate_delay(attempts: int, base: int = DEFAULT_BACKOFF_BASE) -> int:
    """
    Calculate the exponential backoff delay.

    Args:
        attempts: Attempts recorded before this failure.
        base: Base of the exponent, at least 1.

    Returns:
        Delay in seconds.
    """
    attempts, base = _sanitize(attempts, base)
    return base**attempts


def next_retry_at(
    attempts: int,
    base: int = DEFAULT_BACKOFF_BASE,
    now: datetime | None = None,
) -> datetime:
    """
    Get the earliest time the job may run again.

    Args:
        attempts: Attempts recorded before this failure.
        base: Base of the exponent.
        now: Reference time, defaults to the current UTC time.

    Returns:
        Timestamp of the next retry.
    """
    now = now or utcnow()
    delay = min(calculate_delay(attempts, base), MAX_RETRY_DELAY_SECONDS)
    return now + timedelta(seconds=delay)


def format_delay(seconds: int) -> str:
    """Format a delay for humans, e.g. ``45s`` or ``2m 8s``."""
    if seconds < 60:
        return f"{seconds}s"
    minutes, remaining = divmod(seconds, 60)
    return f"{minutes}m {remaining}s"
