"""
Timestamp helpers.

All timestamps are stored as ISO-8601 UTC strings with a fixed
microsecond precision so that lexicographic order matches time order.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    """Serialize a datetime to its storage form."""
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


def parse_iso(value: str | None) -> datetime | None:
    """Parse a stored timestamp back to an aware UTC datetime."""
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))
