"""
Timezone utility functions for the hurricane prediction game

All game-clock arithmetic is done on timezone-aware UTC datetimes.
"""

from datetime import datetime, timezone


def get_utc_time():
    """Get current time in UTC"""
    return datetime.now(timezone.utc)


def ensure_utc(dt):
    """Return an aware UTC datetime; naive values are assumed to be UTC"""
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def parse_iso_datetime(value):
    """
    Parse an ISO-8601 timestamp such as '2024-01-01T06:00:00.000Z'.

    Raises:
        ValueError: value is not a valid timestamp
    """
    if isinstance(value, datetime):
        return ensure_utc(value)

    if not isinstance(value, str):
        raise ValueError(f"Expected an ISO timestamp, got {value!r}")

    text = value.strip()
    # fromisoformat() on older interpreters does not accept the Z suffix
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    return ensure_utc(datetime.fromisoformat(text))


def hours_between(start, end):
    """Elapsed hours from start to end (negative when end is earlier)"""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600.0
