"""Timestamp utilities for CommitPad.

Provides functions to produce and format the timestamps stored on notes
and used to name note files.
"""

from datetime import datetime, timezone
from typing import Optional


def current_epoch_ms() -> int:
    """Get current time as milliseconds since the Unix epoch.

    Note files are named after this value (``note_<epoch-ms>.md``).
    """
    return int(datetime.now(tz=timezone.utc).timestamp() * 1000)


def current_iso_timestamp() -> str:
    """Get current UTC time as an ISO-8601 string with millisecond precision."""
    return (
        datetime.now(tz=timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def parse_iso_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as written by current_iso_timestamp().

    Args:
        value: Timestamp string or None

    Returns:
        Timezone-aware datetime, or None if value is None or malformed
    """
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(value: Optional[str]) -> str:
    """Format an ISO timestamp in the local timezone for display.

    Args:
        value: ISO-8601 timestamp string or None

    Returns:
        Formatted string "YYYY-MM-DD HH:MM:SS" in local timezone,
        or empty string if value is None or malformed
    """
    dt = parse_iso_timestamp(value)
    if dt is None:
        return ""
    return dt.astimezone().strftime("%Y-%m-%d %H:%M:%S")
