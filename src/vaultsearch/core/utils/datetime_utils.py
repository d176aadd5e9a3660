"""
Centralized datetime utilities for vaultsearch.

All datetimes are handled in UTC. Document modification times coming from the store are
epoch milliseconds.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO string with Z suffix.

    Example: "2024-01-15T10:30:45.123456Z"
    """
    return ensure_utc(dt).isoformat().replace('+00:00', 'Z')


def epoch_ms_to_datetime(epoch_ms: float) -> datetime:
    """Convert an epoch-milliseconds timestamp (store mtime/ctime) to UTC datetime."""
    return datetime.fromtimestamp(epoch_ms / 1000.0, tz=timezone.utc)
