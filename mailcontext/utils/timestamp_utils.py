"""
Timestamp utilities for consistent time handling across the system.
"""

from datetime import datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_datetime(value: Optional[Union[str, int, float, datetime]] = None) -> datetime:
    """Convert an ISO string, unix timestamp or datetime to an aware UTC datetime.

    Args:
        value: Value to convert (optional, uses current time if None)

    Returns:
        datetime object in UTC
    """
    if value is None:
        return utc_now()
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        dt = datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        dt = datetime.fromisoformat(text)

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize a datetime as an ISO 8601 string in UTC."""
    return to_datetime(value).isoformat()
