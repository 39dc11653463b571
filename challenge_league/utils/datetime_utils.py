"""
Datetime utility functions.
Provides replacements for deprecated datetime functions.
"""

from datetime import datetime
from typing import Optional
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to timezone-aware UTC.

    SQLite hands back naive datetimes even for DateTime(timezone=True) columns,
    so naive values are treated as already being in UTC.

    Args:
        value: Datetime to normalize (naive or aware), or None

    Returns:
        Aware UTC datetime, or None if value is None

    Examples:
        >>> ensure_utc(datetime(2026, 1, 21, 19, 0))
        datetime.datetime(2026, 1, 21, 19, 0, tzinfo=<UTC>)
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)
