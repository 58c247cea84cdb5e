"""
Datetime utility functions.
"""

from datetime import date, datetime
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def utc_today() -> date:
    """Current date in UTC, used to decide which matches are upcoming."""
    return utcnow().date()
