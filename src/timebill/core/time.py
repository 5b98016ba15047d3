"""Time and timezone utilities for timebill.

Provides consistent timezone handling across the system with:
- UTC discipline: all instants stored and compared as aware UTC datetimes
- ISO-8601 format enforcement
- Timezone localization for bucketing
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

__all__ = [
    "API_DATETIME_FORMAT",
    "ensure_timezone",
    "format_api_datetime",
    "format_db_timestamp",
    "format_utc_iso8601",
    "get_current_utc",
    "localize_utc_to_tz",
    "parse_api_datetime",
    "parse_db_timestamp",
    "parse_utc_iso8601",
    "whole_seconds",
]

# Wire format of instants accepted by filters (e.g. 2024-01-01T00:00:00Z)
API_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_ONE_MICROSECOND = timedelta(microseconds=1)


def get_current_utc() -> datetime:
    """Get current time in UTC.

    Returns
    -------
    datetime
        Current time in UTC with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_timezone(dt: datetime, tz: str | tzinfo | None = None) -> datetime:
    """Ensure datetime has timezone information.

    Parameters
    ----------
    dt
        Datetime (may be naive)
    tz
        Timezone to assume if dt is naive (default: UTC)

    Returns
    -------
    datetime
        Timezone-aware datetime
    """
    if dt.tzinfo is not None:
        return dt

    if tz is None:
        tz_obj: tzinfo = timezone.utc
    elif isinstance(tz, str):
        tz_obj = ZoneInfo(tz)
    else:
        tz_obj = tz

    return dt.replace(tzinfo=tz_obj)


def format_utc_iso8601(dt: datetime) -> str:
    """Format datetime as ISO-8601 UTC string.

    Naive datetimes are assumed to be UTC.

    Example
    -------
    >>> from datetime import datetime, timezone
    >>> format_utc_iso8601(datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc))
    '2024-01-01T12:30:00+00:00'
    """
    return ensure_timezone(dt).astimezone(timezone.utc).isoformat()


def parse_utc_iso8601(iso_string: str) -> datetime:
    """Parse ISO-8601 string to UTC datetime.

    Parameters
    ----------
    iso_string
        ISO-8601 formatted string ("Z" suffix accepted)

    Returns
    -------
    datetime
        Datetime in UTC

    Raises
    ------
    ValueError
        If string is not valid ISO-8601
    """
    dt = datetime.fromisoformat(iso_string.replace("Z", "+00:00"))
    return ensure_timezone(dt).astimezone(timezone.utc)


def parse_api_datetime(value: str) -> datetime:
    """Parse a strict ``YYYY-MM-DDTHH:MM:SSZ`` instant into aware UTC.

    Raises
    ------
    ValueError
        If the value does not match the wire format
    """
    return datetime.strptime(value, API_DATETIME_FORMAT).replace(tzinfo=timezone.utc)


def format_api_datetime(dt: datetime) -> str:
    """Format an instant in the strict ``YYYY-MM-DDTHH:MM:SSZ`` wire format."""
    return ensure_timezone(dt).astimezone(timezone.utc).strftime(API_DATETIME_FORMAT)


def localize_utc_to_tz(utc_dt: datetime, tz: str | tzinfo) -> datetime:
    """Convert UTC datetime to a specific timezone.

    Example
    -------
    >>> utc_dt = datetime(2024, 7, 1, 12, 0, 0, tzinfo=timezone.utc)
    >>> localize_utc_to_tz(utc_dt, "Europe/Vienna").hour
    14
    """
    if isinstance(tz, str):
        tz = ZoneInfo(tz)

    return ensure_timezone(utc_dt).astimezone(tz)


def whole_seconds(delta: timedelta) -> int:
    """Round a duration to whole seconds, half up, never below zero.

    Uses integer microsecond arithmetic so sums never drift.
    """
    micros = delta // _ONE_MICROSECOND
    if micros <= 0:
        return 0
    return (micros + 500_000) // 1_000_000


def format_db_timestamp(dt: datetime) -> str:
    """Fixed-width UTC text whose lexicographic order is chronological."""
    return ensure_timezone(dt).astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_db_timestamp(value: str) -> datetime:
    """Inverse of :func:`format_db_timestamp`."""
    return datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%fZ").replace(tzinfo=timezone.utc)
