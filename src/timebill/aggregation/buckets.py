"""Calendar bucketing with DST awareness.

Converts an instant plus a target timezone and week start into a bucket
key (day, week, month, year), or reads a categorical key off a time entry.
All calendar arithmetic happens on local wall-clock datetimes; no
floating point is involved.
"""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import TYPE_CHECKING

import pytz

from ..core.time import ensure_timezone, get_current_utc
from ..core.weekday import Weekday
from .dimensions import Dimension, TimeInterval
from .errors import PreconditionError

if TYPE_CHECKING:
    from ..core.models import TimeEntry

__all__ = [
    "CalendarBucketer",
    "add_period",
    "bucket_key",
    "categorical_key",
    "get_week_start",
    "localize_wall_clock",
    "resolve_timezone",
    "start_of_period",
    "to_wall_clock",
]

WEEK = timedelta(days=7)


def resolve_timezone(timezone_str: str) -> tzinfo:
    """Look up an IANA timezone.

    Raises
    ------
    PreconditionError
        If the timezone is unknown
    """
    try:
        return pytz.timezone(timezone_str)
    except (pytz.UnknownTimeZoneError, AttributeError) as exc:
        raise PreconditionError(f"Unknown timezone: {timezone_str!r}") from exc


def to_wall_clock(timestamp: datetime, tz: tzinfo) -> datetime:
    """Naive local wall-clock time of an instant in ``tz``."""
    return ensure_timezone(timestamp).astimezone(tz).replace(tzinfo=None)


def localize_wall_clock(local_dt: datetime, tz: tzinfo) -> datetime:
    """Aware instant of a naive local wall-clock time in ``tz``."""
    if hasattr(tz, "localize"):
        return tz.localize(local_dt)
    return local_dt.replace(tzinfo=tz)


def get_week_start(dt: datetime, start_on: Weekday = Weekday.MONDAY) -> datetime:
    """Get local midnight of the first day of the week containing ``dt``.

    Parameters
    ----------
    dt
        Naive local datetime
    start_on
        Day the week starts on
    """
    days_since_start = (dt.weekday() - start_on.python_weekday) % 7
    return datetime(dt.year, dt.month, dt.day) - timedelta(days=days_since_start)


def start_of_period(
    local_dt: datetime,
    interval: TimeInterval,
    week_start: Weekday = Weekday.MONDAY,
) -> datetime:
    """Local midnight starting the calendar unit that contains ``local_dt``."""
    if interval is TimeInterval.DAY:
        return datetime(local_dt.year, local_dt.month, local_dt.day)
    if interval is TimeInterval.WEEK:
        return get_week_start(local_dt, week_start)
    if interval is TimeInterval.MONTH:
        return datetime(local_dt.year, local_dt.month, 1)
    if interval is TimeInterval.YEAR:
        return datetime(local_dt.year, 1, 1)
    raise PreconditionError(f"Invalid interval: {interval!r}")


def add_period(local_dt: datetime, interval: TimeInterval) -> datetime:
    """Step an aligned period start forward by one calendar unit."""
    if interval is TimeInterval.DAY:
        return local_dt + timedelta(days=1)
    if interval is TimeInterval.WEEK:
        return local_dt + WEEK
    if interval is TimeInterval.MONTH:
        if local_dt.month == 12:
            return local_dt.replace(year=local_dt.year + 1, month=1, day=1)
        return local_dt.replace(month=local_dt.month + 1, day=1)
    if interval is TimeInterval.YEAR:
        return local_dt.replace(year=local_dt.year + 1, month=1, day=1)
    raise PreconditionError(f"Invalid interval: {interval!r}")


def categorical_key(entry: TimeEntry, dimension: Dimension) -> str | None:
    """Read the grouping key of a categorical dimension off an entry.

    ``None`` means the entry has no value for the dimension.
    """
    if dimension is Dimension.BILLABLE:
        return "1" if entry.billable else "0"
    field_name = dimension.entry_field
    if field_name is None:
        raise PreconditionError(f"Dimension {dimension.value} is not categorical")
    value = getattr(entry, field_name)
    if value is None or value == "":
        return None
    return str(value)


class CalendarBucketer:
    """Computes bucket keys for one aggregation call.

    The timezone and the week anchor are resolved once. Weeks are binned in
    fixed 7-day steps from the start of the current week in the target
    timezone, so a timestamp exactly on a boundary opens the later bucket.
    """

    def __init__(
        self,
        timezone_str: str,
        week_start: Weekday | str | int = Weekday.MONDAY,
        now: datetime | None = None,
    ) -> None:
        self.timezone_str = timezone_str
        self.tz = resolve_timezone(timezone_str)
        self.week_start = Weekday.coerce(week_start)
        reference = to_wall_clock(now or get_current_utc(), self.tz)
        self.week_anchor = get_week_start(reference, self.week_start)

    def temporal_key(self, timestamp: datetime, dimension: Dimension) -> str:
        interval = dimension.interval
        if interval is None:
            raise PreconditionError(f"Dimension {dimension.value} is not temporal")

        local = to_wall_clock(timestamp, self.tz)
        if interval is TimeInterval.WEEK:
            steps = (local - self.week_anchor) // WEEK
            bucket_start = self.week_anchor + steps * WEEK
        else:
            bucket_start = start_of_period(local, interval, self.week_start)
        return bucket_start.strftime(interval.key_format)

    def key_for(self, entry: TimeEntry, dimension: Dimension) -> str | None:
        """Bucket key of an entry, grouped by its start instant."""
        if dimension.is_temporal:
            return self.temporal_key(entry.start, dimension)
        return categorical_key(entry, dimension)


def bucket_key(
    timestamp: datetime,
    dimension: Dimension | str,
    timezone_str: str = "UTC",
    week_start: Weekday | str | int = Weekday.MONDAY,
    now: datetime | None = None,
) -> str:
    """Compute the bucket key of an instant for a temporal dimension.

    Parameters
    ----------
    timestamp
        Instant to bucket (naive values are taken as UTC)
    dimension
        day, week, month or year
    timezone_str
        IANA timezone the calendar is evaluated in
    week_start
        Day weeks start on (Weekday, its name, or 0=Sunday..6=Saturday)
    now
        Reference instant for the week anchor (default: current time)

    Examples
    --------
    >>> bucket_key(datetime(2024, 1, 1, 23, 30), "day", "Europe/Vienna")
    '2024-01-02'
    >>> bucket_key(datetime(2024, 1, 3, 12, 0), "week", "UTC", "monday")
    '2024-01-01'
    """
    bucketer = CalendarBucketer(timezone_str, week_start, now=now)
    return bucketer.temporal_key(timestamp, Dimension(dimension))
