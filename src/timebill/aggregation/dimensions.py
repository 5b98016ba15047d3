"""Grouping dimensions.

A closed set: temporal dimensions map to a calendar bucket, categorical
dimensions map to a field of the time entry.
"""

from __future__ import annotations

from enum import Enum

__all__ = ["Dimension", "TimeInterval"]


class TimeInterval(str, Enum):
    """Calendar unit of a temporal dimension."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @property
    def key_format(self) -> str:
        """strftime format of bucket keys for this unit."""
        if self is TimeInterval.MONTH:
            return "%Y-%m"
        if self is TimeInterval.YEAR:
            return "%Y"
        return "%Y-%m-%d"


class Dimension(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    USER = "user"
    PROJECT = "project"
    TASK = "task"
    CLIENT = "client"
    BILLABLE = "billable"
    DESCRIPTION = "description"

    @property
    def is_temporal(self) -> bool:
        return self.interval is not None

    @property
    def interval(self) -> TimeInterval | None:
        """Calendar unit, or None for categorical dimensions."""
        try:
            return TimeInterval(self.value)
        except ValueError:
            return None

    @property
    def entry_field(self) -> str | None:
        """Time entry attribute read by a categorical dimension."""
        return _ENTRY_FIELDS.get(self)

    @classmethod
    def from_interval(cls, interval: TimeInterval | str) -> Dimension:
        return cls(TimeInterval(interval).value)


_ENTRY_FIELDS = {
    Dimension.USER: "user_id",
    Dimension.PROJECT: "project_id",
    Dimension.TASK: "task_id",
    Dimension.CLIENT: "client_id",
    Dimension.BILLABLE: "billable",
    Dimension.DESCRIPTION: "description",
}
