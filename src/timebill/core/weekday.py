"""Week start convention."""

from __future__ import annotations

from enum import Enum

__all__ = ["Weekday"]


class Weekday(str, Enum):
    """Day a week starts on.

    ``sunday_index`` follows the 0=Sunday..6=Saturday convention used at the API
    boundary; ``python_weekday`` follows ``datetime.weekday()`` (0=Monday).
    """

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def python_weekday(self) -> int:
        return _ORDER.index(self)

    @property
    def sunday_index(self) -> int:
        return (self.python_weekday + 1) % 7

    def to_end_of_week(self) -> Weekday:
        """Last day of a week starting on this day."""
        return _ORDER[(self.python_weekday - 1) % 7]

    @classmethod
    def from_index(cls, index: int) -> Weekday:
        """Build from the 0=Sunday..6=Saturday convention."""
        if not 0 <= index <= 6:
            raise ValueError(f"Weekday index must be 0..6, got {index}")
        return _ORDER[(index - 1) % 7]

    @classmethod
    def coerce(cls, value: Weekday | str | int) -> Weekday:
        """Accept a member, its name/value, or a 0=Sunday index (int or digit string).

        Raises
        ------
        ValueError
            If the value names no weekday
        """
        if isinstance(value, Weekday):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid weekday: {value!r}")
        if isinstance(value, int):
            return cls.from_index(value)
        if isinstance(value, str) and value.strip().isdigit():
            return cls.from_index(int(value))
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Invalid weekday: {value!r}") from exc


_ORDER = (
    Weekday.MONDAY,
    Weekday.TUESDAY,
    Weekday.WEDNESDAY,
    Weekday.THURSDAY,
    Weekday.FRIDAY,
    Weekday.SATURDAY,
    Weekday.SUNDAY,
)
