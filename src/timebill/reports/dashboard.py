"""Per-user dashboard statistics.

Daily and weekly duration series, weekly totals and a weekly per-project
overview. Everything is bucketed in the user's own timezone and week start,
and aggregated from the stored billable rates.
"""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import TYPE_CHECKING, Any

from ..aggregation.buckets import get_week_start, localize_wall_clock, resolve_timezone, start_of_period, to_wall_clock
from ..aggregation.dimensions import Dimension, TimeInterval
from ..aggregation.engine import AggregationRequest, RateSource
from ..aggregation.errors import PreconditionError
from ..aggregation.gaps import time_slots_between
from ..core.time import ensure_timezone, get_current_utc
from ..observability import get_logger
from .service import ReportService

if TYPE_CHECKING:
    from ..aggregation.result import AggregationResult
    from ..core.models import User

__all__ = ["DashboardService", "NO_PROJECT_COLOR", "NO_PROJECT_NAME"]

NO_PROJECT_NAME = "No project"
NO_PROJECT_COLOR = "#cccccc"

log = get_logger("reports")


class DashboardService:
    """Statistics shown on a user's dashboard.

    Parameters
    ----------
    reports
        Report service the statistics are aggregated through
    """

    def __init__(self, reports: ReportService) -> None:
        self.reports = reports

    def _calendar(self, user: User, now: datetime | None) -> tuple[str, tzinfo, datetime, datetime]:
        """User timezone name and zone, the instant, and its local wall-clock time."""
        timezone_str = self.reports.timezone_for_user(user)
        tz = resolve_timezone(timezone_str)
        now = ensure_timezone(now) if now is not None else get_current_utc()
        return timezone_str, tz, now, to_wall_clock(now, tz)

    @staticmethod
    def _day_range(tz: tzinfo, first_day: datetime, days: int) -> tuple[datetime, datetime]:
        """``[start, end)`` instants of ``days`` local days from local midnight ``first_day``."""
        return localize_wall_clock(first_day, tz), localize_wall_clock(first_day + timedelta(days=days), tz)

    def _current_week(self, user: User, now: datetime | None) -> tuple[str, datetime, datetime, datetime]:
        timezone_str, tz, now, local = self._calendar(user, now)
        start, end = self._day_range(tz, get_week_start(local, user.week_start), 7)
        return timezone_str, start, end, now

    def _aggregate(
        self,
        user: User,
        organization_id: str,
        timezone_str: str,
        start: datetime,
        end: datetime,
        now: datetime,
        *,
        with_descriptions: bool = False,
        **fields: Any,
    ) -> AggregationResult:
        request = AggregationRequest(
            organization_id=organization_id,
            user_id=user.id,
            timezone=timezone_str,
            week_start=user.week_start,
            start=start,
            end=end,
            rate_source=RateSource.STORED,
            **fields,
        )
        return self.reports.aggregate(request, now=now, with_descriptions=with_descriptions)

    def _daily_series(
        self, user: User, organization_id: str, timezone_str: str, start: datetime, end: datetime, now: datetime
    ) -> list[dict[str, Any]]:
        slots = time_slots_between(start, end, timezone_str, user.week_start, TimeInterval.DAY)
        result = self._aggregate(
            user, organization_id, timezone_str, start, end, now, group=Dimension.DAY, fill_gaps=True
        )
        durations = {node.key: node.seconds for node in result.grouped_data}
        return [{"date": day, "duration": durations.get(day, 0)} for day in slots]

    def daily_tracked_hours(
        self, user: User, organization_id: str, days: int, *, now: datetime | None = None
    ) -> list[dict[str, Any]]:
        """Seconds tracked per day over the last ``days`` days, today included.

        Raises
        ------
        PreconditionError
            If ``days`` is below one
        """
        if days < 1:
            raise PreconditionError(f"At least one day is required, got {days}")
        timezone_str, tz, now, local = self._calendar(user, now)
        today = start_of_period(local, TimeInterval.DAY)
        start, end = self._day_range(tz, today - timedelta(days=days - 1), days)
        return self._daily_series(user, organization_id, timezone_str, start, end, now)

    def weekly_history(
        self, user: User, organization_id: str, *, now: datetime | None = None
    ) -> list[dict[str, Any]]:
        """Seconds tracked on each day of the user's current week."""
        timezone_str, start, end, now = self._current_week(user, now)
        return self._daily_series(user, organization_id, timezone_str, start, end, now)

    def total_weekly_time(self, user: User, organization_id: str, *, now: datetime | None = None) -> int:
        timezone_str, start, end, now = self._current_week(user, now)
        return self._aggregate(user, organization_id, timezone_str, start, end, now).seconds

    def total_weekly_billable_time(self, user: User, organization_id: str, *, now: datetime | None = None) -> int:
        timezone_str, start, end, now = self._current_week(user, now)
        return self._aggregate(user, organization_id, timezone_str, start, end, now, billable=True).seconds

    def total_weekly_billable_amount(self, user: User, organization_id: str, *, now: datetime | None = None) -> int:
        """Cost of this week's billable entries at their stored rates."""
        timezone_str, start, end, now = self._current_week(user, now)
        return self._aggregate(user, organization_id, timezone_str, start, end, now, billable=True).cost

    def weekly_project_overview(
        self, user: User, organization_id: str, *, now: datetime | None = None
    ) -> list[dict[str, Any]]:
        """Seconds per project this week, with project names and colors.

        Entries without a known project are folded into one trailing
        "No project" item, which is also the only item of an empty week.
        """
        timezone_str, start, end, now = self._current_week(user, now)
        result = self._aggregate(
            user, organization_id, timezone_str, start, end, now, with_descriptions=True, group=Dimension.PROJECT
        )

        overview: list[dict[str, Any]] = []
        other = 0
        for node in result.grouped_data:
            if node.key is None or node.description is None:
                other += node.seconds
                continue
            overview.append({"value": node.seconds, "id": node.key, "name": node.description, "color": node.color})

        if other > 0 or not overview:
            overview.append({"value": other, "id": None, "name": NO_PROJECT_NAME, "color": NO_PROJECT_COLOR})
        return overview

    def statistics(
        self, user: User, organization_id: str, *, days: int = 7, now: datetime | None = None
    ) -> dict[str, Any]:
        """All dashboard statistics for one user, taken at a single instant."""
        now = ensure_timezone(now) if now is not None else get_current_utc()
        stats = {
            "daily_tracked_hours": self.daily_tracked_hours(user, organization_id, days, now=now),
            "weekly_history": self.weekly_history(user, organization_id, now=now),
            "total_weekly_time": self.total_weekly_time(user, organization_id, now=now),
            "total_weekly_billable_time": self.total_weekly_billable_time(user, organization_id, now=now),
            "total_weekly_billable_amount": self.total_weekly_billable_amount(user, organization_id, now=now),
            "weekly_project_overview": self.weekly_project_overview(user, organization_id, now=now),
        }
        log.info(
            "Dashboard statistics built",
            user_id=user.id,
            organization_id=organization_id,
            total_weekly_time=stats["total_weekly_time"],
        )
        return stats
