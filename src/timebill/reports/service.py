"""Report service.

Ties the store, the aggregation engine and descriptor lookup together:
one filtered query, at most one batch rate-scope load, then aggregation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..aggregation.buckets import resolve_timezone
from ..aggregation.descriptors import describe
from ..aggregation.dimensions import Dimension, TimeInterval
from ..aggregation.engine import AggregationRequest, RateSource, aggregate
from ..aggregation.errors import PreconditionError
from ..aggregation.result import AggregationResult
from ..config.settings import Settings, load_settings
from ..observability import configure_loguru, get_logger, timing_context
from ..query.filter import TimeEntryFilter
from ..storage.sqlite import SQLiteTimeEntryStore

if TYPE_CHECKING:
    from ..core.models import User
    from ..storage.base import TimeEntryStore

__all__ = ["DetailedReport", "ReportService"]

log = get_logger("reports")


@dataclass(frozen=True)
class DetailedReport:
    """Grouped report data plus a gap-filled history series.

    Attributes
    ----------
    data : AggregationResult
        Aggregation of the request, with descriptors
    history : AggregationResult
        Totals per calendar interval over the request range, every slot present
    """

    data: AggregationResult
    history: AggregationResult

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data.to_dict(), "history_data": self.history.to_dict()}


class ReportService:
    """Runs aggregation requests against a store.

    Parameters
    ----------
    store
        Recordset provider and rate scope source
    settings
        Defaults for fields a request leaves unset (default: ``Settings()``)
    """

    def __init__(self, store: TimeEntryStore, settings: Settings | None = None) -> None:
        self.store = store
        self.settings = settings or Settings()

    @classmethod
    def from_settings(cls, settings: Settings | None = None, *, enable_console: bool = True) -> ReportService:
        """Configure logging and open the SQLite store named by settings.

        Parameters
        ----------
        settings
            Settings to use (default: loaded from the environment)
        enable_console
            Also log to stderr

        Returns
        -------
        ReportService
            Service over the configured database
        """
        settings = settings or load_settings()
        configure_loguru(log_dir=settings.log_dir, level=settings.log_level, enable_console=enable_console)
        store = SQLiteTimeEntryStore(settings.database_path)
        log.info("Report service opened", database_path=str(settings.database_path))
        return cls(store, settings)

    def _with_defaults(self, request: AggregationRequest) -> AggregationRequest:
        explicit = request.model_fields_set
        update: dict[str, Any] = {}
        if "timezone" not in explicit:
            update["timezone"] = self.settings.default_timezone
        if "week_start" not in explicit:
            update["week_start"] = self.settings.default_week_start
        if "rate_source" not in explicit:
            update["rate_source"] = RateSource(self.settings.rate_source)
        if not self.settings.show_billable_rate:
            update["show_billable_rate"] = False
        return request.model_copy(update=update) if update else request

    def aggregate(
        self,
        request: AggregationRequest,
        *,
        now: datetime | None = None,
        with_descriptions: bool = False,
    ) -> AggregationResult:
        """Query, aggregate and optionally describe one request.

        Parameters
        ----------
        request
            Validated aggregation request
        now
            Instant running entries end at
        with_descriptions
            Attach names and colors to grouped keys

        Returns
        -------
        AggregationResult
            Consistent result tree
        """
        request = self._with_defaults(request)

        with timing_context(
            "report_aggregate",
            component="reports",
            organization_id=request.organization_id,
            rate_source=request.rate_source.value,
        ) as ctx:
            entries = self.store.query(TimeEntryFilter.from_request(request))
            rate_table = None
            if request.rate_source is RateSource.RESOLVED:
                rate_table = self.store.load_rate_scopes(request.organization_id)

            result = aggregate(
                entries,
                request.group,
                request.sub_group,
                request.timezone,
                request.week_start,
                request.fill_gaps,
                request.start,
                request.end,
                now=now,
                rate_table=rate_table,
                show_billable_rate=request.show_billable_rate,
            )
            ctx["entries"] = len(entries)

        if with_descriptions:
            result = describe(result, self.store.load_descriptors)
        return result

    def detailed_report(
        self,
        request: AggregationRequest,
        history_interval: TimeInterval | str,
        *,
        now: datetime | None = None,
    ) -> DetailedReport:
        """Build the grouped data and the history series of a report.

        Raises
        ------
        PreconditionError
            If the request has no complete range
        """
        if request.start is None or request.end is None:
            raise PreconditionError("A detailed report requires a start and an end")

        data_request = request.model_copy(update={"fill_gaps": False})
        history_request = request.model_copy(
            update={
                "group": Dimension.from_interval(history_interval),
                "sub_group": None,
                "fill_gaps": True,
            }
        )

        data = self.aggregate(data_request, now=now, with_descriptions=True)
        history = self.aggregate(history_request, now=now, with_descriptions=True)
        log.info(
            "Detailed report built",
            organization_id=request.organization_id,
            history_interval=TimeInterval(history_interval).value,
            seconds=data.seconds,
        )
        return DetailedReport(data=data, history=history)

    def timezone_for_user(self, user: User) -> str:
        """Timezone a user's reports are bucketed in; unknown zones fall back to UTC."""
        try:
            resolve_timezone(user.timezone)
        except PreconditionError:
            log.error("Timezone of user is invalid, falling back to UTC", user_id=user.id, timezone=user.timezone)
            return "UTC"
        return user.timezone
