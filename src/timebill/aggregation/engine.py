"""Time entry aggregation.

Groups a filtered recordset by up to two dimensions and sums duration
(whole seconds) and cost (smallest currency unit) per group, optionally
gap-filling temporal groups over a range.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..billing.rates import resolve_rate
from ..core.time import ensure_timezone, get_current_utc, whole_seconds
from ..core.weekday import Weekday
from ..observability import timing_context
from ..query.filter import TimeEntryFilter
from .buckets import CalendarBucketer, resolve_timezone
from .dimensions import Dimension
from .errors import PreconditionError
from .gaps import GapFiller
from .result import AggregationResult, BranchNode, GroupNode, LeafNode

if TYPE_CHECKING:
    from ..billing.rates import RateScopeReader
    from ..core.models import TimeEntry

__all__ = [
    "AggregationRequest",
    "RateSource",
    "aggregate",
    "aggregate_request",
    "entry_cost",
    "entry_seconds",
    "validate_preconditions",
]


class RateSource(str, Enum):
    """Where the per-entry rate used for cost comes from."""

    STORED = "stored"
    RESOLVED = "resolved"


def validate_preconditions(
    group1: Dimension | None,
    group2: Dimension | None,
    timezone_str: str,
    fill_gaps: bool,
    range_start: datetime | None,
    range_end: datetime | None,
    week_start: Weekday | str | int = Weekday.MONDAY,
) -> Weekday:
    """Reject requests that cannot be computed.

    Returns
    -------
    Weekday
        The coerced week start

    Raises
    ------
    PreconditionError
        On a sub-group without a group, an unknown timezone, an unknown
        week start, an inverted range, or gap filling without a complete range
    """
    if group2 is not None and group1 is None:
        raise PreconditionError("A sub group requires a group")
    resolve_timezone(timezone_str)
    try:
        week_start = Weekday.coerce(week_start)
    except ValueError as exc:
        raise PreconditionError(str(exc)) from exc
    if range_start is not None and range_end is not None:
        if ensure_timezone(range_start) > ensure_timezone(range_end):
            raise PreconditionError("Start date must be before end date")
    if fill_gaps and (range_start is None or range_end is None):
        raise PreconditionError("Filling gaps in time groups requires a start and an end")
    return week_start


class AggregationRequest(BaseModel):
    """Validated aggregation request.

    Filter fields mirror ``TimeEntryFilter``; id lists are OR-combined and
    must not be empty when given.
    """

    model_config = ConfigDict(frozen=True)

    group: Dimension | None = Field(None, description="First grouping dimension")
    sub_group: Dimension | None = Field(None, description="Second grouping dimension")
    timezone: str = Field("UTC", description="IANA timezone for calendar buckets")
    week_start: Weekday = Field(Weekday.MONDAY, description="Day weeks start on")
    fill_gaps: bool = Field(False, description="Insert zero buckets for empty time slots")
    start: datetime | None = Field(None, description="Inclusive lower bound of entry start")
    end: datetime | None = Field(None, description="Exclusive upper bound of entry start")
    show_billable_rate: bool = Field(True, description="Serialize cost, or null it out")
    rate_source: RateSource = Field(RateSource.STORED, description="Stored or live-resolved rates")

    organization_id: str | None = None
    member_id: str | None = None
    user_id: str | None = None
    member_ids: list[str] | None = Field(None, min_length=1)
    project_ids: list[str] | None = Field(None, min_length=1)
    client_ids: list[str] | None = Field(None, min_length=1)
    tag_ids: list[str] | None = Field(None, min_length=1)
    task_ids: list[str] | None = Field(None, min_length=1)
    active: bool | None = None
    billable: bool | None = None

    @field_validator("week_start", mode="before")
    @classmethod
    def coerce_week_start(cls, v: object) -> Weekday:
        """Accept names and 0=Sunday indexes."""
        return Weekday.coerce(v)  # type: ignore[arg-type]

    @field_validator("start", "end")
    @classmethod
    def ensure_aware(cls, v: datetime | None) -> datetime | None:
        """Naive instants are taken as UTC."""
        return ensure_timezone(v) if v is not None else None

    @model_validator(mode="after")
    def check_preconditions(self) -> AggregationRequest:
        validate_preconditions(
            self.group, self.sub_group, self.timezone, self.fill_gaps, self.start, self.end, self.week_start
        )
        return self


def entry_seconds(entry: TimeEntry, now: datetime) -> int:
    """Whole seconds tracked by an entry; running entries end at ``now``."""
    end = entry.end if entry.end is not None else now
    return whole_seconds(end - entry.start)


def entry_cost(seconds: int, rate: int | None) -> int:
    """Cost of a duration at an hourly rate, rounded half up to an integer."""
    if not rate:
        return 0
    return (seconds * rate + 1800) // 3600


def _coerce_dimension(value: Dimension | str | None) -> Dimension | None:
    if value is None:
        return None
    try:
        return Dimension(value)
    except ValueError as exc:
        raise PreconditionError(f"Unknown grouping dimension: {value!r}") from exc


def _sort_keys(keys: Iterable[str | None]) -> list[str | None]:
    return sorted(keys, key=lambda key: (key is None, key or ""))


def aggregate(
    entries: Iterable[TimeEntry],
    group1: Dimension | str | None = None,
    group2: Dimension | str | None = None,
    timezone_str: str = "UTC",
    week_start: Weekday | str | int = Weekday.MONDAY,
    fill_gaps: bool = False,
    range_start: datetime | None = None,
    range_end: datetime | None = None,
    *,
    now: datetime | None = None,
    rate_table: RateScopeReader | None = None,
    show_billable_rate: bool = True,
) -> AggregationResult:
    """Aggregate a filtered recordset into a result tree.

    Parameters
    ----------
    entries
        Time entries that already passed the request's filter
    group1
        First grouping dimension (None for a single total)
    group2
        Second grouping dimension (requires ``group1``)
    timezone_str
        IANA timezone for calendar buckets
    week_start
        Day weeks start on
    fill_gaps
        Insert zero nodes for empty temporal slots (requires a range)
    range_start, range_end
        ``[start, end)`` range used for gap filling
    now
        Instant running entries end at (default: current time, taken once)
    rate_table
        Resolve rates live through these lookups instead of using the
        stored ``billable_rate``
    show_billable_rate
        Serialize cost; hidden costs still add up internally

    Returns
    -------
    AggregationResult
        Root node; its totals equal the sum of its children

    Raises
    ------
    PreconditionError
        If the request cannot be computed
    """
    group1 = _coerce_dimension(group1)
    group2 = _coerce_dimension(group2)
    week_start = validate_preconditions(group1, group2, timezone_str, fill_gaps, range_start, range_end, week_start)

    now = ensure_timezone(now) if now is not None else get_current_utc()
    bucketer = CalendarBucketer(timezone_str, week_start, now=now)

    with timing_context(
        "aggregate",
        component="aggregation",
        group=group1.value if group1 else None,
        sub_group=group2.value if group2 else None,
        timezone=timezone_str,
        fill_gaps=fill_gaps,
    ) as ctx:
        total_seconds = 0
        total_cost = 0
        sums: dict[str | None, dict[str | None, list[int]]] = defaultdict(
            lambda: defaultdict(lambda: [0, 0])
        )
        count = 0

        for entry in entries:
            count += 1
            seconds = entry_seconds(entry, now)
            rate = resolve_rate(entry, rate_table) if rate_table is not None else entry.billable_rate
            cost = entry_cost(seconds, rate)

            if group1 is None:
                total_seconds += seconds
                total_cost += cost
                continue

            key1 = bucketer.key_for(entry, group1)
            key2 = bucketer.key_for(entry, group2) if group2 is not None else None
            bucket = sums[key1][key2]
            bucket[0] += seconds
            bucket[1] += cost

        ctx["entries"] = count

        if group1 is None:
            return AggregationResult(
                seconds=total_seconds,
                cost=total_cost,
                show_cost=show_billable_rate,
            )

        nodes: list[GroupNode] = []
        for key1 in _sort_keys(sums):
            inner = sums[key1]
            if group2 is None:
                seconds, cost = inner[None]
                nodes.append(LeafNode(key=key1, seconds=seconds, cost=cost))
            else:
                children = [
                    LeafNode(key=key2, seconds=inner[key2][0], cost=inner[key2][1])
                    for key2 in _sort_keys(inner)
                ]
                nodes.append(BranchNode.from_children(key1, group2, children))

        if fill_gaps:
            filler = GapFiller(timezone_str, bucketer.week_start, range_start, range_end)  # type: ignore[arg-type]
            nodes = list(filler.fill(nodes, group1, group2))

        ctx["nodes"] = len(nodes)
        return AggregationResult.from_nodes(group1, nodes, show_cost=show_billable_rate)


def aggregate_request(
    entries: Iterable[TimeEntry],
    request: AggregationRequest,
    *,
    now: datetime | None = None,
    rate_table: RateScopeReader | None = None,
) -> AggregationResult:
    """Filter an in-process recordset by a request, then aggregate it.

    Raises
    ------
    PreconditionError
        If the request asks for resolved rates without a rate table
    """
    if request.rate_source is RateSource.RESOLVED and rate_table is None:
        raise PreconditionError("Resolved rates require a rate table")

    entry_filter = TimeEntryFilter.from_request(request)
    return aggregate(
        entry_filter.apply(entries),
        request.group,
        request.sub_group,
        request.timezone,
        request.week_start,
        request.fill_gaps,
        request.start,
        request.end,
        now=now,
        rate_table=rate_table if request.rate_source is RateSource.RESOLVED else None,
        show_billable_rate=request.show_billable_rate,
    )
