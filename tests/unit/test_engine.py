"""Tests for the aggregation engine."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from timebill.aggregation.buckets import resolve_timezone
from timebill.aggregation.dimensions import Dimension
from timebill.aggregation.engine import (
    AggregationRequest,
    RateSource,
    aggregate,
    aggregate_request,
    entry_cost,
    entry_seconds,
)
from timebill.aggregation.errors import PreconditionError
from timebill.aggregation.result import BranchNode
from timebill.billing.rates import RateScopeTable
from timebill.core.weekday import Weekday

UTC = timezone.utc
NOW = datetime(2024, 1, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def four_days(entry_factory):
    """One hour per day on Jan 1-4, 2024."""
    return [
        entry_factory(
            datetime(2024, 1, day, 9, 0, tzinfo=UTC),
            datetime(2024, 1, day, 10, 0, tzinfo=UTC),
        )
        for day in range(1, 5)
    ]


class TestDurationAndCost:
    def test_running_entry_ends_now(self, entry_factory):
        """A running entry started 40 seconds before now."""
        entry = entry_factory(datetime(2024, 1, 1, tzinfo=UTC))

        result = aggregate([entry], now=datetime(2024, 1, 1, 0, 0, 40, tzinfo=UTC))

        assert result.seconds == 40

    def test_running_entry_started_after_now_is_zero(self, entry_factory):
        entry = entry_factory(NOW + timedelta(minutes=5))
        assert entry_seconds(entry, NOW) == 0

    def test_subsecond_durations_round_half_up(self, entry_factory):
        start = datetime(2024, 1, 1, tzinfo=UTC)
        assert entry_seconds(entry_factory(start, start + timedelta(seconds=1, microseconds=500_000)), NOW) == 2
        assert entry_seconds(entry_factory(start, start + timedelta(seconds=1, microseconds=499_999)), NOW) == 1

    @pytest.mark.parametrize(
        "seconds,rate,expected",
        [
            (3600, 10000, 10000),
            (5400, 3333, 5000),  # 4999.5 rounds up
            (1, 1, 0),
            (3600, None, 0),
            (3600, 0, 0),
        ],
    )
    def test_entry_cost(self, seconds, rate, expected):
        assert entry_cost(seconds, rate) == expected

    def test_cost_uses_each_entry_rate(self, entry_factory):
        start = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
        entries = [
            entry_factory(start, start + timedelta(hours=1), billable=True, billable_rate=5000),
            entry_factory(start, start + timedelta(minutes=30), billable=True, billable_rate=8000),
            entry_factory(start, start + timedelta(hours=2), billable=False),
        ]

        result = aggregate(entries, now=NOW)

        assert result.seconds == 3600 + 1800 + 7200
        assert result.cost == 5000 + 4000


class TestGrouping:
    def test_ungrouped_total(self, four_days):
        result = aggregate(four_days, now=NOW)

        assert result.to_dict() == {"seconds": 14400, "cost": 0, "grouped_type": None, "grouped_data": None}

    def test_group_by_day(self, four_days):
        result = aggregate(four_days, "day", now=NOW)

        assert result.grouped_type is Dimension.DAY
        assert result.keys == ["2024-01-01", "2024-01-02", "2024-01-03", "2024-01-04"]
        assert [node.seconds for node in result.grouped_data] == [3600] * 4

    def test_fill_gaps_over_range(self, four_days):
        result = aggregate(
            four_days,
            Dimension.DAY,
            fill_gaps=True,
            range_start=datetime(2024, 1, 1, tzinfo=UTC),
            range_end=datetime(2024, 1, 7, tzinfo=UTC),
            now=NOW,
        )

        assert result.keys == [f"2024-01-0{day}" for day in range(1, 7)]
        assert [node.seconds for node in result.grouped_data] == [3600, 3600, 3600, 3600, 0, 0]
        assert result.seconds == 14400
        assert result.is_consistent()

    def test_two_levels(self, entry_factory):
        start = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
        entries = [
            entry_factory(start, start + timedelta(hours=1), project_id="p-1", billable=True, billable_rate=100),
            entry_factory(start, start + timedelta(hours=2), project_id="p-1", billable=False),
            entry_factory(start + timedelta(days=1), start + timedelta(days=1, hours=1), project_id="p-2"),
        ]

        result = aggregate(entries, "project", "billable", now=NOW)

        assert result.keys == ["p-1", "p-2"]
        p1, p2 = result.grouped_data
        assert isinstance(p1, BranchNode)
        assert [(c.key, c.seconds, c.cost) for c in p1.children] == [("0", 7200, 0), ("1", 3600, 100)]
        assert p1.seconds == 10800
        assert p1.cost == 100
        assert [c.key for c in p2.children] == ["0"]
        assert result.is_consistent()

        leaf = result.to_dict()["grouped_data"][0]["grouped_data"][0]
        assert leaf["grouped_type"] is None
        assert leaf["grouped_data"] is None

    def test_missing_association_sorts_last(self, entry_factory):
        start = datetime(2024, 1, 1, tzinfo=UTC)
        entries = [
            entry_factory(start, start + timedelta(minutes=1), project_id="b"),
            entry_factory(start, start + timedelta(minutes=1)),
            entry_factory(start, start + timedelta(minutes=1), project_id="a"),
        ]

        result = aggregate(entries, "project", now=NOW)

        assert result.keys == ["a", "b", None]

    def test_group_by_week_in_timezone(self, entry_factory):
        entries = [
            # Sunday night UTC, Monday morning in Tokyo
            entry_factory(datetime(2024, 1, 7, 20, 0, tzinfo=UTC), datetime(2024, 1, 7, 21, 0, tzinfo=UTC)),
            entry_factory(datetime(2024, 1, 6, 20, 0, tzinfo=UTC), datetime(2024, 1, 6, 21, 0, tzinfo=UTC)),
        ]

        result = aggregate(entries, "week", timezone_str="Asia/Tokyo", week_start=Weekday.MONDAY, now=NOW)

        assert result.keys == ["2024-01-01", "2024-01-08"]

    def test_temporal_sub_group_fill(self, four_days):
        result = aggregate(
            four_days,
            "user",
            "day",
            fill_gaps=True,
            range_start=datetime(2024, 1, 1, tzinfo=UTC),
            range_end=datetime(2024, 1, 6, tzinfo=UTC),
            now=NOW,
        )

        (user,) = result.grouped_data
        assert [child.key for child in user.children] == [f"2024-01-0{day}" for day in range(1, 6)]
        assert user.seconds == 14400
        assert result.is_consistent()

    def test_out_of_range_entry_is_logged_and_dropped(self, four_days, entry_factory, log_records):
        entries = four_days + [
            entry_factory(datetime(2023, 12, 20, 9, 0, tzinfo=UTC), datetime(2023, 12, 20, 10, 0, tzinfo=UTC))
        ]

        result = aggregate(
            entries,
            "day",
            fill_gaps=True,
            range_start=datetime(2024, 1, 1, tzinfo=UTC),
            range_end=datetime(2024, 1, 5, tzinfo=UTC),
            now=NOW,
        )

        assert result.seconds == 14400
        assert result.is_consistent()
        assert any(
            r["level"].name == "ERROR" and r["extra"]["node"]["key"] == "2023-12-20" for r in log_records
        )

    def test_idempotent(self, four_days):
        first = aggregate(four_days, "week", "day", now=NOW)
        second = aggregate(four_days, "week", "day", now=NOW)

        assert first.to_json() == second.to_json()
        assert json.loads(first.to_json())["seconds"] == 14400


class TestRates:
    def test_hidden_cost_serializes_as_null(self, entry_factory):
        start = datetime(2024, 1, 1, tzinfo=UTC)
        entries = [entry_factory(start, start + timedelta(hours=1), billable=True, billable_rate=1000)]

        result = aggregate(entries, "day", show_billable_rate=False, now=NOW)

        data = result.to_dict()
        assert result.cost == 1000
        assert data["cost"] is None
        assert data["grouped_data"][0]["cost"] is None

    def test_resolved_rates_override_stored_rates(self, entry_factory):
        start = datetime(2024, 1, 1, tzinfo=UTC)
        entries = [entry_factory(start, start + timedelta(hours=1), billable=True, billable_rate=1000)]
        table = RateScopeTable(organizations={"org-1": 2500})

        assert aggregate(entries, now=NOW).cost == 1000
        assert aggregate(entries, now=NOW, rate_table=table).cost == 2500


class TestPreconditions:
    def test_sub_group_requires_group(self, four_days):
        with pytest.raises(PreconditionError, match="sub group"):
            aggregate(four_days, None, "day", now=NOW)

    def test_unknown_timezone(self, four_days):
        with pytest.raises(PreconditionError, match="Unknown timezone"):
            aggregate(four_days, "day", timezone_str="Not/AZone", now=NOW)

    def test_inverted_range(self, four_days):
        with pytest.raises(PreconditionError):
            aggregate(
                four_days,
                "day",
                range_start=datetime(2024, 1, 5, tzinfo=UTC),
                range_end=datetime(2024, 1, 1, tzinfo=UTC),
                now=NOW,
            )

    def test_fill_gaps_requires_range(self, four_days):
        with pytest.raises(PreconditionError, match="requires a start and an end"):
            aggregate(four_days, "day", fill_gaps=True, range_start=datetime(2024, 1, 1, tzinfo=UTC), now=NOW)

    @pytest.mark.parametrize("week_start", ["funday", 9, "8"])
    def test_unknown_week_start(self, four_days, week_start):
        with pytest.raises(PreconditionError, match="(?i)weekday"):
            aggregate(four_days, "week", week_start=week_start, now=NOW)

    def test_week_start_digit_string(self, four_days):
        by_index = aggregate(four_days, "week", week_start="0", now=NOW)
        by_name = aggregate(four_days, "week", week_start=Weekday.SUNDAY, now=NOW)

        assert by_index == by_name

    @pytest.mark.parametrize("name", ["UTC", "Europe/Vienna", "Asia/Kolkata", "Not/AZone", "", "../etc/passwd"])
    def test_timezone_check_agrees_with_bucketing(self, four_days, name):
        try:
            resolve_timezone(name)
        except PreconditionError:
            with pytest.raises(PreconditionError, match="Unknown timezone"):
                aggregate(four_days, "day", timezone_str=name, now=NOW)
        else:
            assert aggregate(four_days, "day", timezone_str=name, now=NOW).seconds == 4 * 3600

    def test_unknown_dimension(self, four_days):
        with pytest.raises(PreconditionError, match="Unknown grouping dimension"):
            aggregate(four_days, "weekday", now=NOW)

    def test_precondition_error_is_value_error(self):
        assert issubclass(PreconditionError, ValueError)


class TestAggregationRequest:
    def test_defaults(self):
        request = AggregationRequest()

        assert request.timezone == "UTC"
        assert request.week_start is Weekday.MONDAY
        assert request.rate_source is RateSource.STORED
        assert request.show_billable_rate is True

    def test_week_start_index(self):
        assert AggregationRequest(week_start=0).week_start is Weekday.SUNDAY
        assert AggregationRequest(week_start="Tuesday").week_start is Weekday.TUESDAY

    @pytest.mark.parametrize(
        "fields",
        [
            {"sub_group": "day"},
            {"timezone": "Nowhere/City"},
            {"group": "day", "fill_gaps": True},
            {"start": datetime(2024, 2, 1, tzinfo=UTC), "end": datetime(2024, 1, 1, tzinfo=UTC)},
            {"group": "weekday"},
            {"tag_ids": []},
            {"week_start": 9},
        ],
    )
    def test_invalid_requests(self, fields):
        with pytest.raises(ValidationError):
            AggregationRequest(**fields)

    def test_naive_bounds_are_utc(self):
        request = AggregationRequest(start=datetime(2024, 1, 1), end=datetime(2024, 1, 2))
        assert request.start.tzinfo is not None

    def test_aggregate_request_filters_entries(self, four_days, entry_factory):
        extra = entry_factory(
            datetime(2024, 1, 2, 9, 0, tzinfo=UTC),
            datetime(2024, 1, 2, 9, 30, tzinfo=UTC),
            billable=True,
            billable_rate=6000,
            organization_id="org-2",
        )
        request = AggregationRequest(
            group="day",
            organization_id="org-2",
            start=datetime(2024, 1, 1, tzinfo=UTC),
            end=datetime(2024, 1, 3, tzinfo=UTC),
            fill_gaps=True,
        )

        result = aggregate_request(four_days + [extra], request, now=NOW)

        assert result.keys == ["2024-01-01", "2024-01-02"]
        assert result.seconds == 1800
        assert result.cost == 3000

    def test_resolved_rate_source_requires_table(self, four_days):
        request = AggregationRequest(rate_source="resolved")
        with pytest.raises(PreconditionError, match="rate table"):
            aggregate_request(four_days, request, now=NOW)
