"""Composable time entry predicates.

Each predicate can be evaluated in-process against a ``TimeEntry`` or
rendered to a SQL fragment over the ``time_entries`` table, so the same
filter serves materialized recordsets and the SQLite store.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..core.time import ensure_timezone, format_db_timestamp, parse_api_datetime
from ..observability import get_logger

if TYPE_CHECKING:
    from ..core.models import TimeEntry

__all__ = ["Predicate", "TimeEntryFilter"]

log = get_logger("query")


@dataclass(frozen=True)
class Predicate:
    """A single filter condition.

    Attributes
    ----------
    name : str
        Short label used in logs and reprs
    sql : str
        SQL fragment over ``time_entries`` with ``?`` placeholders
    params : tuple
        Values bound to the placeholders
    test : Callable
        In-process evaluation of the same condition
    """

    name: str
    sql: str
    params: tuple[Any, ...]
    test: Callable[[TimeEntry], bool]


def _in_clause(column: str, values: list[str]) -> tuple[str, tuple[Any, ...]]:
    if not values:
        return "1 = 0", ()
    placeholders = ", ".join("?" for _ in values)
    return f"{column} IN ({placeholders})", tuple(values)


def _parse_flag(value: str) -> bool | None:
    if value == "true":
        return True
    if value == "false":
        return False
    return None


class TimeEntryFilter:
    """Builder for the predicate set applied before aggregation.

    Every ``add_*`` method returns the filter and ignores ``None``. Id list
    filters are OR-combined within the list; all predicates are AND-combined.

    Example
    -------
    >>> entry_filter = (
    ...     TimeEntryFilter()
    ...     .add_organization("org-1")
    ...     .add_billable(True)
    ...     .add_project_ids(["p-1", "p-2"])
    ... )
    >>> where, params = entry_filter.to_sql()
    """

    def __init__(self) -> None:
        self._predicates: list[Predicate] = []

    def _add(self, predicate: Predicate) -> TimeEntryFilter:
        self._predicates.append(predicate)
        return self

    # Range

    def add_start(self, start: datetime | None) -> TimeEntryFilter:
        """Keep entries starting at or after ``start``."""
        if start is None:
            return self
        start = ensure_timezone(start)
        return self._add(
            Predicate("start", "start >= ?", (format_db_timestamp(start),), lambda e: e.start >= start)
        )

    def add_end(self, end: datetime | None) -> TimeEntryFilter:
        """Keep entries starting before ``end``."""
        if end is None:
            return self
        end = ensure_timezone(end)
        return self._add(Predicate("end", "start < ?", (format_db_timestamp(end),), lambda e: e.start < end))

    def add_start_filter(self, value: str | None) -> TimeEntryFilter:
        """Parse a ``YYYY-MM-DDTHH:MM:SSZ`` start bound."""
        if value is None:
            return self
        return self.add_start(parse_api_datetime(value))

    def add_end_filter(self, value: str | None) -> TimeEntryFilter:
        """Parse a ``YYYY-MM-DDTHH:MM:SSZ`` end bound."""
        if value is None:
            return self
        return self.add_end(parse_api_datetime(value))

    # Flags

    def add_active(self, active: bool | None) -> TimeEntryFilter:
        """Keep running (``True``) or finished (``False``) entries."""
        if active is None:
            return self
        if active:
            return self._add(Predicate("active", '"end" IS NULL', (), lambda e: e.end is None))
        return self._add(Predicate("inactive", '"end" IS NOT NULL', (), lambda e: e.end is not None))

    def add_active_filter(self, value: str | None) -> TimeEntryFilter:
        if value is None:
            return self
        flag = _parse_flag(value)
        if flag is None:
            log.warning("Invalid active filter value", value=value)
            return self
        return self.add_active(flag)

    def add_billable(self, billable: bool | None) -> TimeEntryFilter:
        if billable is None:
            return self
        return self._add(
            Predicate("billable", "billable = ?", (1 if billable else 0,), lambda e: e.billable == billable)
        )

    def add_billable_filter(self, value: str | None) -> TimeEntryFilter:
        if value is None:
            return self
        flag = _parse_flag(value)
        if flag is None:
            log.warning("Invalid billable filter value", value=value)
            return self
        return self.add_billable(flag)

    # Identity

    def add_organization(self, organization_id: str | None) -> TimeEntryFilter:
        if organization_id is None:
            return self
        return self._add(
            Predicate(
                "organization",
                "organization_id = ?",
                (organization_id,),
                lambda e: e.organization_id == organization_id,
            )
        )

    def add_member_id(self, member_id: str | None) -> TimeEntryFilter:
        if member_id is None:
            return self
        return self._add(
            Predicate("member", "member_id = ?", (member_id,), lambda e: e.member_id == member_id)
        )

    def add_user_id(self, user_id: str | None) -> TimeEntryFilter:
        if user_id is None:
            return self
        return self._add(Predicate("user", "user_id = ?", (user_id,), lambda e: e.user_id == user_id))

    def _add_ids(self, name: str, column: str, ids: Iterable[str] | None) -> TimeEntryFilter:
        if ids is None:
            return self
        values = list(ids)
        allowed = frozenset(values)
        sql, params = _in_clause(column, values)
        return self._add(Predicate(name, sql, params, lambda e: getattr(e, column) in allowed))

    def add_member_ids(self, member_ids: Iterable[str] | None) -> TimeEntryFilter:
        return self._add_ids("member_ids", "member_id", member_ids)

    def add_project_ids(self, project_ids: Iterable[str] | None) -> TimeEntryFilter:
        return self._add_ids("project_ids", "project_id", project_ids)

    def add_client_ids(self, client_ids: Iterable[str] | None) -> TimeEntryFilter:
        return self._add_ids("client_ids", "client_id", client_ids)

    def add_task_ids(self, task_ids: Iterable[str] | None) -> TimeEntryFilter:
        return self._add_ids("task_ids", "task_id", task_ids)

    def add_tag_ids(self, tag_ids: Iterable[str] | None) -> TimeEntryFilter:
        """Keep entries carrying at least one of the tags."""
        if tag_ids is None:
            return self
        values = list(tag_ids)
        wanted = frozenset(values)
        if not values:
            sql, params = "1 = 0", ()
        else:
            placeholders = ", ".join("?" for _ in values)
            sql = f"EXISTS (SELECT 1 FROM json_each(time_entries.tags) WHERE json_each.value IN ({placeholders}))"
            params = tuple(values)
        return self._add(Predicate("tag_ids", sql, params, lambda e: not wanted.isdisjoint(e.tags)))

    # Evaluation

    @property
    def predicates(self) -> tuple[Predicate, ...]:
        return tuple(self._predicates)

    def matches(self, entry: TimeEntry) -> bool:
        return all(predicate.test(entry) for predicate in self._predicates)

    def apply(self, entries: Iterable[TimeEntry]) -> Iterator[TimeEntry]:
        """Lazily keep the entries that match every predicate."""
        return (entry for entry in entries if self.matches(entry))

    def to_sql(self) -> tuple[str, tuple[Any, ...]]:
        """Render a WHERE clause (without the keyword) and its parameters."""
        if not self._predicates:
            return "1 = 1", ()
        clause = " AND ".join(f"({predicate.sql})" for predicate in self._predicates)
        params: tuple[Any, ...] = ()
        for predicate in self._predicates:
            params += predicate.params
        return clause, params

    @classmethod
    def from_request(cls, request: Any) -> TimeEntryFilter:
        """Build the filter described by an ``AggregationRequest``."""
        return (
            cls()
            .add_organization(request.organization_id)
            .add_start(request.start)
            .add_end(request.end)
            .add_active(request.active)
            .add_billable(request.billable)
            .add_member_id(request.member_id)
            .add_member_ids(request.member_ids)
            .add_user_id(request.user_id)
            .add_project_ids(request.project_ids)
            .add_client_ids(request.client_ids)
            .add_tag_ids(request.tag_ids)
            .add_task_ids(request.task_ids)
        )

    def __repr__(self) -> str:
        names = ", ".join(predicate.name for predicate in self._predicates)
        return f"TimeEntryFilter({names})"
