"""Gap filling for temporal groupings.

Reconciles a sparse aggregation against the dense sequence of calendar
slots between two instants, inserting zero-valued nodes for empty slots.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from ..core.time import ensure_timezone
from ..core.weekday import Weekday
from ..observability import get_logger
from .buckets import add_period, localize_wall_clock, resolve_timezone, start_of_period, to_wall_clock
from .dimensions import Dimension, TimeInterval
from .errors import PreconditionError
from .result import BranchNode, LeafNode

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .result import GroupNode

__all__ = ["GapFiller", "fill_gaps", "time_slots_between"]

log = get_logger("aggregation")


def _coerce_interval(interval: TimeInterval | Dimension | str) -> TimeInterval:
    if isinstance(interval, Dimension):
        resolved = interval.interval
        if resolved is None:
            raise PreconditionError(f"Invalid interval: {interval.value}")
        return resolved
    try:
        return TimeInterval(interval)
    except ValueError as exc:
        raise PreconditionError(f"Invalid interval: {interval!r}") from exc


def time_slots_between(
    start: datetime,
    end: datetime,
    timezone_str: str,
    week_start: Weekday | str | int,
    interval: TimeInterval | Dimension | str,
) -> list[str]:
    """List the bucket keys expected between two instants.

    Starts at the calendar-aligned start of the unit at or before ``start``
    in the target timezone and steps one unit at a time while the slot
    start is before ``end``.

    Raises
    ------
    PreconditionError
        If start is after end or the interval is not temporal

    Examples
    --------
    >>> from datetime import timezone
    >>> time_slots_between(
    ...     datetime(2024, 1, 1, tzinfo=timezone.utc),
    ...     datetime(2024, 1, 3, 12, tzinfo=timezone.utc),
    ...     "UTC", "monday", "day",
    ... )
    ['2024-01-01', '2024-01-02', '2024-01-03']
    """
    unit = _coerce_interval(interval)
    start = ensure_timezone(start)
    end = ensure_timezone(end)
    if start > end:
        raise PreconditionError("Start date must be before end date")

    tz = resolve_timezone(timezone_str)
    key_format = unit.key_format
    current = start_of_period(to_wall_clock(start, tz), unit, Weekday.coerce(week_start))

    slots: list[str] = []
    while localize_wall_clock(current, tz) < end:
        key = current.strftime(key_format)
        if not slots or slots[-1] != key:
            slots.append(key)
        current = add_period(current, unit)
    return slots


class GapFiller:
    """Fills gaps for one aggregation call.

    Slots are computed once per interval. Sparse nodes whose key is not an
    expected slot are logged and dropped; totals of enclosing nodes are
    re-folded from the surviving children so the tree stays consistent.
    """

    def __init__(
        self,
        timezone_str: str,
        week_start: Weekday | str | int,
        start: datetime,
        end: datetime,
    ) -> None:
        self.timezone_str = timezone_str
        self.week_start = Weekday.coerce(week_start)
        self.start = start
        self.end = end
        self._slots: dict[TimeInterval, list[str]] = {}

    def slots(self, interval: TimeInterval) -> list[str]:
        if interval not in self._slots:
            self._slots[interval] = time_slots_between(
                self.start, self.end, self.timezone_str, self.week_start, interval
            )
        return self._slots[interval]

    def fill(
        self,
        nodes: Sequence[GroupNode],
        group1: Dimension,
        group2: Dimension | None = None,
    ) -> tuple[GroupNode, ...]:
        interval = group1.interval
        if interval is None:
            if group2 is None or not group2.is_temporal:
                return tuple(nodes)
            return tuple(self._fill_children(node, group2) for node in nodes)

        slots = self.slots(interval)
        by_key = {node.key: node for node in nodes}

        filled: list[GroupNode] = []
        for slot in slots:
            node = by_key.get(slot)
            if node is None:
                filled.append(self._zero_node(slot, group2))
            elif group2 is not None and isinstance(node, BranchNode):
                filled.append(self._fill_children(node, group2))
            else:
                filled.append(node)

        expected = set(slots)
        for node in nodes:
            if node.key not in expected:
                log.error(
                    "Problem with filling gaps in time groups",
                    node=node.to_dict(),
                    grouped_type=group1.value,
                    timezone=self.timezone_str,
                )

        return tuple(filled)

    def _fill_children(self, node: GroupNode, group2: Dimension) -> GroupNode:
        if not isinstance(node, BranchNode):
            return node
        children = self.fill(node.children, group2, None)
        return node.with_children(children)  # type: ignore[arg-type]

    @staticmethod
    def _zero_node(key: str, group2: Dimension | None) -> GroupNode:
        if group2 is None:
            return LeafNode(key=key, seconds=0, cost=0)
        return BranchNode(key=key, seconds=0, cost=0, grouped_type=group2, children=())


def fill_gaps(
    nodes: Sequence[GroupNode],
    group1: Dimension,
    group2: Dimension | None,
    timezone_str: str,
    week_start: Weekday | str | int,
    start: datetime,
    end: datetime,
) -> tuple[GroupNode, ...]:
    """Fill gaps in a first-level node list.

    Parameters
    ----------
    nodes
        Sparse first-level nodes
    group1
        Dimension of ``nodes``; categorical levels pass through
    group2
        Dimension of the nodes' children, if any
    timezone_str
        Timezone the calendar is evaluated in
    week_start
        Day weeks start on
    start, end
        Global ``[start, end)`` range, reused for the second level

    Returns
    -------
    tuple
        Dense node list in slot order
    """
    return GapFiller(timezone_str, week_start, start, end).fill(nodes, group1, group2)
