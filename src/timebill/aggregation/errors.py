"""Aggregation error taxonomy."""

from __future__ import annotations

__all__ = ["AggregationError", "PreconditionError"]


class AggregationError(Exception):
    """Base class for aggregation failures."""


class PreconditionError(AggregationError, ValueError):
    """Raised when a request is rejected before any computation.

    Examples: an inverted range, gap filling without a range, a sub-group
    without a group, an unknown timezone.
    """
