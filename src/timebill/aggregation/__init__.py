"""Time entry aggregation: bucketing, grouping and gap filling."""

from .buckets import CalendarBucketer, bucket_key, categorical_key, get_week_start
from .descriptors import Descriptor, describe
from .dimensions import Dimension, TimeInterval
from .engine import (
    AggregationRequest,
    RateSource,
    aggregate,
    aggregate_request,
    entry_cost,
    entry_seconds,
)
from .errors import AggregationError, PreconditionError
from .gaps import GapFiller, fill_gaps, time_slots_between
from .result import AggregationResult, BranchNode, LeafNode

__all__ = [
    # Dimensions
    "Dimension",
    "TimeInterval",
    # Bucketing
    "CalendarBucketer",
    "bucket_key",
    "categorical_key",
    "get_week_start",
    # Aggregation
    "AggregationRequest",
    "AggregationResult",
    "BranchNode",
    "LeafNode",
    "RateSource",
    "aggregate",
    "aggregate_request",
    "entry_cost",
    "entry_seconds",
    # Gap filling
    "GapFiller",
    "fill_gaps",
    "time_slots_between",
    # Descriptors
    "Descriptor",
    "describe",
    # Errors
    "AggregationError",
    "PreconditionError",
]
