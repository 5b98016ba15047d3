"""Time entry filtering."""

from .filter import Predicate, TimeEntryFilter

__all__ = ["Predicate", "TimeEntryFilter"]
