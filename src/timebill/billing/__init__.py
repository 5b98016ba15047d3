"""Billable rate resolution and re-application."""

from .rates import RateResolver, RateScopeReader, RateScopeTable, resolve_rate
from .reapply import (
    update_time_entries_billable_rate_for_member,
    update_time_entries_billable_rate_for_organization,
    update_time_entries_billable_rate_for_project,
    update_time_entries_billable_rate_for_project_member,
)

__all__ = [
    "RateResolver",
    "RateScopeReader",
    "RateScopeTable",
    "resolve_rate",
    "update_time_entries_billable_rate_for_member",
    "update_time_entries_billable_rate_for_organization",
    "update_time_entries_billable_rate_for_project",
    "update_time_entries_billable_rate_for_project_member",
]
