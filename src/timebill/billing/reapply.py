"""Apply changed scope rates to already stored time entries.

Stored entry rates are a snapshot taken when the entry was written. A rate
change at some scope does not touch them; these explicit actions recompute
the rate of every entry the scope covers and write back the ones that
changed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..observability import get_logger, timing_context
from ..query.filter import TimeEntryFilter
from .rates import RateResolver

if TYPE_CHECKING:
    from ..core.models import Member, Project, ProjectMember
    from ..storage.base import TimeEntryStore

__all__ = [
    "reapply_billable_rates",
    "update_time_entries_billable_rate_for_member",
    "update_time_entries_billable_rate_for_organization",
    "update_time_entries_billable_rate_for_project",
    "update_time_entries_billable_rate_for_project_member",
]

log = get_logger("billing")


def reapply_billable_rates(store: TimeEntryStore, organization_id: str, entry_filter: TimeEntryFilter) -> int:
    """Re-resolve the rates of the entries matching a filter.

    Parameters
    ----------
    store
        Store providing entries and rate scopes
    organization_id
        Organization whose rate scopes are loaded
    entry_filter
        Selects the affected entries

    Returns
    -------
    int
        Number of entries whose stored rate changed
    """
    with timing_context("reapply_billable_rates", component="billing", filter=repr(entry_filter)) as ctx:
        resolver = RateResolver(store.load_rate_scopes(organization_id))
        entries = store.query(entry_filter)

        changed = {
            entry.id: rate
            for entry, rate in ((entry, resolver.resolve(entry)) for entry in entries)
            if rate != entry.billable_rate
        }
        updated = store.update_billable_rates(changed)

        ctx["entries"] = len(entries)
        ctx["updated"] = updated

    log.info(
        "Billable rates re-applied",
        organization_id=organization_id,
        entries=len(entries),
        updated=updated,
    )
    return updated


def update_time_entries_billable_rate_for_organization(store: TimeEntryStore, organization_id: str) -> int:
    """Re-apply rates to every entry of an organization."""
    return reapply_billable_rates(
        store,
        organization_id,
        TimeEntryFilter().add_organization(organization_id),
    )


def update_time_entries_billable_rate_for_member(store: TimeEntryStore, member: Member) -> int:
    """Re-apply rates to the entries of one organization member."""
    return reapply_billable_rates(
        store,
        member.organization_id,
        TimeEntryFilter().add_organization(member.organization_id).add_member_id(member.id),
    )


def update_time_entries_billable_rate_for_project(store: TimeEntryStore, project: Project) -> int:
    """Re-apply rates to the entries booked on a project."""
    return reapply_billable_rates(
        store,
        project.organization_id,
        TimeEntryFilter().add_organization(project.organization_id).add_project_ids([project.id]),
    )


def update_time_entries_billable_rate_for_project_member(
    store: TimeEntryStore, project_member: ProjectMember
) -> int:
    """Re-apply rates to one member's entries on one project."""
    project = store.get_project(project_member.project_id)
    return reapply_billable_rates(
        store,
        project.organization_id,
        TimeEntryFilter()
        .add_organization(project.organization_id)
        .add_member_id(project_member.member_id)
        .add_project_ids([project_member.project_id]),
    )
