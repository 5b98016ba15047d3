"""Billable rate resolution.

A billable time entry takes the first non-null rate of, in order:

1. its project membership (user in project)
2. its project
3. its organization membership (user in organization)
4. its organization

A missing row is treated exactly like a null rate at that scope.
Non-billable entries never carry a rate.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..core.models import Member, Organization, Project, ProjectMember, TimeEntry

__all__ = [
    "RateResolver",
    "RateScopeReader",
    "RateScopeTable",
    "resolve_rate",
]


class RateScopeReader:
    """Point lookups of the four rate scopes.

    Each lookup returns the rate or None when the rate is unset or the row
    does not exist.
    """

    def project_membership_rate(self, user_id: str, project_id: str) -> int | None:
        raise NotImplementedError

    def project_rate(self, project_id: str) -> int | None:
        raise NotImplementedError

    def organization_membership_rate(self, user_id: str, organization_id: str) -> int | None:
        raise NotImplementedError

    def organization_rate(self, organization_id: str) -> int | None:
        raise NotImplementedError


class RateScopeTable(RateScopeReader):
    """Immutable, batch-loaded rate lookups for one aggregation call.

    Attributes
    ----------
    project_members : Mapping[tuple[str, str], int | None]
        (user_id, project_id) -> rate
    projects : Mapping[str, int | None]
        project_id -> rate
    members : Mapping[tuple[str, str], int | None]
        (user_id, organization_id) -> rate
    organizations : Mapping[str, int | None]
        organization_id -> rate
    """

    def __init__(
        self,
        project_members: Mapping[tuple[str, str], int | None] | None = None,
        projects: Mapping[str, int | None] | None = None,
        members: Mapping[tuple[str, str], int | None] | None = None,
        organizations: Mapping[str, int | None] | None = None,
    ) -> None:
        self.project_members = MappingProxyType(dict(project_members or {}))
        self.projects = MappingProxyType(dict(projects or {}))
        self.members = MappingProxyType(dict(members or {}))
        self.organizations = MappingProxyType(dict(organizations or {}))

    @classmethod
    def from_models(
        cls,
        *,
        organizations: Iterable[Organization] = (),
        members: Iterable[Member] = (),
        projects: Iterable[Project] = (),
        project_members: Iterable[ProjectMember] = (),
    ) -> RateScopeTable:
        return cls(
            project_members={(pm.user_id, pm.project_id): pm.billable_rate for pm in project_members},
            projects={p.id: p.billable_rate for p in projects},
            members={(m.user_id, m.organization_id): m.billable_rate for m in members},
            organizations={o.id: o.billable_rate for o in organizations},
        )

    def project_membership_rate(self, user_id: str, project_id: str) -> int | None:
        return self.project_members.get((user_id, project_id))

    def project_rate(self, project_id: str) -> int | None:
        return self.projects.get(project_id)

    def organization_membership_rate(self, user_id: str, organization_id: str) -> int | None:
        return self.members.get((user_id, organization_id))

    def organization_rate(self, organization_id: str) -> int | None:
        return self.organizations.get(organization_id)

    def __len__(self) -> int:
        return len(self.project_members) + len(self.projects) + len(self.members) + len(self.organizations)


def resolve_rate(entry: TimeEntry, reader: RateScopeReader) -> int | None:
    """Resolve the billable rate of a time entry.

    Parameters
    ----------
    entry
        Time entry to resolve
    reader
        Rate scope lookups

    Returns
    -------
    int | None
        Rate per hour in the smallest currency unit, or None
    """
    if not entry.billable:
        return None

    if entry.project_id is not None:
        rate = reader.project_membership_rate(entry.user_id, entry.project_id)
        if rate is not None:
            return rate

        rate = reader.project_rate(entry.project_id)
        if rate is not None:
            return rate

    rate = reader.organization_membership_rate(entry.user_id, entry.organization_id)
    if rate is not None:
        return rate

    return reader.organization_rate(entry.organization_id)


class RateResolver:
    """Resolves rates against a fixed reader; never mutates state."""

    def __init__(self, reader: RateScopeReader) -> None:
        self.reader = reader

    def resolve(self, entry: TimeEntry) -> int | None:
        return resolve_rate(entry, self.reader)

    def resolve_many(self, entries: Iterable[TimeEntry]) -> dict[str, int | None]:
        """Resolve a batch of entries, keyed by entry id."""
        return {entry.id: resolve_rate(entry, self.reader) for entry in entries}
