"""Recordset provider interface."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..billing.rates import RateScopeReader

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ..aggregation.descriptors import Descriptor
    from ..aggregation.dimensions import Dimension
    from ..billing.rates import RateScopeTable
    from ..core.models import (
        Client,
        Member,
        Organization,
        Project,
        ProjectMember,
        Task,
        TimeEntry,
        User,
    )
    from ..query.filter import TimeEntryFilter

__all__ = ["EntityNotFoundError", "StorageError", "TimeEntryStore"]


class StorageError(Exception):
    """Raised when the backing store fails."""


class EntityNotFoundError(StorageError):
    """Raised when a requested row does not exist."""


class TimeEntryStore(RateScopeReader):
    """Base class for time entry stores.

    A store provides filtered recordsets, batch rate-scope loading,
    descriptor lookups and the administrative writes around them. It is also
    a ``RateScopeReader`` answering point lookups.
    """

    # Entities

    def add_organization(self, organization: Organization) -> Organization:
        raise NotImplementedError

    def add_user(self, user: User) -> User:
        raise NotImplementedError

    def add_member(self, member: Member) -> Member:
        raise NotImplementedError

    def add_client(self, client: Client) -> Client:
        raise NotImplementedError

    def add_project(self, project: Project) -> Project:
        raise NotImplementedError

    def add_project_member(self, project_member: ProjectMember) -> ProjectMember:
        raise NotImplementedError

    def add_task(self, task: Task) -> Task:
        raise NotImplementedError

    def add_time_entry(self, entry: TimeEntry, *, resolve_rate: bool = False) -> TimeEntry:
        """Store an entry.

        Parameters
        ----------
        entry
            Entry to store; its client is derived from its project
        resolve_rate
            Materialize the resolved billable rate on write

        Returns
        -------
        TimeEntry
            The entry as stored
        """
        raise NotImplementedError

    def get_user(self, user_id: str) -> User:
        raise NotImplementedError

    def get_member(self, member_id: str) -> Member:
        raise NotImplementedError

    def get_project(self, project_id: str) -> Project:
        raise NotImplementedError

    def get_project_member(self, project_member_id: str) -> ProjectMember:
        raise NotImplementedError

    def get_time_entry(self, entry_id: str) -> TimeEntry:
        raise NotImplementedError

    # Administrative rate updates (stored entry rates are left untouched)

    def update_organization_rate(self, organization_id: str, rate: int | None) -> None:
        raise NotImplementedError

    def update_member_rate(self, member_id: str, rate: int | None) -> None:
        raise NotImplementedError

    def update_project_rate(self, project_id: str, rate: int | None) -> None:
        raise NotImplementedError

    def update_project_member_rate(self, project_member_id: str, rate: int | None) -> None:
        raise NotImplementedError

    # Reads

    def query(self, entry_filter: TimeEntryFilter) -> list[TimeEntry]:
        """Return entries matching a filter, ordered by start."""
        raise NotImplementedError

    def load_rate_scopes(self, organization_id: str | None = None) -> RateScopeTable:
        """Batch-load the four rate scopes into an immutable table."""
        raise NotImplementedError

    def load_descriptors(self, dimension: Dimension, keys: list[str]) -> Mapping[str, Descriptor]:
        """Look up names (and project colors) for ids of a categorical dimension."""
        raise NotImplementedError

    def update_billable_rates(self, rates: Mapping[str, int | None]) -> int:
        """Write materialized rates by entry id; return the number of rows changed."""
        raise NotImplementedError
