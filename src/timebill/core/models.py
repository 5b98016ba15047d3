"""Domain records consumed by aggregation and rate resolution.

All rates are integers in the smallest currency unit per hour.
All instants are aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from .time import ensure_timezone
from .weekday import Weekday

__all__ = [
    "Client",
    "Member",
    "Organization",
    "Project",
    "ProjectMember",
    "Task",
    "TimeEntry",
    "User",
]


@dataclass(frozen=True)
class Organization:
    id: str
    name: str
    billable_rate: int | None = None


@dataclass(frozen=True)
class User:
    id: str
    name: str
    timezone: str = "UTC"
    week_start: Weekday = Weekday.MONDAY


@dataclass(frozen=True)
class Member:
    """Membership of a user in an organization."""

    id: str
    organization_id: str
    user_id: str
    billable_rate: int | None = None


@dataclass(frozen=True)
class Client:
    id: str
    organization_id: str
    name: str


@dataclass(frozen=True)
class Project:
    id: str
    organization_id: str
    name: str
    color: str | None = None
    client_id: str | None = None
    billable_rate: int | None = None
    is_billable: bool = True


@dataclass(frozen=True)
class ProjectMember:
    """Membership of an organization member in a project."""

    id: str
    project_id: str
    member_id: str
    user_id: str
    billable_rate: int | None = None


@dataclass(frozen=True)
class Task:
    id: str
    project_id: str
    organization_id: str
    name: str


@dataclass(frozen=True)
class TimeEntry:
    """A tracked span of time.

    Attributes
    ----------
    start : datetime
        Start instant (UTC)
    end : datetime | None
        End instant (UTC), None while the entry is running
    billable_rate : int | None
        Resolved rate materialized at write time
    client_id : str | None
        Client of the project, derived when the entry is stored
    """

    id: str
    organization_id: str
    user_id: str
    member_id: str
    start: datetime
    end: datetime | None = None
    billable: bool = False
    billable_rate: int | None = None
    project_id: str | None = None
    task_id: str | None = None
    client_id: str | None = None
    description: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_timezone(self.start).astimezone(timezone.utc))
        if self.end is not None:
            object.__setattr__(self, "end", ensure_timezone(self.end).astimezone(timezone.utc))
            if self.end < self.start:
                raise ValueError(f"Time entry {self.id} ends before it starts")
        object.__setattr__(self, "tags", tuple(self.tags))

    @property
    def is_running(self) -> bool:
        return self.end is None

    def with_billable_rate(self, rate: int | None) -> TimeEntry:
        return replace(self, billable_rate=rate)
