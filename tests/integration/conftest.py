"""Fixtures for store-backed tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from timebill.core.models import Client, Member, Organization, Project, ProjectMember, Task, TimeEntry, User
from timebill.storage.sqlite import SQLiteTimeEntryStore

UTC = timezone.utc
DAY1 = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def store():
    """In-memory store with one organization, two users and two projects.

    Rates: organization 1000, alice's membership 2000, website project 3000,
    alice on website 4000. Bob has no rate overrides; the mobile project has
    no rate.
    """
    store = SQLiteTimeEntryStore(":memory:")
    store.add_organization(Organization("org-1", "Acme", billable_rate=1000))
    store.add_user(User("alice", "Alice", timezone="Europe/Vienna"))
    store.add_user(User("bob", "Bob", timezone="Not/AZone"))
    store.add_member(Member("m-alice", "org-1", "alice", billable_rate=2000))
    store.add_member(Member("m-bob", "org-1", "bob"))
    store.add_client(Client("c-1", "org-1", "Initech"))
    store.add_project(Project("website", "org-1", "Website", color="#ef5350", client_id="c-1", billable_rate=3000))
    store.add_project(Project("mobile", "org-1", "Mobile", color="#42a5f5"))
    store.add_project_member(ProjectMember("pm-alice-website", "website", "m-alice", "alice", billable_rate=4000))
    store.add_task(Task("t-1", "website", "org-1", "Landing page"))
    yield store
    store.close()


def make_entry(entry_id: str, user: str, start: datetime, hours: float, **fields) -> TimeEntry:
    return TimeEntry(
        id=entry_id,
        organization_id="org-1",
        user_id=user,
        member_id=f"m-{user}",
        start=start,
        end=start + timedelta(hours=hours),
        **fields,
    )


@pytest.fixture
def seeded(store):
    """Store with billable rates materialized on write."""
    entries = [
        make_entry("e-1", "alice", DAY1, 1, billable=True, project_id="website", task_id="t-1"),
        make_entry("e-2", "alice", DAY1 + timedelta(days=1), 2, billable=True, project_id="mobile"),
        make_entry("e-3", "bob", DAY1 + timedelta(days=1), 1, billable=True, project_id="website"),
        make_entry("e-4", "bob", DAY1 + timedelta(days=3), 0.5, billable=False, project_id="mobile"),
        make_entry("e-5", "bob", DAY1 + timedelta(days=3), 1, billable=True),
    ]
    for entry in entries:
        store.add_time_entry(entry, resolve_rate=True)
    return store
