"""Tests for time entry filters.

In-process evaluation and the SQL rendering must select the same entries.
"""

from datetime import datetime, timedelta, timezone

import pytest

from timebill.core.models import Client, Organization, Project
from timebill.query.filter import TimeEntryFilter
from timebill.storage.sqlite import SQLiteTimeEntryStore

UTC = timezone.utc
BASE = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def store():
    store = SQLiteTimeEntryStore(":memory:")
    store.add_organization(Organization("org-1", "Acme"))
    store.add_organization(Organization("org-2", "Globex"))
    store.add_client(Client("c-1", "org-2", "Initech"))
    store.add_project(Project("p-1", "org-1", "Website"))
    store.add_project(Project("p-2", "org-1", "Mobile"))
    store.add_project(Project("p-3", "org-2", "Audit", client_id="c-1"))
    yield store
    store.close()


@pytest.fixture
def entries(store, entry_factory):
    """Entries as stored, so derived clients match on both sides."""
    return [
        store.add_time_entry(entry)
        for entry in (
            entry_factory(BASE, BASE + timedelta(hours=1), billable=True, project_id="p-1", tags=("t-1",)),
            entry_factory(BASE + timedelta(days=1), None, member_id="member-2", user_id="user-2", project_id="p-2"),
            entry_factory(
                BASE + timedelta(days=2), BASE + timedelta(days=2, hours=1), task_id="task-1", tags=("t-2", "t-3")
            ),
            entry_factory(
                BASE + timedelta(days=3), BASE + timedelta(days=3, hours=2), organization_id="org-2", project_id="p-3"
            ),
        )
    ]


FILTERS = {
    "empty": lambda: TimeEntryFilter(),
    "start": lambda: TimeEntryFilter().add_start(BASE + timedelta(days=1)),
    "end": lambda: TimeEntryFilter().add_end(BASE + timedelta(days=2)),
    "range": lambda: TimeEntryFilter().add_start_filter("2024-01-02T00:00:00Z").add_end_filter("2024-01-04T00:00:00Z"),
    "active": lambda: TimeEntryFilter().add_active(True),
    "inactive": lambda: TimeEntryFilter().add_active_filter("false"),
    "billable": lambda: TimeEntryFilter().add_billable(True),
    "non-billable": lambda: TimeEntryFilter().add_billable_filter("false"),
    "organization": lambda: TimeEntryFilter().add_organization("org-2"),
    "member": lambda: TimeEntryFilter().add_member_id("member-2"),
    "user": lambda: TimeEntryFilter().add_user_id("user-1"),
    "member-ids": lambda: TimeEntryFilter().add_member_ids(["member-2", "member-9"]),
    "project-ids": lambda: TimeEntryFilter().add_project_ids(["p-1", "p-2"]),
    "client-ids": lambda: TimeEntryFilter().add_client_ids(["c-1"]),
    "task-ids": lambda: TimeEntryFilter().add_task_ids(["task-1"]),
    "tag-ids": lambda: TimeEntryFilter().add_tag_ids(["t-3", "t-1"]),
    "empty-ids": lambda: TimeEntryFilter().add_project_ids([]),
    "combined": lambda: TimeEntryFilter().add_organization("org-1").add_billable(False).add_active(False),
}


@pytest.mark.parametrize("name", sorted(FILTERS))
def test_sql_and_in_process_agree(name, entries, store):
    entry_filter = FILTERS[name]()

    in_process = {entry.id for entry in entry_filter.apply(entries)}
    in_sql = {entry.id for entry in store.query(entry_filter)}

    assert in_process == in_sql


def test_start_bound_is_inclusive(entries):
    selected = list(TimeEntryFilter().add_start(BASE).apply(entries))
    assert entries[0] in selected


def test_end_bound_is_exclusive(entries):
    selected = list(TimeEntryFilter().add_end(BASE + timedelta(days=1)).apply(entries))
    assert [entry.id for entry in selected] == [entries[0].id]


def test_tags_match_any(entries):
    selected = [entry.id for entry in TimeEntryFilter().add_tag_ids(["t-2"]).apply(entries)]
    assert selected == [entries[2].id]


def test_none_values_add_nothing():
    entry_filter = (
        TimeEntryFilter()
        .add_start(None)
        .add_end(None)
        .add_active(None)
        .add_billable(None)
        .add_project_ids(None)
        .add_tag_ids(None)
    )
    assert entry_filter.predicates == ()
    assert entry_filter.to_sql() == ("1 = 1", ())


@pytest.mark.parametrize("method", ["add_active_filter", "add_billable_filter"])
def test_invalid_flag_is_logged_and_ignored(method, log_records):
    entry_filter = getattr(TimeEntryFilter(), method)("maybe")

    assert entry_filter.predicates == ()
    warnings = [r for r in log_records if r["level"].name == "WARNING"]
    assert warnings[0]["extra"]["value"] == "maybe"
    assert warnings[0]["extra"]["component"] == "query"


def test_invalid_datetime_filter_is_rejected():
    with pytest.raises(ValueError):
        TimeEntryFilter().add_start_filter("2024-01-01 00:00")


def test_to_sql_joins_predicates():
    where, params = TimeEntryFilter().add_organization("org-1").add_project_ids(["p-1", "p-2"]).to_sql()

    assert where == "(organization_id = ?) AND (project_id IN (?, ?))"
    assert params == ("org-1", "p-1", "p-2")


def test_repr_lists_predicates():
    assert repr(TimeEntryFilter().add_billable(True).add_user_id("u")) == "TimeEntryFilter(billable, user)"
