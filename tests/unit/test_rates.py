"""Tests for billable rate resolution."""

from datetime import datetime, timezone

import pytest

from timebill.billing.rates import RateResolver, RateScopeReader, RateScopeTable, resolve_rate
from timebill.core.models import Member, Organization, Project, ProjectMember

START = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def full_table(**overrides):
    scopes = {
        "project_members": {("user-1", "project-1"): 4004},
        "projects": {"project-1": 3003},
        "members": {("user-1", "org-1"): 2002},
        "organizations": {"org-1": 1001},
    }
    scopes.update(overrides)
    return RateScopeTable(**scopes)


@pytest.fixture
def billable_entry(entry_factory):
    return entry_factory(START, billable=True, project_id="project-1")


class TestCascadePrecedence:
    """Each scope wins over every scope below it."""

    def test_project_membership_wins(self, billable_entry):
        assert resolve_rate(billable_entry, full_table()) == 4004

    def test_null_project_membership_falls_to_project(self, billable_entry):
        table = full_table(project_members={("user-1", "project-1"): None})
        assert resolve_rate(billable_entry, table) == 3003

    def test_null_project_falls_to_membership(self, billable_entry):
        table = full_table(project_members={("user-1", "project-1"): None}, projects={"project-1": None})
        assert resolve_rate(billable_entry, table) == 2002

    def test_null_membership_falls_to_organization(self, billable_entry):
        table = full_table(
            project_members={("user-1", "project-1"): None},
            projects={"project-1": None},
            members={("user-1", "org-1"): None},
        )
        assert resolve_rate(billable_entry, table) == 1001

    def test_all_null_yields_none(self, billable_entry):
        table = full_table(
            project_members={("user-1", "project-1"): None},
            projects={"project-1": None},
            members={("user-1", "org-1"): None},
            organizations={"org-1": None},
        )
        assert resolve_rate(billable_entry, table) is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"project_members": {("user-1", "project-1"): None}, "projects": {"project-1": None}},
        {"project_members": {}, "projects": {}},
    ],
    ids=["null-rows", "absent-rows"],
)
def test_absent_rows_behave_like_null_rates(billable_entry, overrides):
    """Organization 1001, membership 2002, higher scopes empty."""
    assert resolve_rate(billable_entry, full_table(**overrides)) == 2002


def test_non_billable_entry_never_has_rate(entry_factory):
    entry = entry_factory(START, billable=False, project_id="project-1")
    assert resolve_rate(entry, full_table()) is None


def test_entry_without_project_skips_project_scopes(entry_factory):
    entry = entry_factory(START, billable=True)
    assert resolve_rate(entry, full_table()) == 2002


def test_rate_of_zero_is_not_skipped(billable_entry):
    table = full_table(project_members={("user-1", "project-1"): 0})
    assert resolve_rate(billable_entry, table) == 0


def test_membership_of_other_user_is_ignored(entry_factory):
    entry = entry_factory(START, billable=True, user_id="user-2", project_id="project-1")
    table = full_table(projects={"project-1": None})
    assert resolve_rate(entry, table) == 1001


def test_table_from_models():
    table = RateScopeTable.from_models(
        organizations=[Organization("org-1", "Acme", billable_rate=1001)],
        members=[Member("member-1", "org-1", "user-1", billable_rate=2002)],
        projects=[Project("project-1", "org-1", "Website", billable_rate=None)],
        project_members=[ProjectMember("pm-1", "project-1", "member-1", "user-1", billable_rate=None)],
    )

    assert table.organization_rate("org-1") == 1001
    assert table.organization_membership_rate("user-1", "org-1") == 2002
    assert table.project_rate("project-1") is None
    assert table.project_membership_rate("user-1", "project-1") is None
    assert len(table) == 4


def test_table_is_read_only():
    table = full_table()
    with pytest.raises(TypeError):
        table.organizations["org-2"] = 5  # type: ignore[index]


def test_base_reader_is_abstract(billable_entry):
    with pytest.raises(NotImplementedError):
        resolve_rate(billable_entry, RateScopeReader())


def test_resolver_resolves_many(entry_factory):
    entries = [
        entry_factory(START, billable=True, project_id="project-1"),
        entry_factory(START, billable=False, project_id="project-1"),
    ]

    rates = RateResolver(full_table()).resolve_many(entries)

    assert rates == {entries[0].id: 4004, entries[1].id: None}
