"""SQLite-backed time entry store.

Instants are stored as fixed-width UTC text (see
``core.time.format_db_timestamp``) so range predicates compare correctly as
strings; tags are stored as a JSON array and matched with ``json_each``.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Mapping, Sequence
from dataclasses import replace
from pathlib import Path
from typing import Any

from ..aggregation.descriptors import Descriptor, static_descriptors
from ..aggregation.dimensions import Dimension
from ..billing.rates import RateScopeTable
from ..billing.rates import resolve_rate as resolve_entry_rate
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
from ..core.time import format_db_timestamp, parse_db_timestamp
from ..core.weekday import Weekday
from ..observability import get_logger, timing_context
from ..query.filter import TimeEntryFilter
from .base import EntityNotFoundError, StorageError, TimeEntryStore

__all__ = ["SQLiteTimeEntryStore"]

log = get_logger("storage")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS organizations (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        billable_rate INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        timezone TEXT NOT NULL DEFAULT 'UTC',
        week_start TEXT NOT NULL DEFAULT 'monday'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS members (
        id TEXT PRIMARY KEY,
        organization_id TEXT NOT NULL REFERENCES organizations(id),
        user_id TEXT NOT NULL REFERENCES users(id),
        billable_rate INTEGER,
        UNIQUE (organization_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS clients (
        id TEXT PRIMARY KEY,
        organization_id TEXT NOT NULL REFERENCES organizations(id),
        name TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        organization_id TEXT NOT NULL REFERENCES organizations(id),
        name TEXT NOT NULL,
        color TEXT,
        client_id TEXT REFERENCES clients(id),
        billable_rate INTEGER,
        is_billable INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS project_members (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL REFERENCES projects(id),
        member_id TEXT NOT NULL REFERENCES members(id),
        user_id TEXT NOT NULL REFERENCES users(id),
        billable_rate INTEGER,
        UNIQUE (project_id, member_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL REFERENCES projects(id),
        organization_id TEXT NOT NULL REFERENCES organizations(id),
        name TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS time_entries (
        id TEXT PRIMARY KEY,
        organization_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        member_id TEXT NOT NULL,
        start TEXT NOT NULL,
        "end" TEXT,
        billable INTEGER NOT NULL DEFAULT 0,
        billable_rate INTEGER,
        project_id TEXT,
        task_id TEXT,
        client_id TEXT,
        description TEXT,
        tags TEXT NOT NULL DEFAULT '[]'
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_time_entries_org_start ON time_entries(organization_id, start)",
    "CREATE INDEX IF NOT EXISTS idx_time_entries_member ON time_entries(member_id)",
    "CREATE INDEX IF NOT EXISTS idx_time_entries_project ON time_entries(project_id)",
)

# Descriptor lookups per categorical dimension: table, name column, color column
_DESCRIPTOR_SOURCES: dict[Dimension, tuple[str, str, str | None]] = {
    Dimension.USER: ("users", "name", None),
    Dimension.PROJECT: ("projects", "name", "color"),
    Dimension.TASK: ("tasks", "name", None),
    Dimension.CLIENT: ("clients", "name", None),
}


class SQLiteTimeEntryStore(TimeEntryStore):
    """Time entry store over a single SQLite connection.

    Parameters
    ----------
    db_path
        Path to the database file, or ``":memory:"``
    """

    def __init__(self, db_path: Path | str = ":memory:") -> None:
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None
        self._init_database()

    def _init_database(self) -> None:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        conn = self._get_connection()
        try:
            for statement in _SCHEMA:
                conn.execute(statement)
            conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to initialize database {self.db_path}: {exc}") from exc

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self._conn = sqlite3.connect(self.db_path)
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to open database {self.db_path}: {exc}") from exc
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> SQLiteTimeEntryStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # Low-level helpers

    def _write(self, sql: str, params: Sequence[Any] = ()) -> int:
        conn = self._get_connection()
        try:
            cursor = conn.execute(sql, params)
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(f"Write failed: {exc}") from exc
        return cursor.rowcount

    def _fetch(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        try:
            return self._get_connection().execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Query failed: {exc}") from exc

    def _fetch_one(self, table: str, row_id: str) -> sqlite3.Row:
        rows = self._fetch(f"SELECT * FROM {table} WHERE id = ?", (row_id,))
        if not rows:
            raise EntityNotFoundError(f"No row {row_id!r} in {table}")
        return rows[0]

    def _rate(self, sql: str, params: Sequence[Any]) -> int | None:
        rows = self._fetch(sql, params)
        return rows[0]["billable_rate"] if rows else None

    # Entities

    def add_organization(self, organization: Organization) -> Organization:
        self._write(
            "INSERT INTO organizations (id, name, billable_rate) VALUES (?, ?, ?)",
            (organization.id, organization.name, organization.billable_rate),
        )
        return organization

    def add_user(self, user: User) -> User:
        self._write(
            "INSERT INTO users (id, name, timezone, week_start) VALUES (?, ?, ?, ?)",
            (user.id, user.name, user.timezone, Weekday.coerce(user.week_start).value),
        )
        return user

    def add_member(self, member: Member) -> Member:
        self._write(
            "INSERT INTO members (id, organization_id, user_id, billable_rate) VALUES (?, ?, ?, ?)",
            (member.id, member.organization_id, member.user_id, member.billable_rate),
        )
        return member

    def add_client(self, client: Client) -> Client:
        self._write(
            "INSERT INTO clients (id, organization_id, name) VALUES (?, ?, ?)",
            (client.id, client.organization_id, client.name),
        )
        return client

    def add_project(self, project: Project) -> Project:
        self._write(
            """
            INSERT INTO projects (id, organization_id, name, color, client_id, billable_rate, is_billable)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                project.id,
                project.organization_id,
                project.name,
                project.color,
                project.client_id,
                project.billable_rate,
                int(project.is_billable),
            ),
        )
        return project

    def add_project_member(self, project_member: ProjectMember) -> ProjectMember:
        self._write(
            "INSERT INTO project_members (id, project_id, member_id, user_id, billable_rate) VALUES (?, ?, ?, ?, ?)",
            (
                project_member.id,
                project_member.project_id,
                project_member.member_id,
                project_member.user_id,
                project_member.billable_rate,
            ),
        )
        return project_member

    def add_task(self, task: Task) -> Task:
        self._write(
            "INSERT INTO tasks (id, project_id, organization_id, name) VALUES (?, ?, ?, ?)",
            (task.id, task.project_id, task.organization_id, task.name),
        )
        return task

    def add_time_entry(self, entry: TimeEntry, *, resolve_rate: bool = False) -> TimeEntry:
        client_id = None
        if entry.project_id is not None:
            client_id = self.get_project(entry.project_id).client_id
        stored = replace(entry, client_id=client_id)
        if resolve_rate:
            stored = stored.with_billable_rate(resolve_entry_rate(stored, self))

        self._write(
            """
            INSERT INTO time_entries (
                id, organization_id, user_id, member_id, start, "end", billable,
                billable_rate, project_id, task_id, client_id, description, tags
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                stored.id,
                stored.organization_id,
                stored.user_id,
                stored.member_id,
                format_db_timestamp(stored.start),
                format_db_timestamp(stored.end) if stored.end is not None else None,
                int(stored.billable),
                stored.billable_rate,
                stored.project_id,
                stored.task_id,
                stored.client_id,
                stored.description,
                json.dumps(list(stored.tags)),
            ),
        )
        return stored

    def get_user(self, user_id: str) -> User:
        row = self._fetch_one("users", user_id)
        return User(
            id=row["id"],
            name=row["name"],
            timezone=row["timezone"],
            week_start=Weekday(row["week_start"]),
        )

    def get_member(self, member_id: str) -> Member:
        row = self._fetch_one("members", member_id)
        return Member(
            id=row["id"],
            organization_id=row["organization_id"],
            user_id=row["user_id"],
            billable_rate=row["billable_rate"],
        )

    def get_project(self, project_id: str) -> Project:
        row = self._fetch_one("projects", project_id)
        return Project(
            id=row["id"],
            organization_id=row["organization_id"],
            name=row["name"],
            color=row["color"],
            client_id=row["client_id"],
            billable_rate=row["billable_rate"],
            is_billable=bool(row["is_billable"]),
        )

    def get_project_member(self, project_member_id: str) -> ProjectMember:
        row = self._fetch_one("project_members", project_member_id)
        return ProjectMember(
            id=row["id"],
            project_id=row["project_id"],
            member_id=row["member_id"],
            user_id=row["user_id"],
            billable_rate=row["billable_rate"],
        )

    def get_time_entry(self, entry_id: str) -> TimeEntry:
        return _row_to_entry(self._fetch_one("time_entries", entry_id))

    # Administrative rate updates

    def _update_rate(self, table: str, row_id: str, rate: int | None) -> None:
        changed = self._write(f"UPDATE {table} SET billable_rate = ? WHERE id = ?", (rate, row_id))
        if changed == 0:
            raise EntityNotFoundError(f"No row {row_id!r} in {table}")
        log.info("Rate updated", table=table, id=row_id, billable_rate=rate)

    def update_organization_rate(self, organization_id: str, rate: int | None) -> None:
        self._update_rate("organizations", organization_id, rate)

    def update_member_rate(self, member_id: str, rate: int | None) -> None:
        self._update_rate("members", member_id, rate)

    def update_project_rate(self, project_id: str, rate: int | None) -> None:
        self._update_rate("projects", project_id, rate)

    def update_project_member_rate(self, project_member_id: str, rate: int | None) -> None:
        self._update_rate("project_members", project_member_id, rate)

    # Rate scope point lookups

    def project_membership_rate(self, user_id: str, project_id: str) -> int | None:
        return self._rate(
            "SELECT billable_rate FROM project_members WHERE user_id = ? AND project_id = ?",
            (user_id, project_id),
        )

    def project_rate(self, project_id: str) -> int | None:
        return self._rate("SELECT billable_rate FROM projects WHERE id = ?", (project_id,))

    def organization_membership_rate(self, user_id: str, organization_id: str) -> int | None:
        return self._rate(
            "SELECT billable_rate FROM members WHERE user_id = ? AND organization_id = ?",
            (user_id, organization_id),
        )

    def organization_rate(self, organization_id: str) -> int | None:
        return self._rate("SELECT billable_rate FROM organizations WHERE id = ?", (organization_id,))

    # Reads

    def query(self, entry_filter: TimeEntryFilter) -> list[TimeEntry]:
        where, params = entry_filter.to_sql()
        with timing_context("query", component="storage", filter=repr(entry_filter)) as ctx:
            rows = self._fetch(f"SELECT * FROM time_entries WHERE {where} ORDER BY start, id", params)
            ctx["rows"] = len(rows)
        return [_row_to_entry(row) for row in rows]

    def load_rate_scopes(self, organization_id: str | None = None) -> RateScopeTable:
        scoped = organization_id is not None
        params = (organization_id,) if scoped else ()

        organizations = self._fetch(
            "SELECT id, billable_rate FROM organizations" + (" WHERE id = ?" if scoped else ""),
            params,
        )
        members = self._fetch(
            "SELECT user_id, organization_id, billable_rate FROM members"
            + (" WHERE organization_id = ?" if scoped else ""),
            params,
        )
        projects = self._fetch(
            "SELECT id, billable_rate FROM projects" + (" WHERE organization_id = ?" if scoped else ""),
            params,
        )
        project_members = self._fetch(
            """
            SELECT pm.user_id, pm.project_id, pm.billable_rate
            FROM project_members pm JOIN projects p ON p.id = pm.project_id
            """
            + (" WHERE p.organization_id = ?" if scoped else ""),
            params,
        )

        table = RateScopeTable(
            project_members={(row["user_id"], row["project_id"]): row["billable_rate"] for row in project_members},
            projects={row["id"]: row["billable_rate"] for row in projects},
            members={(row["user_id"], row["organization_id"]): row["billable_rate"] for row in members},
            organizations={row["id"]: row["billable_rate"] for row in organizations},
        )
        log.debug("Rate scopes loaded", organization_id=organization_id, scopes=len(table))
        return table

    def load_descriptors(self, dimension: Dimension, keys: list[str]) -> Mapping[str, Descriptor]:
        static = static_descriptors(dimension, keys)
        if static is not None:
            return static
        if not keys:
            return {}

        table, name_column, color_column = _DESCRIPTOR_SOURCES[dimension]
        columns = f"id, {name_column}" + (f", {color_column}" if color_column else "")
        placeholders = ", ".join("?" for _ in keys)
        rows = self._fetch(f"SELECT {columns} FROM {table} WHERE id IN ({placeholders})", keys)
        return {
            row["id"]: Descriptor(row[name_column], row[color_column] if color_column else None)
            for row in rows
        }

    def update_billable_rates(self, rates: Mapping[str, int | None]) -> int:
        if not rates:
            return 0
        conn = self._get_connection()
        try:
            cursor = conn.executemany(
                "UPDATE time_entries SET billable_rate = ? WHERE id = ?",
                [(rate, entry_id) for entry_id, rate in rates.items()],
            )
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(f"Failed to update billable rates: {exc}") from exc
        return cursor.rowcount


def _row_to_entry(row: sqlite3.Row) -> TimeEntry:
    return TimeEntry(
        id=row["id"],
        organization_id=row["organization_id"],
        user_id=row["user_id"],
        member_id=row["member_id"],
        start=parse_db_timestamp(row["start"]),
        end=parse_db_timestamp(row["end"]) if row["end"] is not None else None,
        billable=bool(row["billable"]),
        billable_rate=row["billable_rate"],
        project_id=row["project_id"],
        task_id=row["task_id"],
        client_id=row["client_id"],
        description=row["description"],
        tags=tuple(json.loads(row["tags"])),
    )
