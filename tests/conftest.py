"""Shared fixtures for timebill tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from loguru import logger

from timebill.core.models import TimeEntry

UTC = timezone.utc


@pytest.fixture
def entry_factory():
    """Build time entries with organization/user/member defaults."""
    counter = {"n": 0}

    def make(start: datetime, end: datetime | None = None, **fields) -> TimeEntry:
        counter["n"] += 1
        defaults = {
            "id": f"entry-{counter['n']}",
            "organization_id": "org-1",
            "user_id": "user-1",
            "member_id": "member-1",
        }
        defaults.update(fields)
        return TimeEntry(start=start, end=end, **defaults)

    return make


@pytest.fixture
def log_records():
    """Capture loguru records emitted during a test."""
    records: list[dict] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)
