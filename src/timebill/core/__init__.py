"""Core records, time helpers and configuration."""

from .config import Config, get_config, load_config
from .models import Client, Member, Organization, Project, ProjectMember, Task, TimeEntry, User
from .time import (
    API_DATETIME_FORMAT,
    ensure_timezone,
    format_api_datetime,
    format_utc_iso8601,
    get_current_utc,
    localize_utc_to_tz,
    parse_api_datetime,
    parse_utc_iso8601,
    whole_seconds,
)
from .weekday import Weekday

__all__ = [
    # Config
    "Config",
    "get_config",
    "load_config",
    # Records
    "Client",
    "Member",
    "Organization",
    "Project",
    "ProjectMember",
    "Task",
    "TimeEntry",
    "User",
    "Weekday",
    # Time
    "API_DATETIME_FORMAT",
    "ensure_timezone",
    "format_api_datetime",
    "format_utc_iso8601",
    "get_current_utc",
    "localize_utc_to_tz",
    "parse_api_datetime",
    "parse_utc_iso8601",
    "whole_seconds",
]
