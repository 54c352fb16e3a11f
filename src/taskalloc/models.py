"""Snapshot data models for taskalloc.

These are the read-only inputs handed to the engine by its collaborators:
tasks (from the task provider) and team members with their skills and
availability (from the workload/skill provider).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

TaskPriority = Literal["high", "medium", "low"]
TaskStatus = Literal["todo", "in-progress", "done"]
SkillCategory = Literal["technical", "domain", "soft", "tool"]

VALID_PRIORITIES = ("high", "medium", "low")
VALID_STATUSES = ("todo", "in-progress", "done")
VALID_SKILL_CATEGORIES = ("technical", "domain", "soft", "tool")

PRIORITY_RANK: dict[str, int] = {"high": 3, "medium": 2, "low": 1}

# Fixed-offset zone names: "UTC", "GMT+2", "UTC-03:30", "+05:30"
_OFFSET_ZONE_RE = re.compile(r"^(?:UTC|GMT)?\s*([+-])(\d{1,2})(?::?(\d{2}))?$")


def _default_str_list() -> list[str]:
    return []


def _default_date_set() -> set[date]:
    return set()


def _default_skill_list() -> list[Skill]:
    return []


def _default_working_days() -> list[int]:
    return [1, 2, 3, 4, 5]


def parse_clock(value: str) -> time:
    """Parse an "HH:MM" clock string."""
    hours, _, minutes = value.strip().partition(":")
    return time(int(hours), int(minutes or 0))


def utc_offset_hours(timezone: str, at: datetime) -> float | None:
    """Return the UTC offset of a timezone name in hours, or None if unknown."""
    name = timezone.strip()
    if name.upper() in {"UTC", "GMT", "Z"}:
        return 0.0
    match = _OFFSET_ZONE_RE.match(name.upper())
    if match:
        sign, hours, minutes = match.groups()
        offset = int(hours) + int(minutes or 0) / 60
        return -offset if sign == "-" else offset
    try:
        zone = ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None
    offset = zone.utcoffset(at.replace(tzinfo=None))
    return offset.total_seconds() / 3600 if offset is not None else None


def naive_local(moment: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through.

    The engine compares every datetime against a naive local `now`.
    """
    if moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


def js_weekday(day: date) -> int:
    """Weekday number with 0=Sunday..6=Saturday."""
    return (day.weekday() + 1) % 7


@dataclass(frozen=True)
class Skill:
    """A named skill held (or required) at a level from 1 (beginner) to 5 (expert)."""

    name: str
    level: int = 1
    category: SkillCategory = "technical"


@dataclass(frozen=True)
class WorkingHours:
    """Daily working window in the member's local time."""

    start: str = "09:00"
    end: str = "17:00"

    @property
    def span_hours(self) -> float:
        start = parse_clock(self.start)
        end = parse_clock(self.end)
        minutes = (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)
        return max(0.0, minutes / 60)

    def contains(self, moment: time) -> bool:
        return parse_clock(self.start) <= moment <= parse_clock(self.end)


@dataclass(frozen=True)
class Availability:
    """Working preferences and time off for a team member."""

    timezone: str = "UTC"
    working_hours: WorkingHours = field(default_factory=WorkingHours)
    working_days: list[int] = field(default_factory=_default_working_days)
    vacation_dates: set[date] = field(default_factory=_default_date_set)
    unavailable_dates: set[date] = field(default_factory=_default_date_set)
    max_hours_per_day: float = 8.0
    max_hours_per_week: float = 40.0
    preferred_workload: float = 100.0  # percentage of full capacity

    def is_blocked(self, day: date) -> bool:
        """True if the day is a vacation or unavailable date."""
        return day in self.vacation_dates or day in self.unavailable_dates

    def is_working_day(self, day: date) -> bool:
        return js_weekday(day) in self.working_days

    def is_available(self, day: date) -> bool:
        return self.is_working_day(day) and not self.is_blocked(day)

    def daily_hours(self) -> float:
        """Hours a member can work on an available day."""
        return min(self.max_hours_per_day, self.working_hours.span_hours)


@dataclass(frozen=True)
class TeamMember:
    """A user that tasks can be assigned to."""

    id: str
    name: str = ""
    role: str = "developer"
    is_active: bool = True
    skills: list[Skill] = field(default_factory=_default_skill_list)
    availability: Availability = field(default_factory=Availability)

    def skill_level(self, name: str) -> int:
        """Level held for a skill name (0 when the skill is missing)."""
        for skill in self.skills:
            if skill.name.lower() == name.lower():
                return skill.level
        return 0


@dataclass(frozen=True)
class TimeWindow:
    """A wall-clock interval [start, end)."""

    start: datetime
    end: datetime

    @property
    def hours(self) -> float:
        return max(0.0, (self.end - self.start).total_seconds() / 3600)

    def overlap_hours(self, other: TimeWindow) -> float:
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        return max(0.0, (end - start).total_seconds() / 3600)

    def days(self) -> list[date]:
        """Calendar days touched by the window."""
        last = self.end if self.end == self.start else self.end - timedelta(microseconds=1)
        current = self.start.date()
        result: list[date] = []
        while current <= last.date():
            result.append(current)
            current += timedelta(days=1)
        return result

    def shifted(self, days: float) -> TimeWindow:
        delta = timedelta(days=days)
        return TimeWindow(self.start + delta, self.end + delta)


@dataclass(frozen=True)
class TaskConstraints:
    """Hard constraints on who may take a task."""

    max_assignees: int | None = None
    min_assignees: int | None = None
    required_roles: list[str] = field(default_factory=_default_str_list)
    excluded_users: list[str] = field(default_factory=_default_str_list)
    preferred_users: list[str] = field(default_factory=_default_str_list)


@dataclass(frozen=True)
class TaskRequirements:
    """Scheduling requirements attached to a task."""

    required_skills: list[Skill] = field(default_factory=_default_skill_list)
    preferred_timezone: str | None = None
    required_availability: TimeWindow | None = None
    constraints: TaskConstraints = field(default_factory=TaskConstraints)


@dataclass
class Task:
    """A work item owned by the task provider. The engine never mutates it."""

    id: str
    title: str = ""
    priority: TaskPriority = "medium"
    status: TaskStatus = "todo"
    type: str = "task"
    dependencies: list[str] = field(default_factory=_default_str_list)
    deadline: datetime | None = None
    estimated_hours: float | None = None
    assigned_to: str | None = None
    created_at: datetime | None = None
    requirements: TaskRequirements = field(default_factory=TaskRequirements)

    def __post_init__(self) -> None:
        # Keep first-seen order; it drives dependent discovery order
        self.dependencies = list(dict.fromkeys(self.dependencies))
        if self.deadline is not None:
            self.deadline = naive_local(self.deadline)
        if self.created_at is not None:
            self.created_at = naive_local(self.created_at)

    @property
    def is_done(self) -> bool:
        return self.status == "done"
