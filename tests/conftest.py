"""Pytest configuration and builders for taskalloc tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

import pytest

from taskalloc import context
from taskalloc.logger import reset_logger
from taskalloc.models import (
    Availability,
    Skill,
    Task,
    TaskConstraints,
    TaskRequirements,
    TeamMember,
    TimeWindow,
)
from taskalloc.scheduling import AssignmentState, ConflictContext, SchedulingConfig

# Monday 2025-01-06 09:00 (naive local time)
NOW = datetime(2025, 1, 6, 9, 0)
MONDAY = NOW.date()


@pytest.fixture(autouse=True)
def clean_globals() -> None:
    """Reset process-wide context and logger between tests."""
    context.reset()
    reset_logger()


def make_task(  # noqa: PLR0913 - test builder mirrors Task fields
    task_id: str,
    *,
    deps: list[str] | None = None,
    priority: str = "medium",
    status: str = "todo",
    task_type: str = "task",
    hours: float | None = None,
    deadline: datetime | None = None,
    assigned_to: str | None = None,
    skills: list[Skill] | None = None,
    timezone: str | None = None,
    window: TimeWindow | None = None,
    constraints: TaskConstraints | None = None,
    created_at: datetime | None = None,
) -> Task:
    """Build a task with requirements in one call."""
    return Task(
        id=task_id,
        title=f"Task {task_id}",
        priority=priority,  # type: ignore[arg-type]
        status=status,  # type: ignore[arg-type]
        type=task_type,
        dependencies=list(deps or []),
        deadline=deadline,
        estimated_hours=hours,
        assigned_to=assigned_to,
        created_at=created_at,
        requirements=TaskRequirements(
            required_skills=list(skills or []),
            preferred_timezone=timezone,
            required_availability=window,
            constraints=constraints or TaskConstraints(),
        ),
    )


def make_member(  # noqa: PLR0913 - test builder mirrors TeamMember fields
    member_id: str,
    *,
    skills: list[Skill] | None = None,
    role: str = "developer",
    active: bool = True,
    timezone: str = "UTC",
    vacation: set[date] | None = None,
    **availability: Any,
) -> TeamMember:
    """Build a team member; extra keyword arguments go to Availability."""
    return TeamMember(
        id=member_id,
        name=member_id.capitalize(),
        role=role,
        is_active=active,
        skills=list(skills or []),
        availability=Availability(
            timezone=timezone, vacation_dates=set(vacation or set()), **availability
        ),
    )


def skill(name: str, level: int = 3, category: str = "technical") -> Skill:
    return Skill(name=name, level=level, category=category)  # type: ignore[arg-type]


def window(start_hours: float, end_hours: float) -> TimeWindow:
    """Fixed window offset in hours from NOW."""
    return TimeWindow(NOW + timedelta(hours=start_hours), NOW + timedelta(hours=end_hours))


def diamond() -> list[Task]:
    """A -> {B, C} -> D, all one-day tasks."""
    return [
        make_task("A"),
        make_task("B", deps=["A"]),
        make_task("C", deps=["A"]),
        make_task("D", deps=["B", "C"]),
    ]


def build_context(
    tasks: list[Task],
    members: list[TeamMember],
    config: SchedulingConfig | None = None,
    state: AssignmentState | None = None,
) -> ConflictContext:
    """Conflict context over a snapshot, evaluated at NOW."""
    return ConflictContext.build(
        tasks,
        members,
        state or AssignmentState(tasks),
        config or SchedulingConfig(),
        NOW,
    )
