"""Pydantic schemas for YAML snapshot validation."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import (
    Availability,
    Skill,
    Task,
    TaskConstraints,
    TaskRequirements,
    TeamMember,
    TimeWindow,
    WorkingHours,
    naive_local,
)

_CLOCK_RE = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d$")


def _as_datetime(v: Any) -> Any:
    """YAML dates become midnight datetimes."""
    if isinstance(v, date) and not isinstance(v, datetime):
        return datetime(v.year, v.month, v.day)
    return v


class SkillSchema(BaseModel):
    name: str = Field(min_length=1)
    level: int = Field(default=1, ge=1, le=5)
    category: Literal["technical", "domain", "soft", "tool"] = "technical"

    def to_model(self) -> Skill:
        return Skill(name=self.name, level=self.level, category=self.category)


class WorkingHoursSchema(BaseModel):
    start: str = "09:00"
    end: str = "17:00"

    @field_validator("start", "end", mode="before")
    @classmethod
    def check_clock(cls, v: Any) -> str:
        """Accept "HH:MM" strings; YAML may hand over minutes as an int (9:00 -> 540)."""
        if isinstance(v, int):
            v = f"{v // 60:02d}:{v % 60:02d}"
        text = str(v).strip()
        if not _CLOCK_RE.match(text):
            raise ValueError(f"Invalid time {v!r}, expected HH:MM")
        return text

    @model_validator(mode="after")
    def check_order(self) -> WorkingHoursSchema:
        if WorkingHours(self.start, self.end).span_hours <= 0:
            raise ValueError("working_hours start must be before end")
        return self


class AvailabilitySchema(BaseModel):
    """Schema for a member's availability block."""

    timezone: str = "UTC"
    working_hours: WorkingHoursSchema = Field(default_factory=WorkingHoursSchema)
    working_days: list[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])
    vacation_dates: list[date] = Field(default_factory=list)
    unavailable_dates: list[date] = Field(default_factory=list)
    max_hours_per_day: float = Field(default=8.0, gt=0, le=24)
    max_hours_per_week: float = Field(default=40.0, ge=0, le=168)
    preferred_workload: float = Field(default=100.0, ge=0, le=100)

    @field_validator("working_days")
    @classmethod
    def check_days(cls, v: list[int]) -> list[int]:
        for day in v:
            if not 0 <= day <= 6:
                raise ValueError(f"Invalid working day {day}, expected 0 (Sunday) to 6")
        return sorted(set(v))

    def to_model(self) -> Availability:
        return Availability(
            timezone=self.timezone,
            working_hours=WorkingHours(self.working_hours.start, self.working_hours.end),
            working_days=list(self.working_days),
            vacation_dates=set(self.vacation_dates),
            unavailable_dates=set(self.unavailable_dates),
            max_hours_per_day=self.max_hours_per_day,
            max_hours_per_week=self.max_hours_per_week,
            preferred_workload=self.preferred_workload,
        )


class MemberSchema(BaseModel):
    """Schema for one team member entry."""

    name: str = ""
    role: str = "developer"
    is_active: bool = True
    skills: list[SkillSchema] = Field(default_factory=list)
    availability: AvailabilitySchema = Field(default_factory=AvailabilitySchema)

    def to_model(self, member_id: str) -> TeamMember:
        return TeamMember(
            id=member_id,
            name=self.name or member_id,
            role=self.role,
            is_active=self.is_active,
            skills=[skill.to_model() for skill in self.skills],
            availability=self.availability.to_model(),
        )


class WindowSchema(BaseModel):
    start: datetime
    end: datetime

    @field_validator("start", "end", mode="before")
    @classmethod
    def coerce_dates(cls, v: Any) -> Any:
        return _as_datetime(v)

    @field_validator("start", "end")
    @classmethod
    def drop_timezone(cls, v: datetime) -> datetime:
        return naive_local(v)

    @model_validator(mode="after")
    def check_order(self) -> WindowSchema:
        if self.end <= self.start:
            raise ValueError("window end must be after start")
        return self


class ConstraintsSchema(BaseModel):
    max_assignees: int | None = Field(default=None, ge=1)
    min_assignees: int | None = Field(default=None, ge=0)
    required_roles: list[str] = Field(default_factory=list)
    excluded_users: list[str] = Field(default_factory=list)
    preferred_users: list[str] = Field(default_factory=list)


class RequirementsSchema(BaseModel):
    required_skills: list[SkillSchema] = Field(default_factory=list)
    preferred_timezone: str | None = None
    required_availability: WindowSchema | None = None
    constraints: ConstraintsSchema = Field(default_factory=ConstraintsSchema)

    def to_model(self) -> TaskRequirements:
        window = self.required_availability
        return TaskRequirements(
            required_skills=[skill.to_model() for skill in self.required_skills],
            preferred_timezone=self.preferred_timezone,
            required_availability=TimeWindow(window.start, window.end) if window else None,
            constraints=TaskConstraints(**self.constraints.model_dump()),
        )


class TaskSchema(BaseModel):
    """Schema for one task entry."""

    title: str = ""
    priority: Literal["high", "medium", "low"] = "medium"
    status: Literal["todo", "in-progress", "done"] = "todo"
    type: str = "task"
    dependencies: list[str] = Field(default_factory=list)
    deadline: datetime | None = None
    estimated_hours: float | None = Field(default=None, ge=0)
    assigned_to: str | None = None
    created_at: datetime | None = None
    requirements: RequirementsSchema = Field(default_factory=RequirementsSchema)

    @field_validator("deadline", "created_at", mode="before")
    @classmethod
    def coerce_dates(cls, v: Any) -> Any:
        return _as_datetime(v)

    @field_validator("deadline", "created_at")
    @classmethod
    def drop_timezone(cls, v: datetime | None) -> datetime | None:
        """Aware timestamps (e.g. a trailing Z) become naive local time."""
        return naive_local(v) if v is not None else None

    @field_validator("dependencies", mode="before")
    @classmethod
    def ensure_list(cls, v: Any) -> list[str]:
        """Ensure value is a list."""
        if v is None:
            return []
        if isinstance(v, list):
            return [str(item) for item in v]  # type: ignore[misc]
        return [str(v)]

    def to_model(self, task_id: str) -> Task:
        return Task(
            id=task_id,
            title=self.title or task_id,
            priority=self.priority,
            status=self.status,
            type=self.type,
            dependencies=list(self.dependencies),
            deadline=self.deadline,
            estimated_hours=self.estimated_hours,
            assigned_to=self.assigned_to,
            created_at=self.created_at,
            requirements=self.requirements.to_model(),
        )


class SnapshotSchema(BaseModel):
    """Schema for a whole snapshot file: tasks and members keyed by id."""

    tasks: dict[str, TaskSchema] = Field(default_factory=dict)
    members: dict[str, MemberSchema] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_assignees(self) -> SnapshotSchema:
        for task_id, task in self.tasks.items():
            if task.assigned_to is not None and task.assigned_to not in self.members:
                raise ValueError(
                    f"Task {task_id} is assigned to unknown member {task.assigned_to}"
                )
        return self
