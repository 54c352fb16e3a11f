"""Request validation at the engine boundary.

Each validator returns a `ValidationResult` carrying one `FieldError` per
offending field instead of raising, so callers can turn failures into
structured responses.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

import pydantic

from taskalloc.models import (
    VALID_SKILL_CATEGORIES,
    Availability,
    Skill,
    parse_clock,
    utc_offset_hours,
)

if TYPE_CHECKING:
    from taskalloc.scheduling.config import SchedulingConfig
    from taskalloc.scheduling.core import AutoAssignRequest

MIN_SKILL_LEVEL = 1
MAX_SKILL_LEVEL = 5
HOURS_PER_DAY = 24
HOURS_PER_WEEK = 168


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


@dataclass
class ValidationResult:
    """Tagged outcome: `ok` with no errors, or a list of field errors."""

    ok: bool
    errors: list[FieldError] = field(default_factory=lambda: list[FieldError]())

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, errors: list[FieldError]) -> ValidationResult:
        return cls(ok=False, errors=errors)

    @classmethod
    def from_errors(cls, errors: list[FieldError]) -> ValidationResult:
        return cls.failure(errors) if errors else cls.success()

    def messages(self) -> list[str]:
        return [str(error) for error in self.errors]

    def message(self) -> str:
        return "; ".join(self.messages())


def validate_config_override(
    base: SchedulingConfig, override: dict[str, Any] | None
) -> ValidationResult:
    """Check that a partial config override produces a valid configuration."""
    if override is None:
        return ValidationResult.success()
    if not isinstance(override, dict):
        return ValidationResult.failure([FieldError("config", "must be a mapping")])
    unknown = sorted(set(override) - set(type(base).model_fields))
    errors = [FieldError(f"config.{key}", "unknown setting") for key in unknown]
    if errors:
        return ValidationResult.failure(errors)
    try:
        base.merged(override)
    except pydantic.ValidationError as e:
        return ValidationResult.failure(
            [
                FieldError("config." + ".".join(str(part) for part in err["loc"]), err["msg"])
                for err in e.errors()
            ]
        )
    return ValidationResult.success()


def validate_auto_assign_request(
    request: AutoAssignRequest, base: SchedulingConfig
) -> ValidationResult:
    errors: list[FieldError] = []
    if request.task_ids is not None:
        if isinstance(request.task_ids, str) or not isinstance(request.task_ids, Sequence):
            errors.append(FieldError("task_ids", "must be a list of task ids"))
        else:
            for index, task_id in enumerate(request.task_ids):
                if not isinstance(task_id, str) or not task_id.strip():
                    errors.append(FieldError(f"task_ids[{index}]", "must be a non-empty string"))
    if not request.scheduled_by:
        errors.append(FieldError("scheduled_by", "must not be empty"))
    errors.extend(validate_config_override(base, request.config).errors)
    return ValidationResult.from_errors(errors)


def validate_skills(skills: Sequence[Skill]) -> ValidationResult:
    errors: list[FieldError] = []
    seen: set[str] = set()
    for index, skill in enumerate(skills):
        prefix = f"skills[{index}]"
        if not skill.name.strip():
            errors.append(FieldError(f"{prefix}.name", "must not be empty"))
        elif skill.name.lower() in seen:
            errors.append(FieldError(f"{prefix}.name", f"duplicate skill {skill.name}"))
        seen.add(skill.name.lower())
        if not MIN_SKILL_LEVEL <= skill.level <= MAX_SKILL_LEVEL:
            errors.append(
                FieldError(
                    f"{prefix}.level", f"must be between {MIN_SKILL_LEVEL} and {MAX_SKILL_LEVEL}"
                )
            )
        if skill.category not in VALID_SKILL_CATEGORIES:
            errors.append(
                FieldError(
                    f"{prefix}.category",
                    f"must be one of {', '.join(VALID_SKILL_CATEGORIES)}",
                )
            )
    return ValidationResult.from_errors(errors)


def validate_availability(availability: Availability) -> ValidationResult:
    errors: list[FieldError] = []
    if utc_offset_hours(availability.timezone, datetime(2000, 1, 1)) is None:
        errors.append(FieldError("timezone", f"unknown timezone {availability.timezone}"))

    hours = availability.working_hours
    try:
        if parse_clock(hours.start) >= parse_clock(hours.end):
            errors.append(FieldError("working_hours", "start must be before end"))
    except ValueError:
        errors.append(FieldError("working_hours", "times must be HH:MM"))

    invalid_days = [day for day in availability.working_days if not 0 <= day <= 6]
    if invalid_days:
        errors.append(FieldError("working_days", "days must be 0 (Sunday) to 6 (Saturday)"))
    if not 0 < availability.max_hours_per_day <= HOURS_PER_DAY:
        errors.append(FieldError("max_hours_per_day", f"must be in (0, {HOURS_PER_DAY}]"))
    if not 0 <= availability.max_hours_per_week <= HOURS_PER_WEEK:
        errors.append(FieldError("max_hours_per_week", f"must be in [0, {HOURS_PER_WEEK}]"))
    if not 0 <= availability.preferred_workload <= 100:
        errors.append(FieldError("preferred_workload", "must be a percentage (0-100)"))
    return ValidationResult.from_errors(errors)


def validate_date_range(start: date, end: date) -> ValidationResult:
    if end < start:
        return ValidationResult.failure([FieldError("end", "must not be before start")])
    return ValidationResult.success()
