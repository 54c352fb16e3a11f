"""Configuration classes for the scheduling engine."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AlgorithmType(str, Enum):
    """Task ordering strategies for auto-assignment."""

    PRIORITY_FIRST = "priority_first"
    LOAD_BALANCED = "load_balanced"
    DEADLINE_DRIVEN = "deadline_driven"
    SKILL_OPTIMIZED = "skill_optimized"
    HYBRID = "hybrid"


class ConflictResolutionMode(str, Enum):
    """How detected conflicts get resolved."""

    AUTO = "auto"  # Apply default strategies without approval
    MANUAL = "manual"  # Propose only; apply after external confirmation
    HYBRID = "hybrid"  # Auto for low/medium severity, manual for high/critical


class ResolutionStrategy(str, Enum):
    """Resolution strategies a conflict can be mapped to."""

    REASSIGN = "reassign"
    RESCHEDULE = "reschedule"
    ADD_RESOURCES = "add_resources"
    EXTEND_DEADLINE = "extend_deadline"
    MANUAL = "manual"


class SchedulingWeights(BaseModel):
    """Per-factor weights for assignment scoring. Normalized to sum to 1."""

    model_config = ConfigDict(extra="forbid")

    priority: float = Field(default=0.3, ge=0)
    skills: float = Field(default=0.25, ge=0)
    availability: float = Field(default=0.2, ge=0)
    workload: float = Field(default=0.15, ge=0)
    deadline: float = Field(default=0.1, ge=0)

    @model_validator(mode="after")
    def normalize(self) -> SchedulingWeights:
        """Scale weights so they sum to 1 (equal weights if all are zero)."""
        names = ("priority", "skills", "availability", "workload", "deadline")
        total = sum(getattr(self, name) for name in names)
        for name in names:
            value = getattr(self, name) / total if total > 0 else 1 / len(names)
            setattr(self, name, value)
        return self

    def as_dict(self) -> dict[str, float]:
        return {
            "priority": self.priority,
            "skills": self.skills,
            "availability": self.availability,
            "workload": self.workload,
            "deadline": self.deadline,
        }


def _default_approval_required() -> list[ResolutionStrategy]:
    return [
        ResolutionStrategy.EXTEND_DEADLINE,
        ResolutionStrategy.ADD_RESOURCES,
        ResolutionStrategy.MANUAL,
    ]


class SchedulingConfig(BaseModel):
    """Configuration for assignment scoring, conflict policy and optimization."""

    algorithm: AlgorithmType = AlgorithmType.HYBRID
    weights: SchedulingWeights = SchedulingWeights()
    conflict_resolution: ConflictResolutionMode = ConflictResolutionMode.HYBRID
    max_conflicts_per_task: int = Field(default=3, ge=0)
    scheduling_horizon: int = Field(default=30, ge=1)  # days
    buffer_time: float = Field(default=20.0, ge=0)  # percent of estimated hours

    max_utilization: float = Field(default=1.0, gt=0)  # overload threshold
    min_confidence: int = Field(default=30, ge=0, le=100)
    max_optimization_iterations: int = Field(default=10, ge=1)
    timezone_tolerance_hours: float = Field(default=2.0, ge=0)
    hours_per_day: float = Field(default=8.0, gt=0)

    # Strategies that always need a human, whatever the mode
    approval_required: list[ResolutionStrategy] = Field(
        default_factory=_default_approval_required
    )

    def merged(self, override: dict[str, Any] | None) -> SchedulingConfig:
        """Return a copy with a partial override applied (weights merge per key)."""
        if not override:
            return self.model_copy(deep=True)
        data = self.model_dump()
        for key, value in override.items():
            if key == "weights" and isinstance(value, dict):
                data["weights"] = {**data["weights"], **value}
            else:
                data[key] = value
        return SchedulingConfig.model_validate(data)


class ConfigStore:
    """Per-engine configuration store exposing get/update/reset."""

    def __init__(self, config: SchedulingConfig | None = None) -> None:
        self._initial = (config or SchedulingConfig()).model_copy(deep=True)
        self._config = self._initial.model_copy(deep=True)

    def get(self) -> SchedulingConfig:
        """Return a copy of the current configuration."""
        return self._config.model_copy(deep=True)

    def update(self, override: dict[str, Any]) -> SchedulingConfig:
        """Apply a partial override and return the new configuration."""
        self._config = self._config.merged(override)
        return self.get()

    def reset(self) -> SchedulingConfig:
        """Restore the configuration the store was created with."""
        self._config = self._initial.model_copy(deep=True)
        return self.get()
