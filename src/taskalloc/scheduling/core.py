"""Core dataclasses for the scheduling engine results."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, Literal, TypeVar

if TYPE_CHECKING:
    from taskalloc.models import Task

    from .config import ResolutionStrategy

T = TypeVar("T")

Severity = Literal["low", "medium", "high", "critical"]
ConflictStatus = Literal["detected", "resolving", "resolved"]

SEVERITY_RANK: dict[str, int] = {"low": 1, "medium": 2, "high": 3, "critical": 4}

# Slack at or below this many days marks a task as critical
CRITICAL_SLACK_EPSILON = 0.1


def _default_str_list() -> list[str]:
    return []


def _default_float_dict() -> dict[str, float]:
    return {}


class ConflictKind(str, Enum):
    """The seven kinds of scheduling conflict."""

    DOUBLE_BOOKING = "double_booking"
    SKILL_MISMATCH = "skill_mismatch"
    OVERLOAD = "overload"
    DEADLINE_CONFLICT = "deadline_conflict"
    DEPENDENCY_CONFLICT = "dependency_conflict"
    AVAILABILITY_CONFLICT = "availability_conflict"
    TIMEZONE_CONFLICT = "timezone_conflict"


@dataclass
class TaskNode:
    """A task placed in the dependency graph with its CPM timings (in days)."""

    id: str
    task: Task
    level: int
    position: int  # index within its level, in input order
    dependencies: list[str]
    dependents: list[str]
    x: float = 0.0
    y: float = 0.0
    duration: float = 0.0
    earliest_start: float = 0.0
    earliest_finish: float = 0.0
    latest_start: float = 0.0
    latest_finish: float = 0.0
    slack: float = 0.0
    is_critical: bool = False


@dataclass
class DependencyLink:
    source: str
    target: str
    is_critical: bool


@dataclass
class CriticalPathResult:
    """Output of the critical path analysis."""

    nodes: list[TaskNode]
    links: list[DependencyLink]
    critical_path: list[str]
    project_duration: float
    levels: int

    def node_map(self) -> dict[str, TaskNode]:
        return {node.id: node for node in self.nodes}


@dataclass
class DelayedTask:
    task_id: str
    delay_days: float
    new_start_date: datetime
    new_end_date: datetime


@dataclass
class ImpactAnalysis:
    """Effect of delaying one task on its dependents and the project end."""

    task_id: str
    delay_days: float
    affected_tasks: list[str]
    critical_path_impact: bool
    new_project_duration: float
    delayed_tasks: list[DelayedTask]


@dataclass
class DependencyIssue:
    """A single dependency problem, tagged 'circular' or 'nonexistent'."""

    kind: Literal["circular", "nonexistent"]
    task_id: str
    dependency_id: str
    message: str


@dataclass
class DependencyValidationResult:
    is_valid: bool
    issues: list[DependencyIssue] = field(default_factory=lambda: list[DependencyIssue]())
    cycles: list[list[str]] = field(default_factory=lambda: list[list[str]]())
    warnings: list[str] = field(default_factory=_default_str_list)

    @property
    def error(self) -> str | None:
        circular = [i for i in self.issues if i.kind == "circular"]
        missing = [i for i in self.issues if i.kind == "nonexistent"]
        if circular:
            return f"Circular dependencies detected: {len(self.cycles)} cycle(s) found"
        if missing:
            return (
                f"Invalid dependencies found: {len(missing)} reference(s) to non-existent tasks"
            )
        return None


@dataclass
class Workload:
    """Assigned work against available capacity for one user."""

    user_id: str
    current_tasks: int
    estimated_hours: float
    available_hours: float
    utilization_rate: float
    overloaded: bool
    skill_utilization: dict[str, float] = field(default_factory=_default_float_dict)


@dataclass
class ConflictResolution:
    strategy: ResolutionStrategy
    proposed_solution: str
    requires_approval: bool
    resolved_at: datetime | None = None
    resolved_by: str | None = None


@dataclass
class ScheduleConflict:
    """A detected conflict. Lifecycle: detected -> resolving -> resolved."""

    id: str
    kind: ConflictKind
    task_id: str
    user_id: str
    description: str
    severity: Severity
    detected_at: datetime
    resolution: ConflictResolution | None = None
    status: ConflictStatus = "detected"


@dataclass
class AssignmentRecommendation:
    user_id: str
    confidence: int
    reasons: list[str]
    potential_conflicts: list[ScheduleConflict]
    estimated_completion_time: datetime
    utilization_rate: float = 0.0


@dataclass
class AutoAssignRequest:
    """Input for bulk auto-assignment."""

    task_ids: list[str] | None = None
    config: dict[str, Any] | None = None
    force_reassign: bool = False
    notify_users: bool = False
    scheduled_by: str = "system"
    cancel_event: threading.Event | None = None


@dataclass
class AssignedTask:
    task_id: str
    user_id: str
    confidence: int
    reasons: list[str]


@dataclass
class SkippedTask:
    task_id: str
    reason: str


@dataclass
class AutoAssignMetrics:
    tasks_processed: int = 0
    tasks_assigned: int = 0
    conflicts_detected: int = 0
    conflicts_resolved: int = 0
    average_confidence: float = 0.0


@dataclass
class AutoAssignResult:
    success: bool = True
    assigned_tasks: list[AssignedTask] = field(default_factory=lambda: list[AssignedTask]())
    pending_tasks: list[AssignedTask] = field(default_factory=lambda: list[AssignedTask]())
    conflicts: list[ScheduleConflict] = field(default_factory=lambda: list[ScheduleConflict]())
    errors: list[str] = field(default_factory=_default_str_list)
    skipped_tasks: list[SkippedTask] = field(default_factory=lambda: list[SkippedTask]())
    notifications: list[tuple[str, str]] = field(default_factory=lambda: list[tuple[str, str]]())
    cancelled: bool = False
    metrics: AutoAssignMetrics = field(default_factory=AutoAssignMetrics)


@dataclass
class NewAssignment:
    task_id: str
    user_id: str
    old_user_id: str | None
    reason: str


@dataclass
class OptimizationMetrics:
    total_utilization: float = 0.0
    average_completion_time: float = 0.0
    conflict_count: int = 0
    skill_match_score: float = 0.0


@dataclass
class ScheduleOptimization:
    optimized: bool = False
    improvements: list[str] = field(default_factory=_default_str_list)
    conflicts_resolved: int = 0
    new_assignments: list[NewAssignment] = field(default_factory=lambda: list[NewAssignment]())
    iterations: int = 0
    metrics: OptimizationMetrics = field(default_factory=OptimizationMetrics)


@dataclass
class TeamCapacity:
    """Team-wide capacity for one day."""

    date: date
    total_members: int
    available_members: int
    total_available_hours: float
    total_scheduled_hours: float
    utilization_rate: float
    skill_coverage: dict[str, float]
    overloaded_members: list[str]
    underutilized_members: list[str]


@dataclass
class ScheduledTaskHours:
    task_id: str
    title: str
    hours: float
    priority: str


@dataclass
class TeamAvailabilityDay:
    """One user's availability calendar entry for one day."""

    user_id: str
    date: date
    available: bool
    working_hours: float
    scheduled_hours: float
    utilization: float
    tasks: list[ScheduledTaskHours]


@dataclass
class ResourceAllocationMetrics:
    date: datetime
    total_tasks: int = 0
    assigned_tasks: int = 0
    unassigned_tasks: int = 0
    average_utilization: float = 0.0
    skill_utilization: dict[str, float] = field(default_factory=_default_float_dict)
    workload_distribution: dict[str, float] = field(default_factory=_default_float_dict)
    conflict_rate: float = 0.0
    completion_rate: float = 0.0
    average_task_duration: float = 0.0


@dataclass
class OperationResult(Generic[T]):
    """Structured success/failure returned at the engine boundary."""

    success: bool
    value: T | None = None
    message: str | None = None

    @classmethod
    def ok(cls, value: T) -> OperationResult[T]:
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, message: str) -> OperationResult[T]:
        return cls(success=False, message=message)
