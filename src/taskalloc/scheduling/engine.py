"""Scheduling engine facade.

`SchedulingEngine` owns one snapshot, the assignment state derived from it
and a per-instance configuration store. Every public operation converts
library errors into structured results, so nothing raised by the
scheduling modules escapes this boundary.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Sequence
from datetime import date, datetime
from typing import Any

from taskalloc.exceptions import TaskAllocError, UnknownTaskError, UnknownUserError
from taskalloc.logger import get_logger
from taskalloc.models import Availability, Skill, Task, TeamMember
from taskalloc.validation import (
    validate_auto_assign_request,
    validate_availability,
    validate_config_override,
    validate_date_range,
    validate_skills,
)

from .assignment import auto_assign
from .config import ConfigStore, SchedulingConfig
from .conflicts import ConflictContext, detect_conflicts
from .core import (
    AssignmentRecommendation,
    AutoAssignRequest,
    AutoAssignResult,
    CriticalPathResult,
    DependencyValidationResult,
    ImpactAnalysis,
    OperationResult,
    ResourceAllocationMetrics,
    ScheduleConflict,
    ScheduleOptimization,
    TeamAvailabilityDay,
    TeamCapacity,
    Workload,
)
from .critical_path import (
    analyze_delay_impact,
    calculate_critical_path,
    get_available_tasks,
    get_blocking_tasks,
)
from .graph import validate_dependencies
from .optimizer import optimize_schedule
from .recommender import recommend
from .resolution import ResolutionPlan, apply_resolution, resolve_conflict
from .state import AssignmentState
from .workload import assigned_tasks, resource_metrics, team_availability, team_capacity

logger = get_logger()


def _local_now() -> datetime:
    return datetime.now()  # noqa: DTZ005 - snapshot datetimes are naive local time


class SchedulingEngine:
    """Assignment, conflict and timeline operations over one snapshot.

    Args:
        tasks: Task snapshot from the task provider
        members: Team members with skills and availability
        config: Initial configuration (defaults apply when omitted)
        clock: Returns the evaluation time; injectable for tests
    """

    def __init__(
        self,
        tasks: Sequence[Task],
        members: Sequence[TeamMember],
        config: SchedulingConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.tasks = list(tasks)
        self.members: dict[str, TeamMember] = {member.id: member for member in members}
        self.state = AssignmentState(self.tasks)
        self.config_store = ConfigStore(config)
        self.clock = clock or _local_now
        self.conflicts: dict[str, ScheduleConflict] = {}
        self._pending_plans: dict[str, ResolutionPlan] = {}

    # Configuration

    def get_config(self) -> SchedulingConfig:
        return self.config_store.get()

    def update_config(self, override: dict[str, Any]) -> OperationResult[SchedulingConfig]:
        validation = validate_config_override(self.config_store.get(), override)
        if not validation.ok:
            return OperationResult.fail(validation.message())
        return OperationResult.ok(self.config_store.update(override))

    def reset_config(self) -> SchedulingConfig:
        return self.config_store.reset()

    # Helpers

    def _task(self, task_id: str) -> Task:
        for task in self.tasks:
            if task.id == task_id:
                return task
        raise UnknownTaskError(f"Task {task_id} not found")

    def _member(self, user_id: str) -> TeamMember:
        member = self.members.get(user_id)
        if member is None:
            raise UnknownUserError(f"User {user_id} not found")
        return member

    def _context(self, config: SchedulingConfig | None = None) -> ConflictContext:
        return ConflictContext.build(
            self.tasks,
            list(self.members.values()),
            self.state,
            config or self.config_store.get(),
            self.clock(),
        )

    def _track(self, detected: list[ScheduleConflict]) -> list[ScheduleConflict]:
        """Merge a detection run into the registry.

        Conflicts awaiting approval keep their identity. Resolved conflicts
        stay queryable until they are detected again.
        """
        tracked: list[ScheduleConflict] = []
        for conflict in detected:
            existing = self.conflicts.get(conflict.id)
            if existing is not None and existing.status == "resolving":
                tracked.append(existing)
            else:
                tracked.append(conflict)
        self.conflicts = {
            conflict_id: conflict
            for conflict_id, conflict in self.conflicts.items()
            if conflict.status != "detected"
        }
        self.conflicts.update({conflict.id: conflict for conflict in tracked})
        return tracked

    # Assignment

    def auto_assign(self, request: AutoAssignRequest | None = None) -> AutoAssignResult:
        """Assign tasks in bulk (see `AutoAssignRequest`)."""
        request = request or AutoAssignRequest()
        base = self.config_store.get()
        validation = validate_auto_assign_request(request, base)
        if not validation.ok:
            return AutoAssignResult(success=False, errors=validation.messages())
        config = base.merged(request.config)
        result = auto_assign(
            request, self.tasks, list(self.members.values()), self.state, config, self.clock()
        )
        for conflict in result.conflicts:
            self.conflicts.setdefault(conflict.id, conflict)
        logger.changes(
            f"Auto-assignment: {result.metrics.tasks_assigned}/{result.metrics.tasks_processed} "
            f"tasks assigned, {len(result.skipped_tasks)} skipped"
        )
        return result

    def confirm_assignment(self, task_id: str) -> OperationResult[str]:
        """Commit an assignment left pending by manual conflict mode."""
        user_id = self.state.confirm_pending(task_id)
        if user_id is None:
            return OperationResult.fail(f"No pending assignment for task {task_id}")
        return OperationResult.ok(user_id)

    def get_recommendations(self, task_id: str) -> OperationResult[list[AssignmentRecommendation]]:
        try:
            task = self._task(task_id)
        except UnknownTaskError as e:
            return OperationResult.fail(str(e))
        return OperationResult.ok(recommend(self._context(), task))

    def get_best_assignee(self, task_id: str) -> OperationResult[AssignmentRecommendation | None]:
        result = self.get_recommendations(task_id)
        if not result.success:
            return OperationResult.fail(result.message or "")
        recommendations = result.value or []
        return OperationResult.ok(recommendations[0] if recommendations else None)

    # Conflicts

    def detect_conflicts(self) -> list[ScheduleConflict]:
        return self._track(detect_conflicts(self._context()))

    def resolve_conflicts(
        self, conflict_ids: Sequence[str], resolved_by: str = "system"
    ) -> OperationResult[list[ScheduleConflict]]:
        """Resolve the given conflicts per the configured policy.

        Unknown ids fail the whole call before anything is applied.
        """
        self.detect_conflicts()
        unknown = [conflict_id for conflict_id in conflict_ids if conflict_id not in self.conflicts]
        if unknown:
            return OperationResult.fail(f"Unknown conflict ids: {', '.join(unknown)}")

        resolved: list[ScheduleConflict] = []
        for conflict_id in conflict_ids:
            conflict = self.conflicts[conflict_id]
            if conflict.status != "detected":
                resolved.append(conflict)
                continue
            outcome = resolve_conflict(conflict, self._context(), resolved_by=resolved_by)
            if outcome.plan is not None and conflict.status == "resolving":
                self._pending_plans[conflict_id] = outcome.plan
            resolved.append(conflict)
        return OperationResult.ok(resolved)

    def approve_resolution(
        self, conflict_id: str, approved_by: str
    ) -> OperationResult[ScheduleConflict]:
        """Apply a resolution that was waiting for approval."""
        plan = self._pending_plans.get(conflict_id)
        conflict = self.conflicts.get(conflict_id)
        if plan is None or conflict is None:
            return OperationResult.fail(f"No resolution awaiting approval for {conflict_id}")
        outcome = apply_resolution(conflict, plan, self._context(), resolved_by=approved_by)
        del self._pending_plans[conflict_id]
        if not outcome.applied:
            return OperationResult.fail(outcome.error or f"Could not apply {conflict_id}")
        return OperationResult.ok(conflict)

    def optimize_schedule(
        self, config_override: dict[str, Any] | None = None
    ) -> OperationResult[ScheduleOptimization]:
        """Iteratively resolve conflicts. The override applies to this call only."""
        base = self.config_store.get()
        validation = validate_config_override(base, config_override)
        if not validation.ok:
            return OperationResult.fail(validation.message())
        run = optimize_schedule(
            self.tasks,
            list(self.members.values()),
            self.state,
            base.merged(config_override),
            self.clock(),
            skip_ids=set(self._pending_plans),
        )
        for conflict_id, (_, plan) in run.pending_plans.items():
            self._pending_plans[conflict_id] = plan
        self._track(run.remaining_conflicts)
        return OperationResult.ok(run.optimization)

    # Workload and capacity

    def get_workloads(self) -> list[Workload]:
        return list(self._context().workloads.values())

    def get_team_capacity(self, start: date, end: date) -> OperationResult[list[TeamCapacity]]:
        validation = validate_date_range(start, end)
        if not validation.ok:
            return OperationResult.fail(validation.message())
        ctx = self._context()
        return OperationResult.ok(
            team_capacity(
                list(self.members.values()),
                self.tasks,
                self.state,
                ctx.timeline,
                ctx.config,
                start,
                end,
            )
        )

    def get_team_availability(
        self, user_id: str, start: date, end: date
    ) -> OperationResult[list[TeamAvailabilityDay]]:
        validation = validate_date_range(start, end)
        if not validation.ok:
            return OperationResult.fail(validation.message())
        try:
            member = self._member(user_id)
        except UnknownUserError as e:
            return OperationResult.fail(str(e))
        ctx = self._context()
        owned = assigned_tasks(member.id, ctx.tasks, self.state)
        return OperationResult.ok(
            team_availability(member, owned, ctx.timeline, ctx.config, start, end)
        )

    def update_skills(self, user_id: str, skills: Sequence[Skill]) -> OperationResult[TeamMember]:
        validation = validate_skills(skills)
        if not validation.ok:
            return OperationResult.fail(validation.message())
        try:
            member = self._member(user_id)
        except UnknownUserError as e:
            return OperationResult.fail(str(e))
        with self.state.lock_users([user_id]):
            updated = dataclasses.replace(member, skills=list(skills))
            self.members[user_id] = updated
        logger.changes(f"Updated skills of {user_id}: {len(skills)} skills")
        return OperationResult.ok(updated)

    def update_availability(
        self, user_id: str, availability: Availability
    ) -> OperationResult[TeamMember]:
        validation = validate_availability(availability)
        if not validation.ok:
            return OperationResult.fail(validation.message())
        try:
            member = self._member(user_id)
        except UnknownUserError as e:
            return OperationResult.fail(str(e))
        with self.state.lock_users([user_id]):
            updated = dataclasses.replace(member, availability=availability)
            self.members[user_id] = updated
        logger.changes(f"Updated availability of {user_id}")
        return OperationResult.ok(updated)

    def get_resource_metrics(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> ResourceAllocationMetrics:
        ctx = self._context()
        conflicts = detect_conflicts(ctx)
        return resource_metrics(
            self.tasks, ctx.workloads, self.state, conflicts, ctx.now, start, end
        )

    # Timeline

    def validate_dependencies(self) -> DependencyValidationResult:
        return validate_dependencies(self.tasks)

    def calculate_critical_path(self) -> OperationResult[CriticalPathResult]:
        try:
            return OperationResult.ok(calculate_critical_path(self.tasks))
        except TaskAllocError as e:
            return OperationResult.fail(str(e))

    def analyze_delay_impact(
        self, task_id: str, delay_days: float
    ) -> OperationResult[ImpactAnalysis]:
        try:
            return OperationResult.ok(
                analyze_delay_impact(self.tasks, task_id, delay_days, now=self.clock())
            )
        except TaskAllocError as e:
            return OperationResult.fail(str(e))

    def get_available_tasks(self) -> list[Task]:
        return get_available_tasks(self.tasks)

    def get_blocking_tasks(self) -> list[Task]:
        return get_blocking_tasks(self.tasks)
