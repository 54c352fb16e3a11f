"""Conflict resolution: pure strategy selection plus a separate apply step.

`select_plan` maps a conflict to a plan without touching any state, so the
policy can be tested on its own. `apply_plan` is the only place that
mutates the assignment state.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta
from typing import ClassVar

from taskalloc.exceptions import ResolutionError, UnknownTaskError
from taskalloc.logger import get_logger
from taskalloc.models import Task, TeamMember

from .config import ConflictResolutionMode, ResolutionStrategy, SchedulingConfig
from .conflicts import ConflictContext, blocked_days, outside_working_hours, skill_coverage
from .core import ConflictKind, ConflictResolution, NewAssignment, ScheduleConflict
from .recommender import eligible_candidates
from .state import AssignmentState
from .workload import assigned_tasks, task_hours

logger = get_logger()

_DAY_SECONDS = 86400


@dataclass(frozen=True)
class ReassignPlan:
    strategy: ClassVar[ResolutionStrategy] = ResolutionStrategy.REASSIGN
    task_id: str
    from_user_id: str
    to_user_id: str
    proposed_solution: str
    needs_approval: bool = False


@dataclass(frozen=True)
class ReschedulePlan:
    strategy: ClassVar[ResolutionStrategy] = ResolutionStrategy.RESCHEDULE
    task_id: str
    shift_days: float
    proposed_solution: str
    needs_approval: bool = False


@dataclass(frozen=True)
class ExtendDeadlinePlan:
    strategy: ClassVar[ResolutionStrategy] = ResolutionStrategy.EXTEND_DEADLINE
    task_id: str
    extension_days: float
    proposed_solution: str
    needs_approval: bool = False


@dataclass(frozen=True)
class AddResourcesPlan:
    strategy: ClassVar[ResolutionStrategy] = ResolutionStrategy.ADD_RESOURCES
    task_id: str
    user_id: str
    proposed_solution: str
    needs_approval: bool = False


@dataclass(frozen=True)
class ManualPlan:
    strategy: ClassVar[ResolutionStrategy] = ResolutionStrategy.MANUAL
    task_id: str
    proposed_solution: str
    needs_approval: bool = True


ResolutionPlan = (
    ReassignPlan | ReschedulePlan | ExtendDeadlinePlan | AddResourcesPlan | ManualPlan
)


@dataclass
class ResolutionOutcome:
    """What happened to one conflict during a resolution attempt."""

    conflict: ScheduleConflict
    plan: ResolutionPlan | None
    applied: bool = False
    new_assignment: NewAssignment | None = None
    error: str | None = None


def _days(delta: timedelta) -> float:
    return delta.total_seconds() / _DAY_SECONDS


def _projected_utilization(ctx: ConflictContext, member: TeamMember, hours: float) -> float:
    workload = ctx.workloads.get(member.id)
    if workload is None or workload.available_hours <= 0:
        return math.inf
    return (workload.estimated_hours + hours) / workload.available_hours


def _reassign_target(
    ctx: ConflictContext, task: Task, current_user: str, *, full_skills: bool
) -> TeamMember | None:
    """Least-loaded eligible member who would stay within the utilization limit."""
    hours = task_hours(task, ctx.config)
    options: list[tuple[float, str, TeamMember]] = []
    for member in eligible_candidates(task, list(ctx.members.values())):
        if member.id == current_user:
            continue
        if full_skills and skill_coverage(member, task.requirements.required_skills) < 1.0:
            continue
        projected = _projected_utilization(ctx, member, hours)
        if projected > ctx.config.max_utilization:
            continue
        options.append((projected, member.id, member))
    if not options:
        return None
    return min(options, key=lambda option: option[:2])[2]


def _reassign_or_add(
    ctx: ConflictContext, conflict: ScheduleConflict, task: Task, *, full_skills: bool
) -> ResolutionPlan:
    target = _reassign_target(ctx, task, conflict.user_id, full_skills=full_skills)
    if target is not None:
        return ReassignPlan(
            task_id=task.id,
            from_user_id=conflict.user_id,
            to_user_id=target.id,
            proposed_solution=f"Reassign {task.id} from {conflict.user_id} to {target.id}",
        )
    return AddResourcesPlan(
        task_id=task.id,
        user_id=conflict.user_id,
        proposed_solution=f"Add resources to {task.id}: no eligible member has capacity",
    )


def _double_booking_plan(
    ctx: ConflictContext, conflict: ScheduleConflict, task: Task
) -> ResolutionPlan:
    window = ctx.timeline.window(task)
    clash_end = None
    for other in assigned_tasks(conflict.user_id, ctx.tasks, ctx.state):
        if other.id == task.id or not ctx.timeline.is_fixed(other):
            continue
        other_window = ctx.timeline.window(other)
        if window.overlap_hours(other_window) > 0:
            clash_end = max(clash_end or other_window.end, other_window.end)
    if clash_end is None:
        return ManualPlan(task_id=task.id, proposed_solution=f"Review the booking of {task.id}")
    shift = _days(clash_end - window.start)
    return ReschedulePlan(
        task_id=task.id,
        shift_days=shift,
        proposed_solution=f"Move {task.id} to start after the overlapping booking ends",
    )


def _availability_plan(
    ctx: ConflictContext, conflict: ScheduleConflict, task: Task
) -> ResolutionPlan:
    member = ctx.members[conflict.user_id]
    window = ctx.timeline.window(task)
    fixed = ctx.timeline.is_fixed(task)
    for days in range(1, ctx.config.scheduling_horizon + 1):
        moved = window.shifted(days)
        if blocked_days(member, moved):
            continue
        if fixed and outside_working_hours(member, moved):
            continue
        return ReschedulePlan(
            task_id=task.id,
            shift_days=float(days),
            proposed_solution=f"Move {task.id} by {days} days to a window {member.id} can work",
        )
    return ManualPlan(
        task_id=task.id,
        proposed_solution=f"No workable window for {task.id} within the scheduling horizon",
    )


def _deadline_plan(ctx: ConflictContext, task: Task) -> ResolutionPlan:
    timeline = ctx.timeline
    late = timeline.lateness_days(task)
    earliest = timeline.base_window(task).start
    dependency_finish = timeline.dependency_finish(task)
    if dependency_finish is not None:
        earliest = max(earliest, dependency_finish)
    room = min(ctx.state.start_shift(task.id), _days(timeline.window(task).start - earliest))
    if room > 0:
        back = min(room, late)
        return ReschedulePlan(
            task_id=task.id,
            shift_days=-back,
            proposed_solution=f"Move {task.id} {back:.1f} days earlier",
        )
    extension = float(math.ceil(late))
    return ExtendDeadlinePlan(
        task_id=task.id,
        extension_days=extension,
        proposed_solution=f"Extend the deadline of {task.id} by {extension:.0f} days",
    )


def select_plan(conflict: ScheduleConflict, ctx: ConflictContext) -> ResolutionPlan:
    """Pick the default plan for a conflict. Pure: reads `ctx`, mutates nothing."""
    task = ctx.tasks.get(conflict.task_id)
    if task is None:
        raise UnknownTaskError(f"Task {conflict.task_id} not found")
    kind = conflict.kind

    if kind == ConflictKind.OVERLOAD:
        return _reassign_or_add(ctx, conflict, task, full_skills=False)
    if kind == ConflictKind.SKILL_MISMATCH:
        return _reassign_or_add(ctx, conflict, task, full_skills=True)
    if kind == ConflictKind.DEPENDENCY_CONFLICT:
        finish = ctx.timeline.dependency_finish(task)
        if finish is None:
            return ManualPlan(
                task_id=task.id, proposed_solution=f"Review dependencies of {task.id}"
            )
        return ReschedulePlan(
            task_id=task.id,
            shift_days=_days(finish - ctx.timeline.window(task).start),
            proposed_solution=f"Start {task.id} after its dependencies complete",
        )
    if kind == ConflictKind.DOUBLE_BOOKING:
        return _double_booking_plan(ctx, conflict, task)
    if kind == ConflictKind.AVAILABILITY_CONFLICT and conflict.user_id in ctx.members:
        return _availability_plan(ctx, conflict, task)
    if kind == ConflictKind.TIMEZONE_CONFLICT:
        # Moving the start cannot change a zone; someone has to pick the hours
        return ReschedulePlan(
            task_id=task.id,
            shift_days=0.0,
            proposed_solution=(
                f"Reschedule {task.id} into hours that overlap "
                f"{task.requirements.preferred_timezone}"
            ),
            needs_approval=True,
        )
    if kind == ConflictKind.DEADLINE_CONFLICT:
        return _deadline_plan(ctx, task)
    return ManualPlan(task_id=task.id, proposed_solution=f"Review {conflict.id} manually")


def requires_approval(
    plan: ResolutionPlan, conflict: ScheduleConflict, config: SchedulingConfig
) -> bool:
    """Approval policy for a selected plan."""
    mode = config.conflict_resolution
    if mode == ConflictResolutionMode.MANUAL:
        return True
    if mode == ConflictResolutionMode.HYBRID and conflict.severity in ("high", "critical"):
        return True
    return plan.needs_approval or plan.strategy in config.approval_required


def apply_plan(
    plan: ResolutionPlan, conflict: ScheduleConflict, state: AssignmentState
) -> NewAssignment | None:
    """Perform a plan's mutation on the assignment state.

    Returns the new assignment for reassignments.

    Raises:
        ResolutionError: If the task changed owner since the plan was selected
    """
    if isinstance(plan, ReassignPlan):
        if not state.commit(plan.task_id, plan.to_user_id, expected_previous=plan.from_user_id):
            raise ResolutionError(
                f"Cannot reassign {plan.task_id}: owner changed since {conflict.id} was detected"
            )
        return NewAssignment(
            task_id=plan.task_id,
            user_id=plan.to_user_id,
            old_user_id=plan.from_user_id,
            reason=f"Resolved {conflict.kind.value}",
        )
    with state.lock_users([conflict.user_id]):
        if isinstance(plan, ReschedulePlan):
            if plan.shift_days:
                state.shift_start(plan.task_id, plan.shift_days)
            else:
                state.acknowledge(conflict.id)
        elif isinstance(plan, ExtendDeadlinePlan):
            state.extend_deadline(plan.task_id, plan.extension_days)
        elif isinstance(plan, AddResourcesPlan):
            state.request_resources(plan.task_id, plan.user_id, plan.proposed_solution)
            state.acknowledge(conflict.id)
        else:
            state.acknowledge(conflict.id)
    return None


def resolve_conflict(
    conflict: ScheduleConflict,
    ctx: ConflictContext,
    *,
    resolved_by: str = "system",
) -> ResolutionOutcome:
    """Select a plan, then apply it unless it needs approval.

    Approval-pending conflicts move to `resolving` and keep their plan in
    the outcome. A failed attempt leaves the conflict open without a
    resolution.
    """
    try:
        plan = select_plan(conflict, ctx)
    except UnknownTaskError as e:
        logger.warning(f"Cannot resolve {conflict.id}: {e}")
        return ResolutionOutcome(conflict=conflict, plan=None, error=str(e))

    approval = requires_approval(plan, conflict, ctx.config)
    conflict.resolution = ConflictResolution(
        strategy=plan.strategy,
        proposed_solution=plan.proposed_solution,
        requires_approval=approval,
    )
    if approval:
        conflict.status = "resolving"
        logger.checks(f"Conflict {conflict.id} awaits approval: {plan.proposed_solution}")
        return ResolutionOutcome(conflict=conflict, plan=plan)
    return apply_resolution(conflict, plan, ctx, resolved_by=resolved_by)


def apply_resolution(
    conflict: ScheduleConflict,
    plan: ResolutionPlan,
    ctx: ConflictContext,
    *,
    resolved_by: str,
) -> ResolutionOutcome:
    """Apply a plan and record the result on the conflict."""
    try:
        new_assignment = apply_plan(plan, conflict, ctx.state)
    except ResolutionError as e:
        logger.warning(str(e))
        conflict.resolution = None
        conflict.status = "detected"
        return ResolutionOutcome(conflict=conflict, plan=plan, error=str(e))

    if conflict.resolution is None:
        conflict.resolution = ConflictResolution(
            strategy=plan.strategy,
            proposed_solution=plan.proposed_solution,
            requires_approval=False,
        )
    conflict.resolution.resolved_at = ctx.now
    conflict.resolution.resolved_by = resolved_by
    conflict.status = "resolved"
    logger.changes(f"Resolved {conflict.id}: {plan.proposed_solution}")
    return ResolutionOutcome(
        conflict=conflict, plan=plan, applied=True, new_assignment=new_assignment
    )
