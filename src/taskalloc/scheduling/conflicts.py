"""Conflict detection over the current (or a what-if) assignment state."""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass
from datetime import date, datetime

from taskalloc.logger import get_logger
from taskalloc.models import PRIORITY_RANK, Skill, Task, TeamMember, TimeWindow, utc_offset_hours

from .config import SchedulingConfig
from .core import ConflictKind, ScheduleConflict, Severity, Workload
from .state import AssignmentState
from .timeline import Timeline
from .workload import assigned_tasks, compute_workload, compute_workloads, task_hours

logger = get_logger()

_KIND_ORDER = {kind: index for index, kind in enumerate(ConflictKind)}


def skill_coverage(member: TeamMember, required: Sequence[Skill]) -> float:
    """Share of required skills the member holds at the required level."""
    if not required:
        return 1.0
    return sum(1 for skill in required if member.skill_level(skill.name) >= skill.level) / len(
        required
    )


def missing_skills(member: TeamMember, required: Sequence[Skill]) -> list[Skill]:
    return [skill for skill in required if member.skill_level(skill.name) < skill.level]


def timezone_matches(
    member: TeamMember, preferred: str | None, at: datetime, tolerance_hours: float
) -> bool:
    """True when the member's zone is within tolerance of the preferred zone.

    Zones that cannot be resolved to an offset only match by name.
    """
    if not preferred:
        return True
    own = member.availability.timezone
    wanted_offset = utc_offset_hours(preferred, at)
    own_offset = utc_offset_hours(own, at)
    if wanted_offset is None or own_offset is None:
        return preferred.strip().lower() == own.strip().lower()
    return abs(wanted_offset - own_offset) <= tolerance_hours


def blocked_days(member: TeamMember, window: TimeWindow) -> list[date]:
    """Working days in the window that fall on vacation or unavailable dates."""
    availability = member.availability
    return [
        day
        for day in window.days()
        if availability.is_working_day(day) and availability.is_blocked(day)
    ]


def outside_working_hours(member: TeamMember, window: TimeWindow) -> bool:
    """True when a fixed window leaves the member's working days or hours.

    Window times are read as UTC and converted to the member's local time.
    Clock times are only checked for windows that stay within one local day.
    """
    availability = member.availability
    offset = utc_offset_hours(availability.timezone, window.start) or 0.0
    local = window.shifted(offset / 24)
    days = local.days()
    if any(not availability.is_working_day(day) for day in days):
        return True
    if len(days) == 1:
        hours = availability.working_hours
        return not (hours.contains(local.start.time()) and hours.contains(local.end.time()))
    return False


@dataclass
class ConflictContext:
    """Everything detection reads: snapshot, assignment state and derived timings."""

    tasks: dict[str, Task]
    members: dict[str, TeamMember]
    state: AssignmentState
    config: SchedulingConfig
    timeline: Timeline
    workloads: dict[str, Workload]
    now: datetime

    @classmethod
    def build(
        cls,
        tasks: Sequence[Task],
        members: Sequence[TeamMember],
        state: AssignmentState,
        config: SchedulingConfig,
        now: datetime,
    ) -> ConflictContext:
        return cls(
            tasks={task.id: task for task in tasks},
            members={member.id: member for member in members},
            state=state,
            config=config,
            timeline=Timeline(tasks, state, now),
            workloads=compute_workloads(tasks, members, state, config, now.date()),
            now=now,
        )

    def with_state(self, state: AssignmentState) -> ConflictContext:
        """Same snapshot over a different assignment state."""
        return ConflictContext.build(
            list(self.tasks.values()), list(self.members.values()), state, self.config, self.now
        )


def _conflict(
    ctx: ConflictContext,
    kind: ConflictKind,
    task: Task,
    user_id: str,
    description: str,
    severity: Severity,
) -> ScheduleConflict:
    return ScheduleConflict(
        id=f"{kind.value}-{task.id}-{user_id}",
        kind=kind,
        task_id=task.id,
        user_id=user_id,
        description=description,
        severity=severity,
        detected_at=ctx.now,
    )


def overload_severity(utilization: float) -> Severity:
    if utilization > 1.5:
        return "critical"
    if utilization > 1.2:
        return "high"
    return "medium"


def deadline_severity(days_late: float) -> Severity:
    if days_late > 7:
        return "critical"
    if days_late > 2:
        return "high"
    return "medium"


def _slack_hours(task: Task, window: TimeWindow, config: SchedulingConfig) -> float:
    return max(0.0, window.hours - task_hours(task, config))


def _double_bookings(
    ctx: ConflictContext, task: Task, member: TeamMember, *, earlier_only: bool = True
) -> list[ScheduleConflict]:
    """Fixed-window tasks of the same user that overlap beyond their combined slack.

    During a scan the conflict is reported on the later task in snapshot
    order (`earlier_only`). A what-if check compares against every task.
    """
    if not ctx.timeline.is_fixed(task):
        return []
    window = ctx.timeline.window(task)
    conflicts: list[ScheduleConflict] = []
    for other in assigned_tasks(member.id, ctx.tasks, ctx.state):
        if other.id == task.id:
            if earlier_only:
                break
            continue
        if not ctx.timeline.is_fixed(other):
            continue
        other_window = ctx.timeline.window(other)
        overlap = window.overlap_hours(other_window)
        slack = _slack_hours(task, window, ctx.config) + _slack_hours(
            other, other_window, ctx.config
        )
        if overlap > 0 and overlap > slack:
            conflicts.append(
                _conflict(
                    ctx,
                    ConflictKind.DOUBLE_BOOKING,
                    task,
                    member.id,
                    f"{member.name or member.id} is booked on {other.id} and {task.id} "
                    f"for {overlap:.1f} overlapping hours",
                    "high",
                )
            )
            break
    return conflicts


def _task_conflicts(
    ctx: ConflictContext, task: Task, member: TeamMember, *, what_if: bool = False
) -> list[ScheduleConflict]:
    """Every per-task conflict kind except overload."""
    conflicts = _double_bookings(ctx, task, member, earlier_only=not what_if)
    requirements = task.requirements
    who = member.name or member.id

    coverage = skill_coverage(member, requirements.required_skills)
    if coverage < 1.0:
        missing = missing_skills(member, requirements.required_skills)
        names = ", ".join(skill.name for skill in missing)
        conflicts.append(
            _conflict(
                ctx,
                ConflictKind.SKILL_MISMATCH,
                task,
                member.id,
                f"{who} lacks required skills for {task.id}: {names}",
                "high" if coverage < 0.5 else "medium",
            )
        )

    timeline = ctx.timeline
    if timeline.is_acyclic:
        late = timeline.lateness_days(task)
        if late > 0:
            conflicts.append(
                _conflict(
                    ctx,
                    ConflictKind.DEADLINE_CONFLICT,
                    task,
                    member.id,
                    f"Task {task.id} is estimated to finish {late:.1f} days after its deadline",
                    deadline_severity(late),
                )
            )
        dependency_finish = timeline.dependency_finish(task)
        if dependency_finish is not None and timeline.window(task).start < dependency_finish:
            conflicts.append(
                _conflict(
                    ctx,
                    ConflictKind.DEPENDENCY_CONFLICT,
                    task,
                    member.id,
                    f"Task {task.id} starts before its dependencies are complete",
                    "high",
                )
            )

    window = timeline.window(task)
    blocked = blocked_days(member, window)
    if blocked:
        conflicts.append(
            _conflict(
                ctx,
                ConflictKind.AVAILABILITY_CONFLICT,
                task,
                member.id,
                f"{who} is unavailable on {', '.join(d.isoformat() for d in blocked)} "
                f"during {task.id}",
                "high",
            )
        )
    elif timeline.is_fixed(task) and outside_working_hours(member, window):
        conflicts.append(
            _conflict(
                ctx,
                ConflictKind.AVAILABILITY_CONFLICT,
                task,
                member.id,
                f"Task {task.id} falls outside the working hours of {who}",
                "medium",
            )
        )

    if not timezone_matches(
        member, requirements.preferred_timezone, ctx.now, ctx.config.timezone_tolerance_hours
    ):
        conflicts.append(
            _conflict(
                ctx,
                ConflictKind.TIMEZONE_CONFLICT,
                task,
                member.id,
                f"{who} works in {member.availability.timezone}, "
                f"task prefers {requirements.preferred_timezone}",
                "low",
            )
        )
    return conflicts


def move_cost(task: Task, config: SchedulingConfig) -> tuple[int, float]:
    """Sort key for picking the task that is cheapest to move off a user."""
    return (PRIORITY_RANK.get(task.priority, 2), task_hours(task, config))


def _overload(
    ctx: ConflictContext, member: TeamMember, workload: Workload, task: Task
) -> ScheduleConflict:
    return _conflict(
        ctx,
        ConflictKind.OVERLOAD,
        task,
        member.id,
        f"{member.name or member.id} is at {workload.utilization_rate:.0%} utilization "
        f"({workload.estimated_hours:.1f}h of {workload.available_hours:.1f}h)",
        overload_severity(workload.utilization_rate),
    )


def _sorted(ctx: ConflictContext, conflicts: list[ScheduleConflict]) -> list[ScheduleConflict]:
    order = {task_id: index for index, task_id in enumerate(ctx.tasks)}
    return sorted(conflicts, key=lambda c: (order.get(c.task_id, len(order)), _KIND_ORDER[c.kind]))


def detect_conflicts(
    ctx: ConflictContext, task_ids: Collection[str] | None = None
) -> list[ScheduleConflict]:
    """Scan assigned, not-done tasks for all seven conflict kinds.

    Restricting to `task_ids` limits per-task checks to those tasks, and
    overload checks to users owning at least one of them. Conflicts a
    resolution has acknowledged are left out. Results are ordered by task
    (snapshot order), then by kind.
    """
    if not ctx.timeline.is_acyclic:
        logger.warning("Dependency graph is cyclic; deadline and dependency checks skipped")

    conflicts: list[ScheduleConflict] = []
    for member in ctx.members.values():
        owned = assigned_tasks(member.id, ctx.tasks, ctx.state)
        relevant = [t for t in owned if task_ids is None or t.id in task_ids]
        for task in relevant:
            conflicts.extend(_task_conflicts(ctx, task, member))

        workload = ctx.workloads.get(member.id)
        if workload is not None and workload.overloaded and relevant:
            cheapest = min(relevant, key=lambda t: move_cost(t, ctx.config))
            conflicts.append(_overload(ctx, member, workload, cheapest))

    conflicts = [c for c in conflicts if c.id not in ctx.state.acknowledged]
    for conflict in conflicts:
        logger.checks(f"Conflict {conflict.id} ({conflict.severity}): {conflict.description}")
    return _sorted(ctx, conflicts)


def simulate_assignment_conflicts(
    ctx: ConflictContext, task: Task, member: TeamMember
) -> list[ScheduleConflict]:
    """Conflicts the task would have if assigned to `member` (what-if, no mutation)."""
    what_if = ctx.state.simulate(task.id, member.id)
    sim_ctx = ConflictContext(
        tasks=ctx.tasks,
        members=ctx.members,
        state=what_if,
        config=ctx.config,
        timeline=ctx.timeline,
        workloads=dict(ctx.workloads),
        now=ctx.now,
    )
    owned = assigned_tasks(member.id, ctx.tasks, what_if)
    workload = compute_workload(member, owned, ctx.config, ctx.now.date())
    sim_ctx.workloads[member.id] = workload

    conflicts = _task_conflicts(sim_ctx, task, member, what_if=True)
    if workload.overloaded:
        conflicts.append(_overload(sim_ctx, member, workload, task))
    return _sorted(sim_ctx, conflicts)
