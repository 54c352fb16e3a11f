"""Per-user workload and team capacity aggregation."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timedelta

from taskalloc.models import Task, TeamMember

from .config import SchedulingConfig
from .core import (
    ResourceAllocationMetrics,
    ScheduleConflict,
    ScheduledTaskHours,
    TeamAvailabilityDay,
    TeamCapacity,
    Workload,
)
from .duration import estimate_task_duration, estimate_task_hours
from .state import AssignmentState
from .timeline import Timeline

UNDERUTILIZED_THRESHOLD = 0.5


def task_hours(task: Task, config: SchedulingConfig) -> float:
    """Effort in hours for a task, including the buffer."""
    return estimate_task_hours(task, config.hours_per_day, config.buffer_time)


def available_hours(member: TeamMember, start: date, days: int) -> float:
    """Hours a member can work over `days` days starting at `start`.

    Each available day contributes min(max_hours_per_day, working-hours
    span). Totals are capped per ISO week by max_hours_per_week.
    """
    availability = member.availability
    per_week: dict[tuple[int, int], float] = {}
    for offset in range(days):
        day = start + timedelta(days=offset)
        if not availability.is_available(day):
            continue
        iso = day.isocalendar()
        week = (iso[0], iso[1])
        per_week[week] = per_week.get(week, 0.0) + availability.daily_hours()
    return sum(min(hours, availability.max_hours_per_week) for hours in per_week.values())


def assigned_tasks(member_id: str, tasks: dict[str, Task], state: AssignmentState) -> list[Task]:
    """Not-done tasks currently owned by a user, in snapshot order."""
    owned = set(state.tasks_of(member_id))
    return [task for task_id, task in tasks.items() if task_id in owned and not task.is_done]


def skill_utilization(tasks: Sequence[Task], config: SchedulingConfig) -> dict[str, float]:
    """Fraction of assigned hours that require each skill category."""
    total = 0.0
    by_category: dict[str, float] = {}
    for task in tasks:
        hours = task_hours(task, config)
        total += hours
        for category in {skill.category for skill in task.requirements.required_skills}:
            by_category[category] = by_category.get(category, 0.0) + hours
    if total <= 0:
        return {}
    return {category: hours / total for category, hours in sorted(by_category.items())}


def compute_workload(
    member: TeamMember,
    tasks: Sequence[Task],
    config: SchedulingConfig,
    start: date,
) -> Workload:
    estimated = sum(task_hours(task, config) for task in tasks)
    available = available_hours(member, start, config.scheduling_horizon)
    utilization = estimated / available if available > 0 else 0.0
    return Workload(
        user_id=member.id,
        current_tasks=len(tasks),
        estimated_hours=estimated,
        available_hours=available,
        utilization_rate=utilization,
        overloaded=utilization > config.max_utilization,
        skill_utilization=skill_utilization(tasks, config),
    )


def compute_workloads(
    tasks: Sequence[Task],
    members: Sequence[TeamMember],
    state: AssignmentState,
    config: SchedulingConfig,
    start: date,
) -> dict[str, Workload]:
    """Workloads of every active member over the scheduling horizon."""
    task_map = {task.id: task for task in tasks}
    return {
        member.id: compute_workload(
            member, assigned_tasks(member.id, task_map, state), config, start
        )
        for member in members
        if member.is_active
    }


def _date_range(start: date, end: date) -> list[date]:
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def daily_task_hours(
    member: TeamMember,
    tasks: Sequence[Task],
    timeline: Timeline,
    config: SchedulingConfig,
) -> dict[date, list[ScheduledTaskHours]]:
    """Spread each task's hours evenly over the member's available days in its window.

    A window without any available day keeps its hours on its calendar
    days so that the work stays visible.
    """
    schedule: dict[date, list[ScheduledTaskHours]] = {}
    for task in tasks:
        window_days = timeline.window(task).days()
        days = [day for day in window_days if member.availability.is_available(day)] or window_days
        if not days:
            continue
        per_day = task_hours(task, config) / len(days)
        for day in days:
            schedule.setdefault(day, []).append(
                ScheduledTaskHours(
                    task_id=task.id, title=task.title, hours=per_day, priority=task.priority
                )
            )
    return schedule


def team_availability(
    member: TeamMember,
    tasks: Sequence[Task],
    timeline: Timeline,
    config: SchedulingConfig,
    start: date,
    end: date,
) -> list[TeamAvailabilityDay]:
    """Day-by-day calendar for one member over [start, end]."""
    schedule = daily_task_hours(member, tasks, timeline, config)
    calendar: list[TeamAvailabilityDay] = []
    for day in _date_range(start, end):
        available = member.is_active and member.availability.is_available(day)
        working = member.availability.daily_hours() if available else 0.0
        entries = schedule.get(day, [])
        scheduled = sum(entry.hours for entry in entries)
        calendar.append(
            TeamAvailabilityDay(
                user_id=member.id,
                date=day,
                available=available,
                working_hours=working,
                scheduled_hours=scheduled,
                utilization=scheduled / working if working > 0 else 0.0,
                tasks=entries,
            )
        )
    return calendar


def team_capacity(  # noqa: PLR0913 - aggregation needs the full snapshot
    members: Sequence[TeamMember],
    tasks: Sequence[Task],
    state: AssignmentState,
    timeline: Timeline,
    config: SchedulingConfig,
    start: date,
    end: date,
) -> list[TeamCapacity]:
    """Aggregate capacity of the active team for each day in [start, end]."""
    task_map = {task.id: task for task in tasks}
    active = [member for member in members if member.is_active]
    calendars = {
        member.id: {
            entry.date: entry
            for entry in team_availability(
                member, assigned_tasks(member.id, task_map, state), timeline, config, start, end
            )
        }
        for member in active
    }

    capacity: list[TeamCapacity] = []
    for day in _date_range(start, end):
        entries = [calendars[member.id][day] for member in active]
        present = [member for member in active if calendars[member.id][day].available]
        total_available = sum(entry.working_hours for entry in entries)
        total_scheduled = sum(entry.scheduled_hours for entry in entries)

        skill_counts: dict[str, int] = {}
        for member in present:
            for skill in member.skills:
                skill_counts[skill.name] = skill_counts.get(skill.name, 0) + 1

        capacity.append(
            TeamCapacity(
                date=day,
                total_members=len(active),
                available_members=len(present),
                total_available_hours=total_available,
                total_scheduled_hours=total_scheduled,
                utilization_rate=total_scheduled / total_available if total_available > 0 else 0.0,
                skill_coverage={
                    name: count / len(present) for name, count in sorted(skill_counts.items())
                },
                overloaded_members=[
                    e.user_id for e in entries if e.utilization > config.max_utilization
                ],
                underutilized_members=[
                    e.user_id
                    for e in entries
                    if e.available and e.utilization < UNDERUTILIZED_THRESHOLD
                ],
            )
        )
    return capacity


def _created_in_range(task: Task, start: datetime | None, end: datetime | None) -> bool:
    if task.created_at is None:
        return True
    if start is not None and task.created_at < start:
        return False
    return not (end is not None and task.created_at > end)


def resource_metrics(  # noqa: PLR0913 - aggregation needs the full snapshot
    tasks: Sequence[Task],
    workloads: dict[str, Workload],
    state: AssignmentState,
    conflicts: Sequence[ScheduleConflict],
    now: datetime,
    start: datetime | None = None,
    end: datetime | None = None,
) -> ResourceAllocationMetrics:
    """Allocation summary for tasks created within [start, end]."""
    in_range = [task for task in tasks if _created_in_range(task, start, end)]
    assignments = state.assignments()
    assigned = [task for task in in_range if task.id in assignments]
    done = [task for task in in_range if task.is_done]

    total_hours = 0.0
    category_hours: dict[str, float] = {}
    for workload in workloads.values():
        total_hours += workload.estimated_hours
        for category, fraction in workload.skill_utilization.items():
            category_hours[category] = (
                category_hours.get(category, 0.0) + fraction * workload.estimated_hours
            )

    utilizations = [workload.utilization_rate for workload in workloads.values()]
    return ResourceAllocationMetrics(
        date=now,
        total_tasks=len(in_range),
        assigned_tasks=len(assigned),
        unassigned_tasks=len(in_range) - len(assigned),
        average_utilization=sum(utilizations) / len(utilizations) if utilizations else 0.0,
        skill_utilization={
            category: hours / total_hours
            for category, hours in sorted(category_hours.items())
            if total_hours > 0
        },
        workload_distribution={
            user_id: workload.utilization_rate for user_id, workload in workloads.items()
        },
        conflict_rate=len(conflicts) / len(assigned) if assigned else 0.0,
        completion_rate=len(done) / len(in_range) if in_range else 0.0,
        average_task_duration=(
            sum(estimate_task_duration(task) for task in in_range) / len(in_range)
            if in_range
            else 0.0
        ),
    )
