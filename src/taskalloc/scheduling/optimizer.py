"""Iterative schedule optimization: detect, resolve, recompute."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from taskalloc.logger import changes_enabled, get_logger
from taskalloc.models import PRIORITY_RANK, Task, TeamMember

from .config import AlgorithmType, SchedulingConfig
from .conflicts import ConflictContext, detect_conflicts, skill_coverage
from .core import (
    SEVERITY_RANK,
    OptimizationMetrics,
    ScheduleConflict,
    ScheduleOptimization,
)
from .resolution import ResolutionPlan, resolve_conflict
from .state import AssignmentState
from .workload import assigned_tasks

logger = get_logger()


@dataclass
class OptimizationRun:
    """Optimizer output plus what the engine needs to track afterwards."""

    optimization: ScheduleOptimization
    remaining_conflicts: list[ScheduleConflict]
    pending_plans: dict[str, tuple[ScheduleConflict, ResolutionPlan]] = field(
        default_factory=lambda: dict[str, tuple[ScheduleConflict, ResolutionPlan]]()
    )


def order_conflicts(
    conflicts: list[ScheduleConflict], ctx: ConflictContext
) -> list[ScheduleConflict]:
    """Resolution order for the configured algorithm. Ties keep detection order."""
    algorithm = ctx.config.algorithm

    def task_of(conflict: ScheduleConflict) -> Task | None:
        return ctx.tasks.get(conflict.task_id)

    if algorithm == AlgorithmType.PRIORITY_FIRST:

        def by_priority(conflict: ScheduleConflict) -> tuple[int, int]:
            task = task_of(conflict)
            rank = PRIORITY_RANK.get(task.priority, 2) if task else 0
            return (-rank, -SEVERITY_RANK[conflict.severity])

        return sorted(conflicts, key=by_priority)
    if algorithm == AlgorithmType.DEADLINE_DRIVEN:

        def by_deadline(conflict: ScheduleConflict) -> tuple[bool, datetime]:
            task = task_of(conflict)
            deadline = task.deadline if task else None
            return (deadline is None, deadline or datetime.max)

        return sorted(conflicts, key=by_deadline)
    return sorted(conflicts, key=lambda c: -SEVERITY_RANK[c.severity])


def compute_metrics(ctx: ConflictContext, conflict_count: int) -> OptimizationMetrics:
    """Team utilization, mean CPM completion (days from now) and skill match (0-100)."""
    estimated = sum(w.estimated_hours for w in ctx.workloads.values())
    available = sum(w.available_hours for w in ctx.workloads.values())

    completions: list[float] = []
    coverages: list[float] = []
    for member in ctx.members.values():
        for task in assigned_tasks(member.id, ctx.tasks, ctx.state):
            finish = ctx.timeline.completion(task)
            completions.append((finish - ctx.now).total_seconds() / 86400)
            coverages.append(skill_coverage(member, task.requirements.required_skills))

    return OptimizationMetrics(
        total_utilization=estimated / available if available > 0 else 0.0,
        average_completion_time=sum(completions) / len(completions) if completions else 0.0,
        conflict_count=conflict_count,
        skill_match_score=100 * sum(coverages) / len(coverages) if coverages else 0.0,
    )


class ScheduleOptimizer:
    """Runs detection and resolution passes until no conflict is left or the cap is hit."""

    def __init__(  # noqa: PLR0913 - needs the full snapshot and state
        self,
        tasks: Sequence[Task],
        members: Sequence[TeamMember],
        state: AssignmentState,
        config: SchedulingConfig,
        now: datetime,
        skip_ids: set[str] | None = None,
    ):
        self.tasks = list(tasks)
        self.members = list(members)
        self.state = state
        self.config = config
        self.now = now
        # Conflicts already waiting for approval are not re-attempted
        self.skip_ids = set(skip_ids or ())

    def _context(self) -> ConflictContext:
        return ConflictContext.build(self.tasks, self.members, self.state, self.config, self.now)

    def run(self) -> OptimizationRun:
        optimization = ScheduleOptimization()
        pending: dict[str, tuple[ScheduleConflict, ResolutionPlan]] = {}
        cap = self.config.max_optimization_iterations

        while optimization.iterations < cap:
            ctx = self._context()
            open_conflicts = [
                c
                for c in detect_conflicts(ctx)
                if c.id not in self.skip_ids and c.id not in pending
            ]
            if not open_conflicts:
                break
            optimization.iterations += 1
            logger.checks(
                f"Optimization pass {optimization.iterations}: {len(open_conflicts)} open conflicts"
            )
            if not self._pass(order_conflicts(open_conflicts, ctx), optimization, pending):
                break
        else:
            logger.warning(f"Optimization stopped after {cap} iterations")

        final_ctx = self._context()
        remaining = detect_conflicts(final_ctx)
        for index, conflict in enumerate(remaining):
            if conflict.id in pending:
                remaining[index] = pending[conflict.id][0]

        optimization.optimized = optimization.conflicts_resolved > 0 or bool(
            optimization.new_assignments
        )
        optimization.metrics = compute_metrics(final_ctx, len(remaining))
        if changes_enabled():
            for improvement in optimization.improvements:
                logger.changes(f"  {improvement}")
        return OptimizationRun(
            optimization=optimization, remaining_conflicts=remaining, pending_plans=pending
        )

    def _pass(
        self,
        conflicts: list[ScheduleConflict],
        optimization: ScheduleOptimization,
        pending: dict[str, tuple[ScheduleConflict, ResolutionPlan]],
    ) -> bool:
        """Attempt every conflict once. Returns True if anything was applied."""
        progress = False
        for conflict in conflicts:
            ctx = self._context()
            still_open = {c.id for c in detect_conflicts(ctx, {conflict.task_id})}
            if conflict.id not in still_open:
                continue
            outcome = resolve_conflict(conflict, ctx)
            if outcome.applied and outcome.plan is not None:
                progress = True
                optimization.conflicts_resolved += 1
                optimization.improvements.append(
                    f"Resolved {conflict.kind.value} on {conflict.task_id}: "
                    f"{outcome.plan.proposed_solution}"
                )
                if outcome.new_assignment is not None:
                    optimization.new_assignments.append(outcome.new_assignment)
            elif outcome.plan is not None and conflict.status == "resolving":
                pending[conflict.id] = (conflict, outcome.plan)
        return progress


def optimize_schedule(  # noqa: PLR0913 - needs the full snapshot and state
    tasks: Sequence[Task],
    members: Sequence[TeamMember],
    state: AssignmentState,
    config: SchedulingConfig,
    now: datetime,
    skip_ids: set[str] | None = None,
) -> OptimizationRun:
    return ScheduleOptimizer(tasks, members, state, config, now, skip_ids).run()

