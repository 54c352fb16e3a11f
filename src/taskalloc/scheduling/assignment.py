"""Bulk auto-assignment of tasks to team members."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from taskalloc.exceptions import TaskAllocError
from taskalloc.logger import get_logger
from taskalloc.models import PRIORITY_RANK, Task, TeamMember

from .config import AlgorithmType, ConflictResolutionMode, SchedulingConfig
from .conflicts import ConflictContext, detect_conflicts
from .core import (
    AssignedTask,
    AssignmentRecommendation,
    AutoAssignRequest,
    AutoAssignResult,
    ScheduleConflict,
    SkippedTask,
)
from .recommender import eligible_candidates, recommend
from .resolution import resolve_conflict
from .state import AssignmentState

logger = get_logger()

# Blend used by the hybrid algorithm to rank tasks
HYBRID_TASK_WEIGHTS = {"priority": 0.5, "deadline": 0.3, "scarcity": 0.2}


def _select_tasks(
    request: AutoAssignRequest,
    tasks: Sequence[Task],
    state: AssignmentState,
    result: AutoAssignResult,
) -> list[Task]:
    """Resolve the request's task set, recording unknown and ineligible ids."""
    task_map = {task.id: task for task in tasks}
    if request.task_ids is None:
        return [
            task
            for task in tasks
            if task.status == "todo"
            and (request.force_reassign or state.assignee(task.id) is None)
        ]

    selected: list[Task] = []
    for task_id in dict.fromkeys(request.task_ids):
        task = task_map.get(task_id)
        owner = state.assignee(task_id)
        if task is None:
            result.errors.append(f"Task {task_id} not found")
            result.skipped_tasks.append(SkippedTask(task_id=task_id, reason="Task not found"))
        elif task.is_done:
            result.skipped_tasks.append(SkippedTask(task_id=task_id, reason="Task is done"))
        elif owner is not None and not request.force_reassign:
            result.skipped_tasks.append(
                SkippedTask(task_id=task_id, reason=f"Already assigned to {owner}")
            )
        else:
            selected.append(task)
    return selected


def order_tasks(
    tasks: list[Task],
    members: Sequence[TeamMember],
    config: SchedulingConfig,
    now: datetime,
) -> list[Task]:
    """Processing order for the configured algorithm. Ties keep snapshot order."""
    index = {task.id: position for position, task in enumerate(tasks)}
    algorithm = config.algorithm

    if algorithm in (AlgorithmType.PRIORITY_FIRST, AlgorithmType.LOAD_BALANCED):
        return sorted(
            tasks,
            key=lambda t: (
                -PRIORITY_RANK.get(t.priority, 2),
                t.created_at or datetime.max,
                index[t.id],
            ),
        )
    if algorithm == AlgorithmType.DEADLINE_DRIVEN:
        return sorted(
            tasks,
            key=lambda t: (t.deadline is None, t.deadline or datetime.max, index[t.id]),
        )

    pool_sizes = {task.id: len(eligible_candidates(task, members)) for task in tasks}
    if algorithm == AlgorithmType.SKILL_OPTIMIZED:
        return sorted(tasks, key=lambda t: (pool_sizes[t.id], index[t.id]))

    horizon = config.scheduling_horizon

    def blended(task: Task) -> float:
        priority = PRIORITY_RANK.get(task.priority, 2) / 3
        urgency = 0.0
        if task.deadline is not None:
            days_left = (task.deadline - now).total_seconds() / 86400
            urgency = 1 - min(max(days_left, 0.0), horizon) / horizon
        scarcity = 1 / pool_sizes[task.id] if pool_sizes[task.id] else 1.0
        return (
            HYBRID_TASK_WEIGHTS["priority"] * priority
            + HYBRID_TASK_WEIGHTS["deadline"] * urgency
            + HYBRID_TASK_WEIGHTS["scarcity"] * scarcity
        )

    return sorted(tasks, key=lambda t: (-blended(t), index[t.id]))


def _pick(
    recommendations: list[AssignmentRecommendation], config: SchedulingConfig
) -> AssignmentRecommendation | None:
    acceptable = [r for r in recommendations if r.confidence >= config.min_confidence]
    if not acceptable:
        return None
    if config.algorithm == AlgorithmType.LOAD_BALANCED:
        return min(acceptable, key=lambda r: (r.utilization_rate, -r.confidence, r.user_id))
    return acceptable[0]


class AutoAssigner:
    """Sequences tasks, commits the best candidate and checks the result for conflicts."""

    def __init__(  # noqa: PLR0913 - needs the full snapshot and state
        self,
        tasks: Sequence[Task],
        members: Sequence[TeamMember],
        state: AssignmentState,
        config: SchedulingConfig,
        now: datetime,
    ):
        self.tasks = list(tasks)
        self.members = list(members)
        self.state = state
        self.config = config
        self.now = now

    def _context(self) -> ConflictContext:
        return ConflictContext.build(self.tasks, self.members, self.state, self.config, self.now)

    def run(self, request: AutoAssignRequest) -> AutoAssignResult:
        result = AutoAssignResult()
        selected = _select_tasks(request, self.tasks, self.state, result)
        ordered = order_tasks(selected, self.members, self.config, self.now)
        logger.checks(f"Auto-assigning {len(ordered)} tasks ({self.config.algorithm.value})")

        confidences: list[int] = []
        for task in ordered:
            if request.cancel_event is not None and request.cancel_event.is_set():
                result.cancelled = True
                logger.warning("Auto-assignment cancelled")
                break
            result.metrics.tasks_processed += 1
            try:
                assigned = self._assign_one(task, request, result)
            except (TaskAllocError, ValueError) as e:
                result.errors.append(f"Task {task.id}: {e}")
                result.skipped_tasks.append(SkippedTask(task_id=task.id, reason=str(e)))
                continue
            if assigned is not None:
                confidences.append(assigned.confidence)

        result.metrics.tasks_assigned = len(result.assigned_tasks)
        result.metrics.average_confidence = (
            sum(confidences) / len(confidences) if confidences else 0.0
        )
        return result

    def _assign_one(
        self, task: Task, request: AutoAssignRequest, result: AutoAssignResult
    ) -> AssignedTask | None:
        ctx = self._context()
        best = _pick(recommend(ctx, task), self.config)
        if best is None:
            reason = "No candidate meets the minimum confidence"
            if not eligible_candidates(task, self.members):
                reason = "No eligible candidates"
            result.skipped_tasks.append(SkippedTask(task_id=task.id, reason=reason))
            return None

        previous = self.state.assignee(task.id)
        if previous == best.user_id:
            result.skipped_tasks.append(
                SkippedTask(task_id=task.id, reason=f"Already assigned to {previous}")
            )
            return None

        with self.state.lock_users([best.user_id, previous]):
            before = {c.id for c in detect_conflicts(ctx, {task.id})}
            if not self.state.commit(task.id, best.user_id, expected_previous=previous):
                result.skipped_tasks.append(
                    SkippedTask(task_id=task.id, reason="Task owner changed during assignment")
                )
                return None
            new_conflicts = [
                c for c in detect_conflicts(self._context(), {task.id}) if c.id not in before
            ]
            result.metrics.conflicts_detected += len(new_conflicts)
            result.conflicts.extend(new_conflicts)

            if len(new_conflicts) > self.config.max_conflicts_per_task:
                self.state.revert(task.id, previous)
                result.skipped_tasks.append(
                    SkippedTask(
                        task_id=task.id,
                        reason=f"Assignment to {best.user_id} creates {len(new_conflicts)} "
                        f"conflicts (limit {self.config.max_conflicts_per_task})",
                    )
                )
                return None

            entry = AssignedTask(
                task_id=task.id,
                user_id=best.user_id,
                confidence=best.confidence,
                reasons=list(best.reasons),
            )
            if new_conflicts and self.config.conflict_resolution == ConflictResolutionMode.MANUAL:
                self.state.revert(task.id, previous)
                self.state.set_pending(task.id, best.user_id)
                result.pending_tasks.append(entry)
                logger.changes(f"Assignment of {task.id} to {best.user_id} pending approval")
                return None

        self._resolve(new_conflicts, result)
        final_owner = self.state.assignee(task.id)
        if final_owner and final_owner != best.user_id:
            entry.reasons.append(f"Moved to {final_owner} to resolve conflicts")
            entry.user_id = final_owner
        result.assigned_tasks.append(entry)
        if request.notify_users and final_owner:
            result.notifications.append((final_owner, task.id))
        return entry

    def _resolve(self, conflicts: list[ScheduleConflict], result: AutoAssignResult) -> None:
        for conflict in conflicts:
            outcome = resolve_conflict(conflict, self._context())
            if outcome.applied:
                result.metrics.conflicts_resolved += 1


def auto_assign(  # noqa: PLR0913 - needs the full snapshot and state
    request: AutoAssignRequest,
    tasks: Sequence[Task],
    members: Sequence[TeamMember],
    state: AssignmentState,
    config: SchedulingConfig,
    now: datetime,
) -> AutoAssignResult:
    """Assign tasks in bulk. Per-task failures land in `skipped_tasks` and `errors`."""
    return AutoAssigner(tasks, members, state, config, now).run(request)
