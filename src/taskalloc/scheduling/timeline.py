"""Wall-clock task windows derived from CPM offsets and resolver adjustments."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta

from taskalloc.exceptions import CircularDependencyError
from taskalloc.logger import get_logger
from taskalloc.models import Task, TimeWindow

from .core import CriticalPathResult, TaskNode
from .critical_path import calculate_critical_path
from .duration import estimate_task_duration
from .state import AssignmentState

logger = get_logger()


class Timeline:
    """Places every task on the calendar relative to `now`.

    A task with a `required_availability` window keeps that fixed window.
    Any other task runs from `now + earliest_start` to `now + earliest_finish`
    days. Both are moved by the start shift recorded in the assignment
    state. On a cyclic graph there is no CPM result: `is_acyclic` is False
    and every task is placed at `now` for its estimated duration.
    """

    def __init__(self, tasks: Sequence[Task], state: AssignmentState, now: datetime) -> None:
        self.now = now
        self.state = state
        self.tasks = {task.id: task for task in tasks}
        self.warnings: list[str] = []
        self.result: CriticalPathResult | None
        try:
            self.result = calculate_critical_path(tasks)
        except CircularDependencyError as e:
            self.result = None
            self.warnings.append(f"Timing checks skipped: {e}")
            logger.warning(f"Timing checks skipped: {e}")
        self._nodes: dict[str, TaskNode] = self.result.node_map() if self.result else {}

    @property
    def is_acyclic(self) -> bool:
        return self.result is not None

    def node(self, task_id: str) -> TaskNode | None:
        return self._nodes.get(task_id)

    def base_window(self, task: Task) -> TimeWindow:
        """Window before any resolver shift."""
        fixed = task.requirements.required_availability
        if fixed is not None:
            return fixed
        node = self._nodes.get(task.id)
        if node is None:
            return TimeWindow(self.now, self.now + timedelta(days=estimate_task_duration(task)))
        return TimeWindow(
            self.now + timedelta(days=node.earliest_start),
            self.now + timedelta(days=node.earliest_finish),
        )

    def window(self, task: Task) -> TimeWindow:
        return self.base_window(task).shifted(self.state.start_shift(task.id))

    def is_fixed(self, task: Task) -> bool:
        return task.requirements.required_availability is not None

    def completion(self, task: Task) -> datetime:
        return self.window(task).end

    def deadline(self, task: Task) -> datetime | None:
        """Deadline including any approved extension."""
        if task.deadline is None:
            return None
        return task.deadline + timedelta(days=self.state.deadline_extension(task.id))

    def lateness_days(self, task: Task) -> float:
        """Days the estimated completion falls after the deadline (0 if on time)."""
        deadline = self.deadline(task)
        if deadline is None:
            return 0.0
        return max(0.0, (self.completion(task) - deadline).total_seconds() / 86400)

    def dependency_finish(self, task: Task) -> datetime | None:
        """Latest estimated completion among the task's not-done dependencies."""
        finishes = [
            self.completion(self.tasks[dep_id])
            for dep_id in task.dependencies
            if dep_id in self.tasks and not self.tasks[dep_id].is_done
        ]
        return max(finishes, default=None)

    def project_duration(self) -> float:
        return self.result.project_duration if self.result else 0.0
