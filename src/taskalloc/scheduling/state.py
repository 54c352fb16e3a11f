"""Mutable assignment state shared by the orchestrator, resolver and optimizer.

The task snapshot is read-only; everything the engine decides (who owns a
task, how far a task start was pushed, deadline extensions, assignments
waiting for confirmation) lives here. Commits are serialized per user.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass

from taskalloc.logger import get_logger
from taskalloc.models import Task

logger = get_logger()


@dataclass
class ResourceRequest:
    """An approved request for extra hands on a task."""

    task_id: str
    user_id: str
    note: str


class AssignmentState:
    """Current task ownership plus resolver adjustments.

    Each user has a re-entrant lock. Any read-modify-write touching a
    user's workload must run inside `lock_users`, which acquires the locks
    of all affected users in sorted order so that concurrent commits on
    overlapping users cannot deadlock.
    """

    def __init__(self, tasks: Sequence[Task] = ()) -> None:
        self._assignments: dict[str, str] = {
            task.id: task.assigned_to for task in tasks if task.assigned_to
        }
        self._pending: dict[str, str] = {}
        self.start_shifts: dict[str, float] = {}
        self.deadline_extensions: dict[str, float] = {}
        self.resource_requests: list[ResourceRequest] = []
        self.acknowledged: set[str] = set()  # conflict ids accepted by a human
        self._locks: dict[str, threading.RLock] = {}
        self._registry = threading.Lock()

    # Locking

    def _lock_for(self, user_id: str) -> threading.RLock:
        with self._registry:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[user_id] = lock
            return lock

    @contextmanager
    def lock_users(self, user_ids: Iterable[str | None]) -> Iterator[None]:
        """Hold the locks of every given user (None entries are ignored)."""
        ordered = sorted({user_id for user_id in user_ids if user_id})
        locks = [self._lock_for(user_id) for user_id in ordered]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()

    # Queries

    def assignee(self, task_id: str) -> str | None:
        with self._registry:
            return self._assignments.get(task_id)

    def assignments(self) -> dict[str, str]:
        with self._registry:
            return dict(self._assignments)

    def tasks_of(self, user_id: str) -> list[str]:
        with self._registry:
            return [task_id for task_id, owner in self._assignments.items() if owner == user_id]

    def pending(self) -> dict[str, str]:
        with self._registry:
            return dict(self._pending)

    def start_shift(self, task_id: str) -> float:
        return self.start_shifts.get(task_id, 0.0)

    def deadline_extension(self, task_id: str) -> float:
        return self.deadline_extensions.get(task_id, 0.0)

    # Mutations

    def commit(self, task_id: str, user_id: str, expected_previous: str | None) -> bool:
        """Assign a task if its owner is still `expected_previous`.

        Returns False when another caller changed the owner in between.
        """
        with self.lock_users([user_id, expected_previous]), self._registry:
            if self._assignments.get(task_id) != expected_previous:
                return False
            self._assignments[task_id] = user_id
            self._pending.pop(task_id, None)
        logger.changes(f"Assigned {task_id} to {user_id} (was {expected_previous or 'unassigned'})")
        return True

    def revert(self, task_id: str, previous: str | None) -> None:
        """Restore the owner a task had before a tentative commit."""
        with self._registry:
            current = self._assignments.get(task_id)
        with self.lock_users([current, previous]), self._registry:
            if previous is None:
                self._assignments.pop(task_id, None)
            else:
                self._assignments[task_id] = previous
        logger.changes(f"Reverted {task_id} to {previous or 'unassigned'}")

    def set_pending(self, task_id: str, user_id: str) -> None:
        with self.lock_users([user_id]), self._registry:
            self._pending[task_id] = user_id

    def confirm_pending(self, task_id: str) -> str | None:
        """Commit a pending assignment. Returns the new owner, or None if nothing is pending."""
        with self._registry:
            user_id = self._pending.get(task_id)
            previous = self._assignments.get(task_id)
        if user_id is None:
            return None
        if not self.commit(task_id, user_id, previous):
            return None
        return user_id

    def shift_start(self, task_id: str, days: float) -> None:
        self.start_shifts[task_id] = self.start_shift(task_id) + days
        logger.changes(f"Moved start of {task_id} by {days:+.1f} days")

    def extend_deadline(self, task_id: str, days: float) -> None:
        self.deadline_extensions[task_id] = self.deadline_extension(task_id) + days
        logger.changes(f"Extended deadline of {task_id} by {days:.1f} days")

    def acknowledge(self, conflict_id: str) -> None:
        self.acknowledged.add(conflict_id)

    def request_resources(self, task_id: str, user_id: str, note: str) -> None:
        self.resource_requests.append(ResourceRequest(task_id=task_id, user_id=user_id, note=note))
        logger.changes(f"Requested additional resources for {task_id}")

    def clone(self) -> AssignmentState:
        """Independent copy for what-if evaluation."""
        copy = AssignmentState()
        copy._assignments = self.assignments()
        copy._pending = self.pending()
        copy.start_shifts = dict(self.start_shifts)
        copy.deadline_extensions = dict(self.deadline_extensions)
        copy.resource_requests = list(self.resource_requests)
        copy.acknowledged = set(self.acknowledged)
        return copy

    def simulate(self, task_id: str, user_id: str) -> AssignmentState:
        """What-if copy with one extra assignment."""
        copy = self.clone()
        copy._assignments[task_id] = user_id
        return copy
