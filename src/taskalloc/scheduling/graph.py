"""Dependency graph construction, leveling and validation."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from taskalloc.exceptions import CircularDependencyError, ValidationError
from taskalloc.logger import get_logger
from taskalloc.models import Task

from .core import DependencyIssue, DependencyValidationResult

logger = get_logger()

MAX_DIRECT_DEPENDENCIES = 5
MAX_DEPENDENCY_DEPTH = 10


@dataclass
class DependencyGraph:
    """Adjacency and topological levels for a task set.

    Tasks live in an index arena (`ids`) in input order. Dependencies that
    reference ids outside the task set are dropped from the adjacency maps.
    `dependents` lists are in discovery order: the order in which dependent
    tasks appear in the input.
    """

    ids: list[str]
    tasks: dict[str, Task]
    dependencies: dict[str, list[str]]
    dependents: dict[str, list[str]]
    levels: dict[str, int]
    topo_order: list[str]

    @property
    def max_level(self) -> int:
        return max(self.levels.values(), default=0)

    def level_members(self) -> dict[int, list[str]]:
        """Task ids grouped by level, each group in input order."""
        members: dict[int, list[str]] = {}
        for task_id in self.ids:
            members.setdefault(self.levels[task_id], []).append(task_id)
        return members

    def reachable_dependents(self, task_id: str) -> list[str]:
        """All tasks transitively reachable through dependent edges, in BFS order."""
        seen: set[str] = set()
        order: list[str] = []
        queue = deque(self.dependents.get(task_id, []))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            order.append(current)
            queue.extend(self.dependents.get(current, []))
        return order


def build_dependency_graph(tasks: Sequence[Task]) -> DependencyGraph:
    """Build adjacency maps and levels with an iterative topological sort.

    Level(t) is 0 without dependencies, else 1 + the max level of its
    dependencies.

    Raises:
        ValidationError: If two tasks share an id
        CircularDependencyError: If the graph contains a cycle
    """
    ids: list[str] = []
    task_map: dict[str, Task] = {}
    for task in tasks:
        if task.id in task_map:
            raise ValidationError(f"Duplicate task id: {task.id}")
        ids.append(task.id)
        task_map[task.id] = task

    dependencies: dict[str, list[str]] = {}
    dependents: dict[str, list[str]] = {task_id: [] for task_id in ids}
    for task in tasks:
        existing = [dep_id for dep_id in task.dependencies if dep_id in task_map]
        dependencies[task.id] = existing
        for dep_id in existing:
            dependents[dep_id].append(task.id)

    in_degree = {task_id: len(dependencies[task_id]) for task_id in ids}
    levels = dict.fromkeys(ids, 0)
    queue = deque(task_id for task_id in ids if in_degree[task_id] == 0)
    topo_order: list[str] = []

    while queue:
        current = queue.popleft()
        topo_order.append(current)
        for dependent_id in dependents[current]:
            levels[dependent_id] = max(levels[dependent_id], levels[current] + 1)
            in_degree[dependent_id] -= 1
            if in_degree[dependent_id] == 0:
                queue.append(dependent_id)

    if len(topo_order) != len(ids):
        unresolved = [task_id for task_id in ids if in_degree[task_id] > 0]
        raise CircularDependencyError(
            f"Circular dependency detected among tasks: {', '.join(unresolved)}",
            task_ids=unresolved,
        )

    level_count = max(levels.values(), default=0) + 1
    logger.debug(f"Built dependency graph: {len(ids)} tasks, {level_count} levels")
    return DependencyGraph(
        ids=ids,
        tasks=task_map,
        dependencies=dependencies,
        dependents=dependents,
        levels=levels,
        topo_order=topo_order,
    )


def _find_cycles(task_map: dict[str, Task]) -> list[list[str]]:
    """Find dependency cycles with an iterative depth-first search.

    Each cycle is returned as a closed path, e.g. ["A", "B", "A"].
    """
    in_progress, finished = 1, 2
    state: dict[str, int] = {}
    cycles: list[list[str]] = []

    def existing_deps(task_id: str) -> Iterator[str]:
        return (dep for dep in task_map[task_id].dependencies if dep in task_map)

    for root in task_map:
        if root in state:
            continue
        state[root] = in_progress
        path = [root]
        stack = [existing_deps(root)]
        while stack:
            descended = False
            for dep_id in stack[-1]:
                dep_state = state.get(dep_id)
                if dep_state == in_progress:
                    cycles.append([*path[path.index(dep_id) :], dep_id])
                elif dep_state is None:
                    state[dep_id] = in_progress
                    path.append(dep_id)
                    stack.append(existing_deps(dep_id))
                    descended = True
                    break
            if not descended:
                stack.pop()
                state[path.pop()] = finished

    return cycles


def validate_dependencies(tasks: Sequence[Task]) -> DependencyValidationResult:
    """Validate dependency references and acyclicity.

    Flags `nonexistent` for references to ids outside the task set and
    `circular` for every cycle found. Run this before critical path analysis.
    """
    task_map = {task.id: task for task in tasks}
    issues: list[DependencyIssue] = []
    warnings: list[str] = []

    for task in tasks:
        for dep_id in task.dependencies:
            if dep_id not in task_map:
                issues.append(
                    DependencyIssue(
                        kind="nonexistent",
                        task_id=task.id,
                        dependency_id=dep_id,
                        message=f"Task {task.id} depends on unknown task {dep_id}",
                    )
                )

    cycles = _find_cycles(task_map)
    for cycle in cycles:
        issues.append(
            DependencyIssue(
                kind="circular",
                task_id=cycle[0],
                dependency_id=cycle[1],
                message=f"Circular dependency: {' -> '.join(cycle)}",
            )
        )

    for task in tasks:
        if len(task.dependencies) > MAX_DIRECT_DEPENDENCIES:
            warnings.append(
                f'Task "{task.title or task.id}" has {len(task.dependencies)} dependencies '
                "- consider breaking it down"
            )

    if not cycles:
        depth = build_dependency_graph(tasks).max_level + 1 if tasks else 0
        if depth > MAX_DEPENDENCY_DEPTH:
            warnings.append(
                f"Maximum dependency depth is {depth} - "
                "consider flattening the dependency structure"
            )

    for issue in issues:
        logger.checks(f"Dependency check failed ({issue.kind}): {issue.message}")

    return DependencyValidationResult(
        is_valid=not issues, issues=issues, cycles=cycles, warnings=warnings
    )


def would_create_cycle(tasks: Sequence[Task], task_id: str, new_dependency_id: str) -> bool:
    """Check whether making `task_id` depend on `new_dependency_id` closes a cycle."""
    if task_id == new_dependency_id:
        return True
    task_map = {task.id: task for task in tasks}
    seen: set[str] = set()
    queue = deque([new_dependency_id])
    while queue:
        current = queue.popleft()
        if current == task_id:
            return True
        if current in seen or current not in task_map:
            continue
        seen.add(current)
        queue.extend(task_map[current].dependencies)
    return False


def get_dependency_chain(tasks: Sequence[Task], task_id: str) -> list[str]:
    """All transitive dependencies of a task in discovery order, without duplicates."""
    task_map = {task.id: task for task in tasks}
    chain: list[str] = []
    seen: set[str] = {task_id}
    queue = deque(task_map[task_id].dependencies if task_id in task_map else [])
    while queue:
        current = queue.popleft()
        if current in seen:
            continue
        seen.add(current)
        chain.append(current)
        if current in task_map:
            queue.extend(task_map[current].dependencies)
    return chain
