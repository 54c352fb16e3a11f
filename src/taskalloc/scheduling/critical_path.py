"""Critical path analysis (CPM) and delay impact propagation.

All timings are in days relative to project start (day 0). The analysis
requires an acyclic graph: run `validate_dependencies` first, or catch the
`CircularDependencyError` raised while building the graph.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta

from taskalloc.exceptions import UnknownTaskError
from taskalloc.logger import debug_enabled, get_logger
from taskalloc.models import Task

from .core import (
    CRITICAL_SLACK_EPSILON,
    CriticalPathResult,
    DelayedTask,
    DependencyLink,
    ImpactAnalysis,
    TaskNode,
)
from .duration import estimate_task_duration
from .graph import DependencyGraph, build_dependency_graph

logger = get_logger()

# Presentation layout for graph rendering
CANVAS_WIDTH = 800
LEVEL_HEIGHT = 120
TOP_MARGIN = 100

_TIE_TOLERANCE = 1e-9


def _build_nodes(graph: DependencyGraph) -> list[TaskNode]:
    members = graph.level_members()
    nodes: list[TaskNode] = []
    for task_id in graph.ids:
        level = graph.levels[task_id]
        peers = members[level]
        position = peers.index(task_id)
        nodes.append(
            TaskNode(
                id=task_id,
                task=graph.tasks[task_id],
                level=level,
                position=position,
                dependencies=list(graph.dependencies[task_id]),
                dependents=list(graph.dependents[task_id]),
                x=(position + 1) * (CANVAS_WIDTH / (len(peers) + 1)),
                y=level * LEVEL_HEIGHT + TOP_MARGIN,
                duration=estimate_task_duration(graph.tasks[task_id]),
            )
        )
    return nodes


def _forward_pass(nodes: dict[str, TaskNode], ordered: list[str]) -> None:
    for task_id in ordered:
        node = nodes[task_id]
        node.earliest_start = max(
            (nodes[dep_id].earliest_finish for dep_id in node.dependencies), default=0.0
        )
        node.earliest_finish = node.earliest_start + node.duration


def _backward_pass(nodes: dict[str, TaskNode], ordered: list[str], project_duration: float) -> None:
    for task_id in reversed(ordered):
        node = nodes[task_id]
        node.latest_finish = min(
            (nodes[dep_id].latest_start for dep_id in node.dependents), default=project_duration
        )
        node.latest_start = node.latest_finish - node.duration
        node.slack = node.latest_start - node.earliest_start
        node.is_critical = node.slack <= CRITICAL_SLACK_EPSILON


def _extract_critical_path(nodes: list[TaskNode], topo_order: list[str]) -> list[str]:
    """Pick the longest chain of critical nodes from a start boundary to an end boundary.

    Walks critical nodes in reverse topological order keeping, for each node,
    the heaviest chain to an end boundary. Ties keep the dependent discovered
    first, then the start node that comes first in input order, which
    matches a depth-first enumeration that only replaces strictly longer
    paths.
    """
    by_id = {node.id: node for node in nodes}
    critical = [node for node in nodes if node.is_critical]
    if not critical:
        return []
    critical_ids = {node.id for node in critical}

    starts = [n for n in critical if not any(d in critical_ids for d in n.dependencies)]
    ends = {n.id for n in critical if not any(d in critical_ids for d in n.dependents)}
    if not starts or not ends:
        return [node.id for node in critical]

    best: dict[str, tuple[float, list[str]]] = {}
    for task_id in reversed(topo_order):
        if task_id not in critical_ids:
            continue
        node = by_id[task_id]
        if task_id in ends:
            best[task_id] = (node.duration, [task_id])
            continue
        chosen: tuple[float, list[str]] | None = None
        for dependent_id in node.dependents:
            candidate = best.get(dependent_id)
            if candidate is None:
                continue
            if chosen is None or candidate[0] > chosen[0] + _TIE_TOLERANCE:
                chosen = candidate
        if chosen is not None:
            best[task_id] = (node.duration + chosen[0], [task_id, *chosen[1]])

    path: list[str] = []
    longest = 0.0
    for start in starts:
        candidate = best.get(start.id)
        if candidate and candidate[0] > longest + _TIE_TOLERANCE:
            longest, path = candidate
    return path


def calculate_critical_path(
    tasks: Sequence[Task], graph: DependencyGraph | None = None
) -> CriticalPathResult:
    """Run forward and backward passes and extract the critical chain.

    Raises:
        CircularDependencyError: If the dependency graph is cyclic
    """
    graph = graph or build_dependency_graph(tasks)
    node_list = _build_nodes(graph)
    if not node_list:
        return CriticalPathResult(
            nodes=[], links=[], critical_path=[], project_duration=0.0, levels=0
        )

    nodes = {node.id: node for node in node_list}
    by_level = sorted(graph.ids, key=lambda task_id: graph.levels[task_id])

    _forward_pass(nodes, by_level)
    project_duration = max(node.earliest_finish for node in node_list)
    _backward_pass(nodes, by_level, project_duration)
    if debug_enabled():
        for node in node_list:
            logger.debug(
                f"  {node.id}: ES={node.earliest_start:.2f} EF={node.earliest_finish:.2f} "
                f"LS={node.latest_start:.2f} LF={node.latest_finish:.2f} slack={node.slack:.2f}"
            )

    critical_path = _extract_critical_path(node_list, graph.topo_order)
    on_path = set(critical_path)
    links = [
        DependencyLink(
            source=dep_id,
            target=node.id,
            is_critical=dep_id in on_path and node.id in on_path,
        )
        for node in node_list
        for dep_id in node.dependencies
    ]

    logger.checks(
        f"Critical path: {' -> '.join(critical_path) or '(none)'} "
        f"(project duration {project_duration:.1f} days)"
    )
    return CriticalPathResult(
        nodes=node_list,
        links=links,
        critical_path=critical_path,
        project_duration=project_duration,
        levels=graph.max_level + 1,
    )


def analyze_delay_impact(
    tasks: Sequence[Task],
    task_id: str,
    delay_days: float,
    *,
    now: datetime | None = None,
    result: CriticalPathResult | None = None,
) -> ImpactAnalysis:
    """Propagate a hypothetical delay of one task along its dependents.

    Dates are anchored at `now` (default: the current local time), not at
    task creation: a task's original start is `now + earliest_start` days
    and its original end `now + earliest_finish` days. Both shift by
    `delay_days` only when the delay touches the critical path.

    Raises:
        UnknownTaskError: If `task_id` is not in `tasks`
        CircularDependencyError: If the dependency graph is cyclic
    """
    graph = build_dependency_graph(tasks)
    if task_id not in graph.tasks:
        raise UnknownTaskError(f"Task {task_id} not found")
    result = result or calculate_critical_path(tasks, graph)
    node_map = result.node_map()

    affected = graph.reachable_dependents(task_id)
    impacted = node_map[task_id].is_critical or any(node_map[a].is_critical for a in affected)
    new_duration = result.project_duration + delay_days if impacted else result.project_duration

    anchor = now or datetime.now()  # noqa: DTZ005 - relative local anchor
    task_delay = delay_days if impacted else 0.0
    delayed_tasks = [
        DelayedTask(
            task_id=node.id,
            delay_days=task_delay,
            new_start_date=anchor + timedelta(days=node.earliest_start + task_delay),
            new_end_date=anchor + timedelta(days=node.earliest_finish + task_delay),
        )
        for node in (node_map[affected_id] for affected_id in affected)
    ]

    logger.checks(
        f"Delay of {delay_days} days on {task_id}: {len(affected)} affected tasks, "
        f"critical path impact={impacted}"
    )
    return ImpactAnalysis(
        task_id=task_id,
        delay_days=delay_days,
        affected_tasks=affected,
        critical_path_impact=impacted,
        new_project_duration=new_duration,
        delayed_tasks=delayed_tasks,
    )


def get_available_tasks(tasks: Sequence[Task]) -> list[Task]:
    """Not-done tasks whose every dependency exists and is done."""
    task_map = {task.id: task for task in tasks}
    return [
        task
        for task in tasks
        if not task.is_done
        and all(dep_id in task_map and task_map[dep_id].is_done for dep_id in task.dependencies)
    ]


def get_blocking_tasks(tasks: Sequence[Task]) -> list[Task]:
    """Not-done tasks that are a direct dependency of another not-done task."""
    task_map = {task.id: task for task in tasks}
    blocking: dict[str, Task] = {}
    for task in tasks:
        if task.is_done:
            continue
        for dep_id in task.dependencies:
            dep = task_map.get(dep_id)
            if dep is not None and not dep.is_done:
                blocking.setdefault(dep_id, dep)
    return list(blocking.values())
