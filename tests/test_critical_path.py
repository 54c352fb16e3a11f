"""Tests for critical path analysis and delay impact."""

import io
from datetime import timedelta

import pytest

from taskalloc.exceptions import CircularDependencyError, UnknownTaskError
from taskalloc.logger import setup_logger
from taskalloc.models import Task
from taskalloc.scheduling import (
    analyze_delay_impact,
    calculate_critical_path,
    get_available_tasks,
    get_blocking_tasks,
)
from tests.conftest import NOW, diamond, make_task


def _chain_with_slack() -> list[Task]:
    # A: 5 days, B: 1 day, C after both, E on its own
    return [
        make_task("A", task_type="feature"),
        make_task("B"),
        make_task("C", deps=["A", "B"]),
        make_task("E"),
    ]


class TestCalculateCriticalPath:
    """Test forward/backward passes and path extraction."""

    def test_diamond(self) -> None:
        """Equal branches: the first discovered branch forms the path."""
        result = calculate_critical_path(diamond())

        assert result.project_duration == pytest.approx(3.0)
        assert result.critical_path == ["A", "B", "D"]
        assert result.levels == 3
        nodes = result.node_map()
        assert nodes["B"].slack == pytest.approx(0.0)
        assert nodes["C"].slack == pytest.approx(0.0)
        assert all(node.is_critical for node in result.nodes)

    def test_node_timings(self) -> None:
        """Earliest and latest times per node."""
        nodes = calculate_critical_path(diamond()).node_map()

        assert nodes["D"].earliest_start == pytest.approx(2.0)
        assert nodes["D"].earliest_finish == pytest.approx(3.0)
        assert nodes["A"].latest_finish == pytest.approx(1.0)
        assert nodes["D"].dependencies == ["B", "C"]
        assert nodes["A"].dependents == ["B", "C"]

    def test_links_marked_critical_on_path_only(self) -> None:
        """A link is critical when both ends are on the extracted path."""
        links = calculate_critical_path(diamond()).links

        marked = {(link.source, link.target): link.is_critical for link in links}
        assert marked == {
            ("A", "B"): True,
            ("A", "C"): False,
            ("B", "D"): True,
            ("C", "D"): False,
        }

    def test_layout_positions(self) -> None:
        """Nodes are spread across the canvas per level."""
        nodes = calculate_critical_path(diamond()).node_map()

        assert nodes["A"].x == pytest.approx(400.0)
        assert nodes["A"].y == pytest.approx(100.0)
        assert nodes["B"].x == pytest.approx(800 / 3)
        assert nodes["C"].x == pytest.approx(1600 / 3)
        assert nodes["D"].y == pytest.approx(340.0)

    def test_slack_and_non_critical_tasks(self) -> None:
        """Shorter parallel work gets slack and leaves the path."""
        result = calculate_critical_path(_chain_with_slack())
        nodes = result.node_map()

        assert result.project_duration == pytest.approx(6.0)
        assert result.critical_path == ["A", "C"]
        assert nodes["B"].slack == pytest.approx(4.0)
        assert not nodes["B"].is_critical
        assert nodes["E"].slack == pytest.approx(5.0)

    def test_empty_input(self) -> None:
        """No tasks means a zero-length project."""
        result = calculate_critical_path([])

        assert result.nodes == []
        assert result.critical_path == []
        assert result.project_duration == 0.0
        assert result.levels == 0

    def test_single_task(self) -> None:
        """A lone task is its own critical path."""
        result = calculate_critical_path([make_task("solo", task_type="story")])

        assert result.critical_path == ["solo"]
        assert result.project_duration == pytest.approx(3.0)

    def test_cycle_raises(self) -> None:
        """Cyclic input is rejected."""
        tasks = [make_task("A", deps=["B"]), make_task("B", deps=["A"])]

        with pytest.raises(CircularDependencyError):
            calculate_critical_path(tasks)


class TestAnalyzeDelayImpact:
    """Test delay propagation."""

    def test_delay_on_critical_task(self) -> None:
        """Delaying the start of the critical path pushes everything."""
        impact = analyze_delay_impact(diamond(), "A", 2, now=NOW)

        assert impact.affected_tasks == ["B", "C", "D"]
        assert impact.critical_path_impact
        assert impact.new_project_duration == pytest.approx(5.0)
        delayed = {d.task_id: d for d in impact.delayed_tasks}
        assert delayed["B"].new_start_date == NOW + timedelta(days=3)
        assert delayed["B"].new_end_date == NOW + timedelta(days=4)
        assert delayed["D"].delay_days == 2

    def test_delay_without_critical_impact(self) -> None:
        """A floating task with no dependents does not move the project end."""
        impact = analyze_delay_impact(_chain_with_slack(), "E", 1, now=NOW)

        assert impact.affected_tasks == []
        assert not impact.critical_path_impact
        assert impact.new_project_duration == pytest.approx(6.0)
        assert impact.delayed_tasks == []

    def test_unknown_task(self) -> None:
        """Unknown ids are rejected."""
        with pytest.raises(UnknownTaskError):
            analyze_delay_impact(diamond(), "nope", 1, now=NOW)


class TestAvailableAndBlocking:
    """Test available and blocking task queries."""

    def test_available_tasks(self) -> None:
        """Only tasks whose dependencies all exist and are done are available."""
        tasks = [
            make_task("A", status="done"),
            make_task("B", deps=["A"]),
            make_task("C", deps=["B"]),
            make_task("E", deps=["missing"]),
        ]

        assert [task.id for task in get_available_tasks(tasks)] == ["B"]

    def test_blocking_tasks(self) -> None:
        """Unfinished tasks that others wait on block them."""
        tasks = [
            make_task("A", status="done"),
            make_task("B", deps=["A"]),
            make_task("C", deps=["B"]),
            make_task("D", deps=["B"]),
        ]

        assert [task.id for task in get_blocking_tasks(tasks)] == ["B"]

    def test_blocking_in_discovery_order(self) -> None:
        """Blocking tasks are listed in the order they are first depended on."""
        assert [task.id for task in get_blocking_tasks(diamond())] == ["A", "B", "C"]


class TestCriticalPathLogging:
    """Per-node timings are only formatted at debug verbosity."""

    @pytest.mark.parametrize(("verbosity", "lines"), [(2, 0), (3, 4)])
    def test_node_timings_logged_at_debug(self, verbosity: int, lines: int) -> None:
        stream = io.StringIO()
        setup_logger(verbosity, stream)

        calculate_critical_path(diamond())

        timing_lines = [line for line in stream.getvalue().splitlines() if "ES=" in line]
        assert len(timing_lines) == lines
        if lines:
            assert timing_lines[0].startswith("  A: ES=0.00")
