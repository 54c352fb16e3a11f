"""Tests for workload, availability and capacity aggregation."""

from datetime import datetime, timedelta

import pytest

from taskalloc.models import WorkingHours
from taskalloc.scheduling import AssignmentState, SchedulingConfig, SchedulingEngine
from taskalloc.scheduling.workload import available_hours, compute_workloads, skill_utilization
from tests.conftest import MONDAY, NOW, make_member, make_task, skill


class TestAvailableHours:
    """Test capacity over a date range."""

    def test_full_week(self) -> None:
        """Five working days of eight hours."""
        assert available_hours(make_member("alice"), MONDAY, 7) == pytest.approx(40.0)

    def test_weekly_cap(self) -> None:
        """The weekly maximum caps each ISO week separately."""
        member = make_member("alice", max_hours_per_week=30.0)

        assert available_hours(member, MONDAY, 7) == pytest.approx(30.0)
        assert available_hours(member, MONDAY, 14) == pytest.approx(60.0)

    def test_vacation_removes_day(self) -> None:
        """Vacation days contribute nothing."""
        member = make_member("alice", vacation={MONDAY + timedelta(days=1)})

        assert available_hours(member, MONDAY, 7) == pytest.approx(32.0)

    def test_daily_hours_limited_by_working_window(self) -> None:
        """A short working window limits daily hours."""
        member = make_member("alice", working_hours=WorkingHours("09:00", "13:00"))

        assert available_hours(member, MONDAY, 7) == pytest.approx(20.0)

    def test_scheduling_horizon(self) -> None:
        """Thirty days from a Monday cover 22 working days."""
        assert available_hours(make_member("alice"), MONDAY, 30) == pytest.approx(176.0)


class TestComputeWorkloads:
    """Test per-user workload computation."""

    def test_active_members_only(self) -> None:
        """Inactive members have no workload entry; done tasks do not count."""
        tasks = [
            make_task("t1", hours=100, assigned_to="alice"),
            make_task("t2", hours=50, assigned_to="alice", status="done"),
        ]
        members = [make_member("alice"), make_member("bob", active=False)]

        workloads = compute_workloads(
            tasks, members, AssignmentState(tasks), SchedulingConfig(), MONDAY
        )

        assert set(workloads) == {"alice"}
        alice = workloads["alice"]
        assert alice.current_tasks == 1
        assert alice.estimated_hours == pytest.approx(120.0)
        assert alice.available_hours == pytest.approx(176.0)
        assert alice.utilization_rate == pytest.approx(120 / 176)
        assert not alice.overloaded

    def test_overloaded_above_max_utilization(self) -> None:
        """Utilization above the limit marks the member overloaded."""
        tasks = [
            make_task("t1", hours=100, assigned_to="alice"),
            make_task("t2", hours=100, assigned_to="alice"),
        ]

        workloads = compute_workloads(
            tasks, [make_member("alice")], AssignmentState(tasks), SchedulingConfig(), MONDAY
        )

        assert workloads["alice"].overloaded

    def test_skill_utilization_by_category(self) -> None:
        """Hours are attributed to the skill categories a task requires."""
        tasks = [
            make_task("t1", hours=10, skills=[skill("python")]),
            make_task("t2", hours=10, skills=[skill("writing", category="soft")]),
            make_task("t3", hours=10),
        ]

        shares = skill_utilization(tasks, SchedulingConfig())

        assert shares == pytest.approx({"soft": 1 / 3, "technical": 1 / 3})


def _engine() -> SchedulingEngine:
    tasks = [
        make_task("t1", hours=8, assigned_to="alice"),
        make_task("t2"),
        make_task("t3", status="done"),
    ]
    members = [
        make_member("alice", skills=[skill("python")]),
        make_member("bob", skills=[skill("python"), skill("go")]),
        make_member("carol", active=False),
    ]
    return SchedulingEngine(tasks, members, clock=lambda: NOW)


class TestTeamAvailability:
    """Test the per-member calendar."""

    def test_hours_spread_over_window(self) -> None:
        """A one-day task starting at 09:00 spreads over two calendar days."""
        result = _engine().get_team_availability("alice", MONDAY, MONDAY + timedelta(days=6))

        assert result.success
        days = result.value or []
        assert len(days) == 7
        assert days[0].scheduled_hours == pytest.approx(4.8)
        assert days[0].utilization == pytest.approx(0.6)
        assert [entry.task_id for entry in days[0].tasks] == ["t1"]
        assert days[1].scheduled_hours == pytest.approx(4.8)
        assert days[2].scheduled_hours == 0.0

    def test_weekend_unavailable(self) -> None:
        """Non-working days have no working hours."""
        days = _engine().get_team_availability("alice", MONDAY, MONDAY + timedelta(days=6)).value

        assert days is not None
        saturday = days[5]
        assert not saturday.available
        assert saturday.working_hours == 0.0

    def test_unknown_user(self) -> None:
        """Unknown users fail the call."""
        result = _engine().get_team_availability("nobody", MONDAY, MONDAY)

        assert not result.success
        assert "nobody" in (result.message or "")

    def test_inverted_range(self) -> None:
        """End before start is rejected."""
        result = _engine().get_team_availability("alice", MONDAY, MONDAY - timedelta(days=1))

        assert not result.success


class TestTeamCapacity:
    """Test team-wide daily capacity."""

    def test_working_day(self) -> None:
        """Capacity sums the active members."""
        result = _engine().get_team_capacity(MONDAY, MONDAY + timedelta(days=6))

        assert result.success
        monday = (result.value or [])[0]
        assert monday.total_members == 2
        assert monday.available_members == 2
        assert monday.total_available_hours == pytest.approx(16.0)
        assert monday.total_scheduled_hours == pytest.approx(4.8)
        assert monday.utilization_rate == pytest.approx(0.3)
        assert monday.skill_coverage == pytest.approx({"go": 0.5, "python": 1.0})
        assert monday.underutilized_members == ["bob"]
        assert monday.overloaded_members == []

    def test_weekend(self) -> None:
        """Nobody is available on Saturday."""
        days = _engine().get_team_capacity(MONDAY, MONDAY + timedelta(days=6)).value

        assert days is not None
        saturday = days[5]
        assert saturday.available_members == 0
        assert saturday.utilization_rate == 0.0
        assert saturday.skill_coverage == {}
        assert saturday.underutilized_members == []

    def test_inverted_range(self) -> None:
        """End before start is rejected."""
        result = _engine().get_team_capacity(MONDAY, MONDAY - timedelta(days=1))

        assert not result.success
        assert "end" in (result.message or "")


class TestResourceMetrics:
    """Test allocation metrics."""

    def test_counts_and_rates(self) -> None:
        """Counts cover every task in the snapshot."""
        metrics = _engine().get_resource_metrics()

        assert metrics.date == NOW
        assert metrics.total_tasks == 3
        assert metrics.assigned_tasks == 1
        assert metrics.unassigned_tasks == 2
        assert metrics.completion_rate == pytest.approx(1 / 3)
        assert metrics.conflict_rate == 0.0
        assert metrics.average_task_duration == pytest.approx(0.7)
        assert set(metrics.workload_distribution) == {"alice", "bob"}

    def test_created_range_filter(self) -> None:
        """Tasks created before the range start are left out."""
        tasks = [
            make_task("old", created_at=datetime(2024, 1, 1)),
            make_task("new", created_at=datetime(2025, 1, 2)),
        ]
        engine = SchedulingEngine(tasks, [make_member("alice")], clock=lambda: NOW)

        metrics = engine.get_resource_metrics(start=datetime(2025, 1, 1))

        assert metrics.total_tasks == 1
