"""Tests for conflict detection."""

from datetime import timedelta

import pytest

from taskalloc.scheduling import (
    AssignmentState,
    ConflictKind,
    detect_conflicts,
    simulate_assignment_conflicts,
)
from taskalloc.scheduling.conflicts import (
    deadline_severity,
    outside_working_hours,
    overload_severity,
    timezone_matches,
)
from tests.conftest import (
    MONDAY,
    NOW,
    build_context,
    make_member,
    make_task,
    skill,
    window,
)


class TestOverload:
    """Test overload detection."""

    def test_attached_to_cheapest_task(self) -> None:
        """The overload is reported on the lowest-priority task."""
        tasks = [
            make_task("t1", priority="high", hours=100, assigned_to="alice"),
            make_task("t2", priority="low", hours=100, assigned_to="alice"),
        ]
        ctx = build_context(tasks, [make_member("alice"), make_member("bob")])

        conflicts = detect_conflicts(ctx)

        assert [c.id for c in conflicts] == ["overload-t2-alice"]
        assert conflicts[0].kind == ConflictKind.OVERLOAD
        assert conflicts[0].severity == "high"
        assert conflicts[0].detected_at == NOW
        assert conflicts[0].status == "detected"

    @pytest.mark.parametrize(
        ("utilization", "expected"),
        [(1.1, "medium"), (1.3, "high"), (1.6, "critical")],
    )
    def test_severity(self, utilization: float, expected: str) -> None:
        """Severity grows with utilization."""
        assert overload_severity(utilization) == expected


class TestSkillMismatch:
    """Test skill coverage checks."""

    def test_missing_skill(self) -> None:
        """No required skill held means high severity."""
        tasks = [make_task("t1", skills=[skill("python", 3)], assigned_to="alice")]
        ctx = build_context(tasks, [make_member("alice", skills=[skill("python", 1)])])

        conflicts = detect_conflicts(ctx)

        assert [c.kind for c in conflicts] == [ConflictKind.SKILL_MISMATCH]
        assert conflicts[0].severity == "high"
        assert "python" in conflicts[0].description

    def test_partial_coverage(self) -> None:
        """Holding half the skills is a medium conflict."""
        tasks = [
            make_task("t1", skills=[skill("python"), skill("sql")], assigned_to="alice")
        ]
        ctx = build_context(tasks, [make_member("alice", skills=[skill("python", 5)])])

        conflicts = detect_conflicts(ctx)

        assert conflicts[0].severity == "medium"


class TestDeadlineAndDependency:
    """Test timing conflicts."""

    def test_deadline_conflict(self) -> None:
        """A five-day feature due in two days is three days late."""
        tasks = [
            make_task(
                "t1",
                task_type="feature",
                deadline=NOW + timedelta(days=2),
                assigned_to="alice",
            )
        ]
        ctx = build_context(tasks, [make_member("alice")])

        conflicts = detect_conflicts(ctx)

        assert [c.id for c in conflicts] == ["deadline_conflict-t1-alice"]
        assert conflicts[0].severity == "high"
        assert "3.0 days" in conflicts[0].description

    @pytest.mark.parametrize(
        ("days_late", "expected"),
        [(1.0, "medium"), (3.0, "high"), (8.0, "critical")],
    )
    def test_deadline_severity(self, days_late: float, expected: str) -> None:
        """Severity grows with lateness."""
        assert deadline_severity(days_late) == expected

    def test_dependency_conflict(self) -> None:
        """A fixed window starting before its dependency finishes conflicts."""
        tasks = [
            make_task("A"),
            make_task("B", deps=["A"], window=window(0, 4), assigned_to="alice"),
        ]
        ctx = build_context(tasks, [make_member("alice")])

        conflicts = detect_conflicts(ctx)

        assert [c.id for c in conflicts] == ["dependency_conflict-B-alice"]
        assert conflicts[0].severity == "high"

    def test_cyclic_graph_skips_timing_checks(self) -> None:
        """Deadline checks need an acyclic graph; other checks still run."""
        tasks = [
            make_task(
                "A",
                deps=["B"],
                deadline=NOW - timedelta(days=5),
                skills=[skill("python")],
                assigned_to="alice",
            ),
            make_task("B", deps=["A"]),
        ]
        ctx = build_context(tasks, [make_member("alice")])

        conflicts = detect_conflicts(ctx)

        assert not ctx.timeline.is_acyclic
        assert [c.kind for c in conflicts] == [ConflictKind.SKILL_MISMATCH]


class TestDoubleBooking:
    """Test overlapping fixed windows."""

    def test_reported_on_later_task(self) -> None:
        """Two full-day bookings on the same day clash."""
        tasks = [
            make_task("t1", hours=8, window=window(0, 8), assigned_to="alice"),
            make_task("t2", hours=8, window=window(0, 8), assigned_to="alice"),
        ]
        ctx = build_context(tasks, [make_member("alice")])

        conflicts = detect_conflicts(ctx)

        assert [c.id for c in conflicts] == ["double_booking-t2-alice"]
        assert conflicts[0].severity == "high"

    def test_slack_absorbs_overlap(self) -> None:
        """Short tasks in long windows can share the time."""
        tasks = [
            make_task("t1", hours=2, window=window(0, 8), assigned_to="alice"),
            make_task("t2", hours=2, window=window(0, 8), assigned_to="alice"),
        ]
        ctx = build_context(tasks, [make_member("alice")])

        assert detect_conflicts(ctx) == []

    def test_different_users_do_not_clash(self) -> None:
        """Overlap only matters for the same user."""
        tasks = [
            make_task("t1", hours=8, window=window(0, 8), assigned_to="alice"),
            make_task("t2", hours=8, window=window(0, 8), assigned_to="bob"),
        ]
        ctx = build_context(tasks, [make_member("alice"), make_member("bob")])

        assert detect_conflicts(ctx) == []


class TestAvailability:
    """Test time off and working hours."""

    def test_vacation_during_task(self) -> None:
        """Vacation on a day the task runs is a high-severity conflict."""
        tasks = [make_task("t1", assigned_to="alice")]
        ctx = build_context(tasks, [make_member("alice", vacation={MONDAY})])

        conflicts = detect_conflicts(ctx)

        assert [c.id for c in conflicts] == ["availability_conflict-t1-alice"]
        assert conflicts[0].severity == "high"
        assert MONDAY.isoformat() in conflicts[0].description

    def test_fixed_window_outside_hours(self) -> None:
        """A 19:00-21:00 booking falls outside 09:00-17:00."""
        tasks = [make_task("t1", hours=1, window=window(10, 12), assigned_to="alice")]
        ctx = build_context(tasks, [make_member("alice")])

        conflicts = detect_conflicts(ctx)

        assert [c.kind for c in conflicts] == [ConflictKind.AVAILABILITY_CONFLICT]
        assert conflicts[0].severity == "medium"

    def test_working_hours_in_local_time(self) -> None:
        """Windows are converted to the member's zone before the hour check."""
        member = make_member("alice", timezone="UTC-5")

        # 14:00-16:00 UTC is 09:00-11:00 at UTC-5
        assert not outside_working_hours(member, window(5, 7))
        assert outside_working_hours(member, window(0, 2))


class TestTimezone:
    """Test timezone preference checks."""

    def test_far_zone_conflicts(self) -> None:
        """Nine hours apart is beyond the two-hour tolerance."""
        tasks = [make_task("t1", timezone="UTC+9", assigned_to="alice")]
        ctx = build_context(tasks, [make_member("alice")])

        conflicts = detect_conflicts(ctx)

        assert [c.id for c in conflicts] == ["timezone_conflict-t1-alice"]
        assert conflicts[0].severity == "low"

    def test_tolerance(self) -> None:
        """Zones within tolerance match."""
        member = make_member("alice", timezone="UTC+8")

        assert timezone_matches(member, "UTC+9", NOW, 2.0)
        assert not timezone_matches(member, "UTC-2", NOW, 2.0)
        assert timezone_matches(member, None, NOW, 2.0)


class TestDetectionScope:
    """Test filtering and ordering of detection results."""

    def test_acknowledged_conflicts_hidden(self) -> None:
        """Conflicts accepted through a resolution are not reported again."""
        tasks = [make_task("t1", timezone="UTC+9", assigned_to="alice")]
        state = AssignmentState(tasks)
        state.acknowledge("timezone_conflict-t1-alice")
        ctx = build_context(tasks, [make_member("alice")], state=state)

        assert detect_conflicts(ctx) == []

    def test_task_filter(self) -> None:
        """Only the requested tasks are checked."""
        tasks = [
            make_task("t1", timezone="UTC+9", assigned_to="alice"),
            make_task("t2", timezone="UTC+9", assigned_to="alice"),
        ]
        ctx = build_context(tasks, [make_member("alice")])

        assert [c.task_id for c in detect_conflicts(ctx, {"t2"})] == ["t2"]

    def test_done_and_unassigned_tasks_ignored(self) -> None:
        """Only assigned, unfinished work is checked."""
        tasks = [
            make_task("t1", timezone="UTC+9", assigned_to="alice", status="done"),
            make_task("t2", timezone="UTC+9"),
        ]
        ctx = build_context(tasks, [make_member("alice")])

        assert detect_conflicts(ctx) == []

    def test_ordered_by_task_then_kind(self) -> None:
        """Results follow snapshot order, then kind order."""
        tasks = [
            make_task("t1", timezone="UTC+9", skills=[skill("go")], assigned_to="alice"),
            make_task("t2", skills=[skill("go")], assigned_to="alice"),
        ]
        ctx = build_context(tasks, [make_member("alice")])

        ordered = [(c.task_id, c.kind) for c in detect_conflicts(ctx)]

        assert ordered == [
            ("t1", ConflictKind.SKILL_MISMATCH),
            ("t1", ConflictKind.TIMEZONE_CONFLICT),
            ("t2", ConflictKind.SKILL_MISMATCH),
        ]


class TestSimulation:
    """Test what-if conflict checks."""

    def test_simulation_does_not_assign(self) -> None:
        """Simulated conflicts leave the state untouched."""
        tasks = [make_task("t1", skills=[skill("python")])]
        member = make_member("alice")
        ctx = build_context(tasks, [member])

        conflicts = simulate_assignment_conflicts(ctx, tasks[0], member)

        assert [c.kind for c in conflicts] == [ConflictKind.SKILL_MISMATCH]
        assert ctx.state.assignee("t1") is None

    def test_simulation_reports_overload(self) -> None:
        """Adding a large task to a busy member predicts an overload."""
        tasks = [
            make_task("t1", hours=120, assigned_to="alice"),
            make_task("t2", hours=60),
        ]
        member = make_member("alice")
        ctx = build_context(tasks, [member])

        conflicts = simulate_assignment_conflicts(ctx, tasks[1], member)

        assert [c.kind for c in conflicts] == [ConflictKind.OVERLOAD]
        assert conflicts[0].task_id == "t2"
