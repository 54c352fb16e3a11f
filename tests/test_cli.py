"""Tests for CLI commands."""

from pathlib import Path

import yaml
from typer.testing import CliRunner

from taskalloc.cli import app

runner = CliRunner()

SNAPSHOT = str(Path(__file__).parent / "fixtures" / "team_snapshot.yaml")
NOW_ARGS = ["--now", "2025-01-06T09:00"]


def _write_snapshot(tmp_path: Path, data: dict[str, object]) -> str:
    path = tmp_path / "snapshot.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestValidateCommand:
    """Test the validate command."""

    def test_valid(self) -> None:
        result = runner.invoke(app, [*NOW_ARGS, "validate", SNAPSHOT])

        assert result.exit_code == 0
        assert "OK: 3 tasks, dependencies are valid" in result.stdout

    def test_cycle(self, tmp_path: Path) -> None:
        """Cycles are reported and exit non-zero."""
        path = _write_snapshot(
            tmp_path, {"tasks": {"a": {"dependencies": ["b"]}, "b": {"dependencies": ["a"]}}}
        )

        result = runner.invoke(app, ["validate", path])

        assert result.exit_code == 1
        assert "Circular dependencies detected" in result.output

    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["validate", str(tmp_path / "missing.yaml")])

        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_bad_now(self) -> None:
        result = runner.invoke(app, ["--now", "yesterday", "validate", SNAPSHOT])

        assert result.exit_code == 1
        assert "Invalid --now value 'yesterday'" in result.output

    def test_utc_now_and_deadline(self, tmp_path: Path) -> None:
        path = _write_snapshot(
            tmp_path,
            {
                "tasks": {"t1": {"assigned_to": "alice", "deadline": "2025-01-07T10:00:00Z"}},
                "members": {"alice": {}},
            },
        )

        result = runner.invoke(app, ["--now", "2025-01-06T09:00:00Z", "conflicts", path])

        assert result.exception is None
        assert result.exit_code == 0


class TestTimelineCommands:
    """Test critical-path, impact and ready."""

    def test_critical_path(self) -> None:
        result = runner.invoke(app, [*NOW_ARGS, "critical-path", SNAPSHOT])

        assert result.exit_code == 0
        assert "Critical path: design -> docs" in result.stdout
        assert "Project duration: 3.90 days" in result.stdout
        assert "Levels: 2" in result.stdout

    def test_impact(self) -> None:
        result = runner.invoke(app, [*NOW_ARGS, "impact", SNAPSHOT, "design", "--delay", "2"])

        assert result.exit_code == 0
        assert "Affected tasks: build, docs" in result.stdout
        assert "Critical path impact: yes" in result.stdout
        assert "New project duration: 5.90 days" in result.stdout

    def test_impact_unknown_task(self) -> None:
        result = runner.invoke(app, [*NOW_ARGS, "impact", SNAPSHOT, "nope"])

        assert result.exit_code == 1
        assert "Task nope not found" in result.output

    def test_ready(self) -> None:
        result = runner.invoke(app, [*NOW_ARGS, "ready", SNAPSHOT])

        assert result.exit_code == 0
        available, blocking = result.stdout.split("Blocking:")
        assert "design [high] Design the API" in available
        assert "build" not in available
        assert "design [todo]" in blocking


class TestAssignmentCommands:
    """Test recommend and assign."""

    def test_recommend(self) -> None:
        result = runner.invoke(app, [*NOW_ARGS, "recommend", SNAPSHOT, "design"])

        assert result.exit_code == 0
        lines = result.stdout.splitlines()
        assert lines[0].startswith("alice")
        assert "Has all required skills" in result.stdout

    def test_assign(self, tmp_path: Path) -> None:
        output = tmp_path / "assignments.yaml"

        result = runner.invoke(app, [*NOW_ARGS, "assign", SNAPSHOT, "--output", str(output)])

        assert result.exit_code == 0
        assert "design -> alice (confidence 95)" in result.stdout
        assert "build -> alice" in result.stdout
        assert "docs -> bob" in result.stdout
        assert "Assigned 3/3 tasks" in result.stdout
        assert yaml.safe_load(output.read_text()) == {
            "assignments": {"build": "alice", "design": "alice", "docs": "bob"}
        }

    def test_assign_selected_tasks(self) -> None:
        result = runner.invoke(app, [*NOW_ARGS, "assign", SNAPSHOT, "-t", "docs", "-t", "nope"])

        assert result.exit_code == 0
        assert "docs -> bob" in result.stdout
        assert "Assigned 1/1 tasks" in result.stdout
        assert "Task nope not found" in result.output

    def test_assign_uses_config_file(self, tmp_path: Path) -> None:
        """--config overrides the scheduler settings."""
        config = tmp_path / "strict.yaml"
        config.write_text("scheduler:\n  min_confidence: 99\n")

        result = runner.invoke(app, [*NOW_ARGS, "--config", str(config), "assign", SNAPSHOT])

        assert result.exit_code == 0
        assert "Assigned 0/3 tasks" in result.stdout
        assert "No candidate meets the minimum confidence" in result.stdout


class TestConflictCommands:
    """Test conflicts, optimize and workloads."""

    def _mismatch(self, tmp_path: Path) -> str:
        return _write_snapshot(
            tmp_path,
            {
                "tasks": {
                    "t1": {
                        "assigned_to": "bob",
                        "requirements": {"required_skills": [{"name": "python", "level": 3}]},
                    }
                },
                "members": {
                    "alice": {"skills": [{"name": "python", "level": 4}]},
                    "bob": {"name": "Bob"},
                },
            },
        )

    def test_no_conflicts(self) -> None:
        result = runner.invoke(app, [*NOW_ARGS, "conflicts", SNAPSHOT])

        assert result.exit_code == 0
        assert "No conflicts detected" in result.stdout

    def test_conflicts(self, tmp_path: Path) -> None:
        result = runner.invoke(app, [*NOW_ARGS, "conflicts", self._mismatch(tmp_path)])

        assert result.exit_code == 0
        assert (
            "[high] skill_mismatch t1 (bob): Bob lacks required skills for t1: python"
            in result.stdout
        )
        assert "1 conflicts" in result.stdout

    def test_optimize_waits_for_approval(self, tmp_path: Path) -> None:
        """High severity needs approval in the default hybrid mode."""
        result = runner.invoke(app, [*NOW_ARGS, "optimize", self._mismatch(tmp_path)])

        assert result.exit_code == 0
        assert "Optimized: no (1 iterations, 0 conflicts resolved)" in result.stdout
        assert "1 conflicts remaining" in result.stdout

    def test_optimize_auto(self, tmp_path: Path) -> None:
        path = self._mismatch(tmp_path)
        (tmp_path / "taskalloc_config.yaml").write_text(
            "scheduler:\n  conflict_resolution: auto\n"
        )

        result = runner.invoke(app, [*NOW_ARGS, "optimize", path])

        assert result.exit_code == 0
        assert "Optimized: yes (1 iterations, 1 conflicts resolved)" in result.stdout
        assert "t1: bob -> alice" in result.stdout
        assert "0 conflicts remaining" in result.stdout

    def test_workloads(self, tmp_path: Path) -> None:
        result = runner.invoke(app, [*NOW_ARGS, "workloads", self._mismatch(tmp_path)])

        assert result.exit_code == 0
        assert "bob" in result.stdout
        assert "hours=9.6/176.0" in result.stdout


class TestCapacityCommand:
    """Test the capacity command."""

    def test_range(self) -> None:
        result = runner.invoke(
            app,
            [*NOW_ARGS, "capacity", SNAPSHOT, "--start", "2025-01-06", "--end", "2025-01-07"],
        )

        assert result.exit_code == 0
        lines = result.stdout.splitlines()
        assert len(lines) == 2
        assert lines[0].startswith("2025-01-06 members=2/2 hours=0.0/16.0")

    def test_default_week(self) -> None:
        result = runner.invoke(app, [*NOW_ARGS, "capacity", SNAPSHOT])

        assert result.exit_code == 0
        assert len(result.stdout.splitlines()) == 7
        assert "2025-01-11 members=0/2" in result.stdout

    def test_inverted_range(self) -> None:
        result = runner.invoke(
            app,
            [*NOW_ARGS, "capacity", SNAPSHOT, "--start", "2025-01-07", "--end", "2025-01-06"],
        )

        assert result.exit_code == 1
        assert "end: must not be before start" in result.output

    def test_bad_date(self) -> None:
        result = runner.invoke(app, [*NOW_ARGS, "capacity", SNAPSHOT, "--start", "soon"])

        assert result.exit_code == 1
        assert "Invalid --start date 'soon'" in result.output
