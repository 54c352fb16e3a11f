"""Command-line interface for taskalloc."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Annotated, NoReturn

import typer
import yaml

from . import context
from .exceptions import TaskAllocError
from .loader import discover_config, load_snapshot
from .logger import setup_logger
from .models import naive_local
from .scheduling import AlgorithmType, AutoAssignRequest, SchedulingEngine

app = typer.Typer(
    name="taskalloc",
    help="Task scheduling and resource allocation for small teams",
    add_completion=False,
)

SnapshotArg = Annotated[Path, typer.Argument(help="Path to the snapshot YAML file")]


@app.callback()
def main_callback(
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            help="Verbosity level: 0=silent (default), 1=show changes, 2=show all checks, 3=debug",
            min=0,
            max=3,
        ),
    ] = 0,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to config file (default: taskalloc_config.yaml)",
        ),
    ] = None,
    now: Annotated[
        str | None,
        typer.Option("--now", help="Evaluate as of this time (ISO format, default: current time)"),
    ] = None,
) -> None:
    """Global options for taskalloc commands."""
    setup_logger(verbose)
    context.set_config_path(config)
    context.set_now(_parse_datetime_option(now, "--now"))


def _parse_datetime_option(value: str | None, option_name: str) -> datetime | None:
    if value is None:
        return None
    text = value.strip()
    if text[-1:] in {"Z", "z"}:
        text = text[:-1] + "+00:00"
    try:
        return naive_local(datetime.fromisoformat(text))
    except ValueError:
        typer.echo(
            f"Error: Invalid {option_name} value '{value}'. Use ISO format (YYYY-MM-DD[THH:MM]).",
            err=True,
        )
        raise typer.Exit(1) from None


def _parse_date_option(value: str | None, option_name: str) -> date | None:
    """Parse a YYYY-MM-DD option, exiting with an error message on bad input."""
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        typer.echo(f"Error: Invalid {option_name} date '{value}'. Use YYYY-MM-DD.", err=True)
        raise typer.Exit(1) from None


def _engine(file: Path) -> SchedulingEngine:
    """Build an engine from a snapshot file and the discovered config."""
    try:
        snapshot = load_snapshot(file)
        config = discover_config(file)
    except TaskAllocError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    fixed_now = context.get_now()
    clock = (lambda: fixed_now) if fixed_now is not None else None
    return SchedulingEngine(snapshot.tasks, snapshot.members, config, clock=clock)


def _fail(message: str | None) -> NoReturn:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


@app.command()
def validate(file: SnapshotArg) -> None:
    """Check task dependencies for cycles and missing references."""
    engine = _engine(file)
    result = engine.validate_dependencies()
    for warning in result.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    if result.is_valid:
        typer.echo(f"OK: {len(engine.tasks)} tasks, dependencies are valid")
        return
    typer.echo(f"Error: {result.error}", err=True)
    for issue in result.issues:
        typer.echo(f"  - {issue.message}", err=True)
    raise typer.Exit(1)


@app.command("critical-path")
def critical_path(file: SnapshotArg) -> None:
    """Show the critical path and per-task slack."""
    result = _engine(file).calculate_critical_path()
    if not result.success or result.value is None:
        _fail(result.message)
    analysis = result.value
    typer.echo(f"Critical path: {' -> '.join(analysis.critical_path) or '(none)'}")
    typer.echo(f"Project duration: {analysis.project_duration:.2f} days")
    typer.echo(f"Levels: {analysis.levels}")
    for node in analysis.nodes:
        marker = "*" if node.is_critical else " "
        typer.echo(
            f"{marker} {node.id:<20} level={node.level} "
            f"start={node.earliest_start:.2f} finish={node.earliest_finish:.2f} "
            f"slack={node.slack:.2f}"
        )


@app.command()
def impact(
    file: SnapshotArg,
    task_id: Annotated[str, typer.Argument(help="Task to delay")],
    delay: Annotated[float, typer.Option("--delay", "-d", help="Delay in days")] = 1.0,
) -> None:
    """Show which tasks a delay pushes back."""
    result = _engine(file).analyze_delay_impact(task_id, delay)
    if not result.success or result.value is None:
        _fail(result.message)
    analysis = result.value
    typer.echo(f"Delaying {task_id} by {analysis.delay_days:g} days")
    typer.echo(f"Affected tasks: {', '.join(analysis.affected_tasks) or '(none)'}")
    typer.echo(f"Critical path impact: {'yes' if analysis.critical_path_impact else 'no'}")
    typer.echo(f"New project duration: {analysis.new_project_duration:.2f} days")
    for delayed in analysis.delayed_tasks:
        typer.echo(
            f"  {delayed.task_id}: {delayed.new_start_date:%Y-%m-%d %H:%M} -> "
            f"{delayed.new_end_date:%Y-%m-%d %H:%M}"
        )


@app.command()
def ready(file: SnapshotArg) -> None:
    """List tasks that can start now and tasks blocking others."""
    engine = _engine(file)
    typer.echo("Available:")
    for task in engine.get_available_tasks():
        typer.echo(f"  {task.id} [{task.priority}] {task.title}")
    typer.echo("Blocking:")
    for task in engine.get_blocking_tasks():
        typer.echo(f"  {task.id} [{task.status}] {task.title}")


@app.command()
def recommend(
    file: SnapshotArg,
    task_id: Annotated[str, typer.Argument(help="Task to find assignees for")],
) -> None:
    """Rank candidate assignees for a task."""
    result = _engine(file).get_recommendations(task_id)
    if not result.success or result.value is None:
        _fail(result.message)
    if not result.value:
        typer.echo(f"No eligible assignees for {task_id}")
        return
    for rec in result.value:
        typer.echo(
            f"{rec.user_id:<16} confidence={rec.confidence:>3} "
            f"utilization={rec.utilization_rate:.0%} "
            f"completion={rec.estimated_completion_time:%Y-%m-%d} "
            f"conflicts={len(rec.potential_conflicts)}"
        )
        for reason in rec.reasons:
            typer.echo(f"    - {reason}")


@app.command()
def assign(  # noqa: PLR0913 - CLI command needs multiple options
    file: SnapshotArg,
    *,
    tasks: Annotated[
        list[str] | None, typer.Option("--task", "-t", help="Only assign these tasks")
    ] = None,
    algorithm: Annotated[
        AlgorithmType | None, typer.Option("--algorithm", "-a", help="Task ordering strategy")
    ] = None,
    force: Annotated[
        bool, typer.Option("--force", help="Reassign tasks that already have an owner")
    ] = False,
    scheduled_by: Annotated[
        str, typer.Option("--scheduled-by", help="Who is running the assignment")
    ] = "cli",
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write the assignments as YAML")
    ] = None,
) -> None:
    """Automatically assign tasks to team members."""
    engine = _engine(file)
    request = AutoAssignRequest(
        task_ids=tasks or None,
        config={"algorithm": algorithm.value} if algorithm else None,
        force_reassign=force,
        scheduled_by=scheduled_by,
    )
    result = engine.auto_assign(request)
    if not result.success:
        _fail("; ".join(result.errors))

    for assigned in result.assigned_tasks:
        typer.echo(f"{assigned.task_id} -> {assigned.user_id} (confidence {assigned.confidence})")
    for pending in result.pending_tasks:
        typer.echo(f"{pending.task_id} -> {pending.user_id} (pending confirmation)")
    for skipped in result.skipped_tasks:
        typer.echo(f"skipped {skipped.task_id}: {skipped.reason}")
    for error in result.errors:
        typer.echo(f"Error: {error}", err=True)

    metrics = result.metrics
    typer.echo(
        f"Assigned {metrics.tasks_assigned}/{metrics.tasks_processed} tasks, "
        f"average confidence {metrics.average_confidence:.1f}, "
        f"{metrics.conflicts_detected} conflicts detected, "
        f"{metrics.conflicts_resolved} resolved"
    )

    if output:
        data = {"assignments": engine.state.assignments()}
        output.write_text(yaml.safe_dump(data, sort_keys=True), encoding="utf-8")
        typer.echo(f"Assignments written to {output}")


@app.command()
def conflicts(file: SnapshotArg) -> None:
    """Detect scheduling conflicts."""
    detected = _engine(file).detect_conflicts()
    if not detected:
        typer.echo("No conflicts detected")
        return
    for conflict in detected:
        typer.echo(
            f"[{conflict.severity}] {conflict.kind.value} {conflict.task_id} "
            f"({conflict.user_id}): {conflict.description}"
        )
    typer.echo(f"{len(detected)} conflicts")


@app.command()
def optimize(file: SnapshotArg) -> None:
    """Resolve conflicts iteratively and report the outcome."""
    result = _engine(file).optimize_schedule()
    if not result.success or result.value is None:
        _fail(result.message)
    optimization = result.value
    typer.echo(
        f"Optimized: {'yes' if optimization.optimized else 'no'} "
        f"({optimization.iterations} iterations, "
        f"{optimization.conflicts_resolved} conflicts resolved)"
    )
    for improvement in optimization.improvements:
        typer.echo(f"  - {improvement}")
    for change in optimization.new_assignments:
        typer.echo(f"  {change.task_id}: {change.old_user_id or '-'} -> {change.user_id}")
    metrics = optimization.metrics
    typer.echo(
        f"Utilization {metrics.total_utilization:.0%}, "
        f"{metrics.conflict_count} conflicts remaining, "
        f"skill match {metrics.skill_match_score:.0f}"
    )


@app.command()
def workloads(file: SnapshotArg) -> None:
    """Show assigned hours against capacity per member."""
    for workload in _engine(file).get_workloads():
        flag = " OVERLOADED" if workload.overloaded else ""
        typer.echo(
            f"{workload.user_id:<16} tasks={workload.current_tasks} "
            f"hours={workload.estimated_hours:.1f}/{workload.available_hours:.1f} "
            f"utilization={workload.utilization_rate:.0%}{flag}"
        )


@app.command()
def capacity(
    file: SnapshotArg,
    start: Annotated[str | None, typer.Option("--start", help="First day (YYYY-MM-DD)")] = None,
    end: Annotated[str | None, typer.Option("--end", help="Last day (YYYY-MM-DD)")] = None,
) -> None:
    """Show team capacity per day."""
    engine = _engine(file)
    first = _parse_date_option(start, "--start") or engine.clock().date()
    last = _parse_date_option(end, "--end") or first + timedelta(days=6)
    result = engine.get_team_capacity(first, last)
    if not result.success or result.value is None:
        _fail(result.message)
    for day in result.value:
        typer.echo(
            f"{day.date.isoformat()} members={day.available_members}/{day.total_members} "
            f"hours={day.total_scheduled_hours:.1f}/{day.total_available_hours:.1f} "
            f"utilization={day.utilization_rate:.0%}"
        )


def main() -> int:
    """Main entry point."""
    # Typer handles sys.exit() internally
    app()
    return 0


if __name__ == "__main__":
    main()
