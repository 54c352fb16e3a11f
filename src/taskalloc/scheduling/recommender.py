"""Candidate filtering and weighted scoring for a single task."""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import timedelta

from taskalloc.logger import checks_enabled, get_logger
from taskalloc.models import Task, TeamMember

from .conflicts import (
    ConflictContext,
    blocked_days,
    outside_working_hours,
    simulate_assignment_conflicts,
    skill_coverage,
    timezone_matches,
)
from .core import AssignmentRecommendation
from .workload import task_hours

logger = get_logger()

PRIORITY_ALIGNMENT: dict[str, float] = {"high": 1.0, "medium": 0.6, "low": 0.3}
NO_DEADLINE_SCORE = 0.5

FACTORS = ("priority", "skills", "availability", "workload", "deadline")


def eligible_candidates(task: Task, members: Sequence[TeamMember]) -> list[TeamMember]:
    """Apply the task's hard constraints to the active members.

    Returns no candidates when `min_assignees` exceeds the eligible pool.
    """
    constraints = task.requirements.constraints
    pool = [
        member
        for member in members
        if member.is_active
        and member.id not in constraints.excluded_users
        and (not constraints.preferred_users or member.id in constraints.preferred_users)
        and (not constraints.required_roles or member.role in constraints.required_roles)
    ]
    if constraints.min_assignees is not None and constraints.min_assignees > len(pool):
        logger.checks(
            f"Task {task.id} needs {constraints.min_assignees} assignees, "
            f"only {len(pool)} eligible"
        )
        return []
    return pool


def _factor_scores(
    ctx: ConflictContext, task: Task, member: TeamMember
) -> tuple[dict[str, float], list[str]]:
    """Per-factor scores in [0, 1] plus the matching reason strings."""
    requirements = task.requirements
    window = ctx.timeline.window(task)
    workload = ctx.workloads.get(member.id)
    utilization = workload.utilization_rate if workload else 0.0

    coverage = skill_coverage(member, requirements.required_skills)
    tz_ok = timezone_matches(
        member, requirements.preferred_timezone, ctx.now, ctx.config.timezone_tolerance_hours
    )
    clear_days = not blocked_days(member, window)
    in_hours = not (ctx.timeline.is_fixed(task) and outside_working_hours(member, window))
    availability = (float(tz_ok) + float(clear_days) + float(in_hours)) / 3

    needed_days = _needed_days(ctx, task, member)
    deadline = ctx.timeline.deadline(task)
    if deadline is None:
        deadline_score = NO_DEADLINE_SCORE
        deadline_reason = "No deadline pressure"
    else:
        available_days = (deadline - window.start).total_seconds() / 86400
        if available_days <= 0 or needed_days > available_days:
            deadline_score = 0.0
            deadline_reason = "Cannot finish before the deadline"
        else:
            deadline_score = 0.5 + 0.5 * (1 - needed_days / available_days)
            spare = available_days - needed_days
            deadline_reason = f"Can finish {spare:.1f} days before the deadline"

    required = requirements.required_skills
    if not required:
        skills_reason = "No specific skills required"
    elif coverage == 1.0:
        skills_reason = "Has all required skills"
    else:
        held = round(coverage * len(required))
        skills_reason = f"Has {held} of {len(required)} required skills"

    scores = {
        "priority": PRIORITY_ALIGNMENT.get(task.priority, PRIORITY_ALIGNMENT["medium"]),
        "skills": coverage,
        "availability": availability,
        "workload": max(0.0, 1 - utilization),
        "deadline": deadline_score,
    }
    reasons = [
        f"{task.priority.capitalize()} priority task",
        skills_reason,
        (
            "Available during the task window"
            if availability == 1.0
            else f"Partially available ({availability:.0%})"
        ),
        f"Current utilization {utilization:.0%}",
        deadline_reason,
    ]
    return scores, reasons


def confidence_from_score(score: float) -> int:
    """Percent confidence in 0-100, with halves rounded up."""
    return max(0, min(100, math.floor(score * 100 + 0.5)))


def _needed_days(ctx: ConflictContext, task: Task, member: TeamMember) -> float:
    daily = member.availability.daily_hours() or ctx.config.hours_per_day
    return task_hours(task, ctx.config) / daily


def score_candidate(
    ctx: ConflictContext, task: Task, member: TeamMember
) -> AssignmentRecommendation:
    """Weighted score of one candidate, with a what-if conflict check."""
    weights = ctx.config.weights.as_dict()
    scores, reasons = _factor_scores(ctx, task, member)
    contributions = [(weights[name] * scores[name], index) for index, name in enumerate(FACTORS)]

    score = sum(value for value, _ in contributions)
    confidence = confidence_from_score(score)
    ordered = sorted((c for c in contributions if c[0] > 0), key=lambda c: (-c[0], c[1]))

    workload = ctx.workloads.get(member.id)
    window = ctx.timeline.window(task)
    recommendation = AssignmentRecommendation(
        user_id=member.id,
        confidence=confidence,
        reasons=[reasons[index] for _, index in ordered],
        potential_conflicts=simulate_assignment_conflicts(ctx, task, member),
        estimated_completion_time=window.start + timedelta(days=_needed_days(ctx, task, member)),
        utilization_rate=workload.utilization_rate if workload else 0.0,
    )
    if checks_enabled():
        factors = ", ".join(f"{name}={scores[name]:.2f}" for name in FACTORS)
        logger.checks(f"  {task.id} -> {member.id}: confidence {confidence} ({factors})")
    return recommendation


def recommend(ctx: ConflictContext, task: Task) -> list[AssignmentRecommendation]:
    """Ranked candidates for a task.

    Sorted by confidence (descending), then current utilization
    (ascending), then user id. Capped at `max_assignees` when set.
    """
    candidates = eligible_candidates(task, list(ctx.members.values()))
    recommendations = [score_candidate(ctx, task, member) for member in candidates]
    recommendations.sort(key=lambda r: (-r.confidence, r.utilization_rate, r.user_id))
    max_assignees = task.requirements.constraints.max_assignees
    if max_assignees is not None:
        recommendations = recommendations[:max_assignees]
    return recommendations


def best_assignee(ctx: ConflictContext, task: Task) -> AssignmentRecommendation | None:
    recommendations = recommend(ctx, task)
    return recommendations[0] if recommendations else None
