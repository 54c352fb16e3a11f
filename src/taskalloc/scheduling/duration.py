"""Task duration estimation (in days)."""

from taskalloc.models import Task

MIN_DURATION_DAYS = 0.1

BASE_DURATION_BY_TYPE: dict[str, float] = {
    "feature": 5.0,
    "story": 3.0,
    "task": 1.0,
    "implementation": 1.0,
    "integration": 2.0,
    "testing": 2.0,
    "research": 4.0,
}

PRIORITY_MULTIPLIER: dict[str, float] = {"high": 0.8, "low": 1.5}


def estimate_task_duration(task: Task) -> float:
    """Estimate how many days a task takes.

    Base duration comes from the task type (1 day for unknown types) and is
    scaled by priority. Done tasks take 0.1 days and in-progress tasks half
    of the scaled estimate. Never below 0.1.
    """
    duration = BASE_DURATION_BY_TYPE.get(task.type, 1.0)
    duration *= PRIORITY_MULTIPLIER.get(task.priority, 1.0)

    if task.status == "done":
        duration = MIN_DURATION_DAYS
    elif task.status == "in-progress":
        duration *= 0.5

    return max(MIN_DURATION_DAYS, duration)


def estimate_task_hours(task: Task, hours_per_day: float, buffer_percent: float = 0.0) -> float:
    """Estimate effort in hours, including the configured buffer.

    Uses the task's own estimate when present, otherwise the duration
    estimate converted with `hours_per_day`.
    """
    if task.estimated_hours is not None:
        hours = task.estimated_hours
    else:
        hours = estimate_task_duration(task) * hours_per_day
    return hours * (1 + buffer_percent / 100)
