"""Custom exceptions for taskalloc."""


class TaskAllocError(Exception):
    """Base exception for all taskalloc errors."""

    pass


class ValidationError(TaskAllocError):
    """Raised when input validation fails."""

    pass


class CircularDependencyError(ValidationError):
    """Raised when the dependency graph contains a cycle."""

    def __init__(self, message: str, task_ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.task_ids = task_ids or []


class UnknownTaskError(TaskAllocError):
    """Raised when a task id is not part of the snapshot."""

    pass


class UnknownUserError(TaskAllocError):
    """Raised when a user id is not part of the snapshot."""

    pass


class ResolutionError(TaskAllocError):
    """Raised when a conflict resolution plan cannot be applied."""

    pass


class ParseError(TaskAllocError):
    """Raised when a YAML file cannot be read or parsed."""

    pass
