"""YAML loading for snapshots and scheduler configuration."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from . import context
from .exceptions import ParseError, ValidationError
from .models import Task, TeamMember
from .scheduling.config import SchedulingConfig
from .schemas import SnapshotSchema

CONFIG_FILENAME = "taskalloc_config.yaml"


@dataclass
class Snapshot:
    """Tasks and team members read from one snapshot file."""

    tasks: list[Task]
    members: list[TeamMember]


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ParseError(f"File not found: {path}")
    try:
        with path.open(encoding="utf-8") as f:
            data: Any = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ParseError(f"Failed to parse YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ParseError("YAML must contain a dictionary at the root level")
    return data  # type: ignore[return-value]


def parse_snapshot(data: dict[str, Any]) -> Snapshot:
    """Validate raw snapshot data and convert it to models."""
    try:
        schema = SnapshotSchema.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid snapshot structure: {e}") from e
    return Snapshot(
        tasks=[task.to_model(task_id) for task_id, task in schema.tasks.items()],
        members=[member.to_model(member_id) for member_id, member in schema.members.items()],
    )


def load_snapshot(path: Path | str) -> Snapshot:
    """Load a snapshot file with `tasks:` and `members:` sections.

    Raises:
        ParseError: If the file is missing or is not valid YAML
        ValidationError: If the structure does not match the schema
    """
    return parse_snapshot(_read_yaml(Path(path)))


def load_config(path: Path | str) -> SchedulingConfig:
    """Load the `scheduler:` section of a config file.

    A file without that section yields the default configuration.
    """
    data = _read_yaml(Path(path))
    section = data.get("scheduler") or {}
    try:
        return SchedulingConfig.model_validate(section)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid scheduler configuration: {e}") from e


def discover_config(snapshot_path: Path | str | None = None) -> SchedulingConfig:
    """Find and load the scheduler configuration.

    Search order:
    1. Global context (set via CLI --config)
    2. Snapshot directory / taskalloc_config.yaml
    3. Current directory / taskalloc_config.yaml

    Falls back to defaults when nothing is found.
    """
    ctx_config = context.get_config_path()
    if ctx_config is not None:
        return load_config(ctx_config)

    if snapshot_path is not None:
        dir_config = Path(snapshot_path).parent / CONFIG_FILENAME
        if dir_config.exists():
            return load_config(dir_config)

    cwd_config = Path(CONFIG_FILENAME)
    if cwd_config.exists():
        return load_config(cwd_config)

    return SchedulingConfig()
