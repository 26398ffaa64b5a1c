"""Task discovery and ``task.yaml`` loading."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from nigel.config import parse_duration
from nigel.loop.errors import TaskConfigError

logger = logging.getLogger(__name__)

TASK_FILE = "task.yaml"
DEFAULT_PROMPT_FILE = "prompt.md"

_KNOWN_KEYS = frozenset(
    {
        "candidate_source",
        "prompt",
        "prompt_file",
        "claude_command",
        "claude_flags",
        "task_timeout",
        "max_repeat",
        "accept_best_effort",
        "verify_command",
        "on_failure_command",
        "require_clean_tree",
    },
)


@dataclass(frozen=True, slots=True)
class TaskDefinition:
    """One task: where candidates come from and what to do with each."""

    name: str
    task_dir: Path
    candidate_source: str
    prompt_template: str
    claude_command: str | None = None
    claude_flags: str = ""
    task_timeout_seconds: float = 0.0
    max_repeat: int = 0
    accept_best_effort: bool = False
    verify_command: str | None = None
    on_failure_command: str | None = None
    require_clean_tree: bool = False

    @property
    def mode(self) -> str:
        return "best-effort" if self.accept_best_effort else "standard"


@dataclass(slots=True)
class TaskCatalog:
    """Tasks found under a tasks directory; broken definitions keep their error."""

    tasks: dict[str, TaskDefinition] = field(default_factory=dict)
    broken: dict[str, str] = field(default_factory=dict)


def discover_tasks(tasks_dir: Path) -> TaskCatalog:
    """Load every ``<tasks_dir>/<name>/task.yaml``, keyed by task name.

    A malformed task does not hide the others; its error is kept in
    ``TaskCatalog.broken``.
    """

    catalog = TaskCatalog()
    if not tasks_dir.is_dir():
        return catalog
    for task_file in sorted(tasks_dir.glob(f"*/{TASK_FILE}")):
        name = task_file.parent.name
        try:
            catalog.tasks[name] = load_task(tasks_dir, name)
        except TaskConfigError as error:
            logger.info("Skipping task %s: %s", name, error)
            catalog.broken[name] = str(error)
    return catalog


def load_task(tasks_dir: Path, name: str) -> TaskDefinition:
    task_dir = tasks_dir / name
    task_file = task_dir / TASK_FILE
    if not task_file.is_file():
        raise TaskConfigError(f"Task {name!r} not found: {task_file} does not exist")

    try:
        with task_file.open(encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as error:
        raise TaskConfigError(f"Failed to read {task_file}: {error}") from error
    if not isinstance(raw, dict):
        raise TaskConfigError(f"{task_file} must contain a mapping, got {type(raw).__name__}")

    unknown = sorted(set(raw) - _KNOWN_KEYS)
    if unknown:
        raise TaskConfigError(f"{task_file}: unknown keys: {', '.join(map(str, unknown))}")

    candidate_source = _optional_str(raw, "candidate_source", task_file)
    if not candidate_source:
        raise TaskConfigError(f"{task_file}: candidate_source is required")

    try:
        task_timeout_seconds = parse_duration(raw.get("task_timeout"))
    except ValueError as error:
        raise TaskConfigError(f"{task_file}: task_timeout: {error}") from error

    max_repeat = raw.get("max_repeat", 0)
    if isinstance(max_repeat, bool) or not isinstance(max_repeat, int) or max_repeat < 0:
        raise TaskConfigError(f"{task_file}: max_repeat must be a non-negative integer")

    return TaskDefinition(
        name=name,
        task_dir=task_dir,
        candidate_source=candidate_source,
        prompt_template=_load_prompt(raw, task_dir, task_file),
        claude_command=_optional_str(raw, "claude_command", task_file),
        claude_flags=_optional_str(raw, "claude_flags", task_file) or "",
        task_timeout_seconds=task_timeout_seconds,
        max_repeat=max_repeat,
        accept_best_effort=_bool(raw, "accept_best_effort", task_file),
        verify_command=_optional_str(raw, "verify_command", task_file),
        on_failure_command=_optional_str(raw, "on_failure_command", task_file),
        require_clean_tree=_bool(raw, "require_clean_tree", task_file),
    )


def _load_prompt(raw: dict[str, Any], task_dir: Path, task_file: Path) -> str:
    inline = _optional_str(raw, "prompt", task_file)
    if inline:
        return inline

    prompt_file = task_dir / (_optional_str(raw, "prompt_file", task_file) or DEFAULT_PROMPT_FILE)
    try:
        template = prompt_file.read_text("utf-8")
    except FileNotFoundError as error:
        raise TaskConfigError(
            f"{task_file}: no prompt given and {prompt_file} does not exist",
        ) from error
    except OSError as error:
        raise TaskConfigError(f"Failed to read template {prompt_file}: {error}") from error
    if not template.strip():
        raise TaskConfigError(f"Prompt template {prompt_file} is empty")
    return template


def _optional_str(raw: dict[str, Any], key: str, task_file: Path) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise TaskConfigError(f"{task_file}: {key} must be a string")
    return value.strip() or None


def _bool(raw: dict[str, Any], key: str, task_file: Path) -> bool:
    value = raw.get(key, False)
    if not isinstance(value, bool):
        raise TaskConfigError(f"{task_file}: {key} must be true or false")
    return value
