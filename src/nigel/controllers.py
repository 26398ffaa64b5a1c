"""Controllers for nigel CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from nigel.config import Settings
from nigel.loop.backend import (
    ClaudeBackend,
    find_assistant_executable,
    has_uncommitted_changes,
)
from nigel.loop.candidates import parse_shard
from nigel.loop.console import Console
from nigel.loop.errors import TaskConfigError
from nigel.loop.models import RunnerOptions, RunSummary
from nigel.loop.runner import Runner
from nigel.loop.tracker import AttemptTracker
from nigel.loop.transcript import TranscriptLog
from nigel.tasks import TaskDefinition, discover_tasks, load_task

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunTaskCommand:
    """CLI input for one task run."""

    task_name: str
    tasks_dir: Path | None = None
    limit: int = 0
    time_limit_seconds: float = 0.0
    task_timeout_seconds: float = 0.0
    claude_command: str | None = None
    dry_run: bool = False
    verbose: bool = False
    shard: str | None = None


@dataclass(slots=True)
class ListTasksCommand:
    """CLI input for task listing."""

    tasks_dir: Path | None = None


class NigelCliController:
    """Wires settings, task definition, tracker and backend into a runner."""

    def __init__(self, *, console: Console | None = None) -> None:
        self.console = console or Console()

    def run_task(self, command: RunTaskCommand) -> list[str]:
        settings = Settings.from_env(tasks_dir=command.tasks_dir)
        try:
            settings.validate()
        except ValueError as error:
            raise TaskConfigError(str(error)) from error

        options = RunnerOptions(
            limit=command.limit,
            time_limit_seconds=command.time_limit_seconds,
            task_timeout_seconds=command.task_timeout_seconds,
            dry_run=command.dry_run,
            verbose=command.verbose,
            partition=parse_shard(command.shard),
            claude_command=command.claude_command,
        )
        task = load_task(settings.tasks_dir, command.task_name)
        if task.require_clean_tree and not options.dry_run:
            _ensure_clean_tree(settings.work_dir)
        if not options.dry_run:
            _ensure_assistant_command(
                options.claude_command or task.claude_command or settings.claude_command,
            )

        tracker = AttemptTracker.for_task_dir(
            task.task_dir,
            file_name=settings.ignored_file,
            max_repeat=task.max_repeat,
        )
        logger.info(
            "Starting task=%s shard=%s ignored=%d",
            task.name,
            options.partition.describe(),
            tracker.done_count,
        )
        with _transcript(task, settings, enabled=not options.dry_run) as transcript:
            runner = Runner(
                task=task,
                options=options,
                work_dir=settings.work_dir,
                tracker=tracker,
                backend=ClaudeBackend(),
                console=self.console,
                transcript=transcript,
                default_claude_command=settings.claude_command,
                backoff=settings.backoff,
            )
            summary = runner.run()
        return _summary_lines(task, summary, transcript_path=transcript and transcript.path)

    def list_tasks(self, command: ListTasksCommand) -> list[str]:
        settings = Settings.from_env(tasks_dir=command.tasks_dir)
        catalog = discover_tasks(settings.tasks_dir)
        if not catalog.tasks and not catalog.broken:
            return ["No tasks found."]
        lines = ["Available tasks:"]
        for name in sorted(catalog.tasks):
            lines.append(f"  {name:<30} [{catalog.tasks[name].mode}]")
        if catalog.broken:
            lines.append("Invalid tasks:")
            for name in sorted(catalog.broken):
                lines.append(f"  {name:<30} {catalog.broken[name]}")
        return lines


def _ensure_clean_tree(work_dir: Path) -> None:
    if has_uncommitted_changes(work_dir):
        raise TaskConfigError(
            f"Uncommitted changes in {work_dir}; commit or stash them first.",
        )


def _ensure_assistant_command(claude_command: str) -> None:
    if find_assistant_executable(claude_command) is None:
        raise TaskConfigError(
            f"Assistant command not found: {claude_command!r} (set --claude-command, "
            "claude_command in task.yaml, or NIGEL_CLAUDE_COMMAND)",
        )


@contextmanager
def _transcript(
    task: TaskDefinition,
    settings: Settings,
    *,
    enabled: bool,
) -> Iterator[TranscriptLog | None]:
    if not enabled:
        yield None
        return
    transcript = TranscriptLog(task.task_dir / settings.transcript_file)
    try:
        transcript.open()
    except OSError as error:
        logger.warning("Transcript disabled, cannot open %s: %s", transcript.path, error)
        yield None
        return
    try:
        yield transcript
    finally:
        transcript.close()


def _summary_lines(
    task: TaskDefinition,
    summary: RunSummary,
    *,
    transcript_path: Path | None,
) -> list[str]:
    reason = summary.stop_reason.value if summary.stop_reason else "unknown"
    lines = [
        f"Task summary: task={task.name} reason={reason} "
        f"iterations={summary.iterations} succeeded={summary.succeeded} "
        f"failed={summary.failed} interpolation_errors={summary.interpolation_errors} "
        f"rate_limited={summary.rate_limited} skipped_ignored={summary.skipped_ignored} "
        f"elapsed={summary.elapsed_seconds:.1f}s",
    ]
    if transcript_path is not None:
        lines.append(f"Transcript: {transcript_path}")
    return lines
