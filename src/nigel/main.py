"""CLI entrypoint for nigel."""

import logging
from pathlib import Path

import rich_click as click

from nigel import __version__
from nigel.config import parse_duration
from nigel.controllers import ListTasksCommand, NigelCliController, RunTaskCommand
from nigel.loop.candidates import parse_shard
from nigel.loop.errors import NigelError, PartitionError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = NigelCliController()


class DurationParamType(click.ParamType):
    """Durations such as ``90``, ``30s``, ``5m`` or ``1h30m``, in seconds."""

    name = "duration"

    def convert(self, value, param, ctx):  # noqa: ANN001, ANN201
        if isinstance(value, float):
            return value
        try:
            return parse_duration(value)
        except ValueError as error:
            self.fail(str(error), param, ctx)


DURATION = DurationParamType()


@click.group()
@click.version_option(version=__version__, prog_name="nigel")
def nigel() -> None:
    """Run an AI coding assistant over candidates, one at a time."""


@nigel.command("run")
@click.argument("task_name")
@click.option(
    "--tasks-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory with one sub-directory per task (default: ./nigel).",
)
@click.option(
    "--limit",
    type=click.IntRange(min=0),
    default=0,
    show_default=True,
    help="Maximum number of iterations (0 = unlimited).",
)
@click.option(
    "--time-limit",
    type=DURATION,
    default="0",
    help="Maximum wall-clock duration, e.g. 1h30m (0 = unlimited).",
)
@click.option(
    "--task-timeout",
    type=DURATION,
    default="0",
    help="Per-candidate timeout, e.g. 5m (overrides task.yaml).",
)
@click.option(
    "--claude-command",
    default=None,
    help="Assistant command to use (overrides task.yaml).",
)
@click.option("--dry-run", is_flag=True, help="Print prompts without running the assistant.")
@click.option("--verbose", is_flag=True, help="Print verbose output.")
@click.option(
    "--shard",
    default=None,
    help="Shard INDEX/TOTAL, 1-based (e.g. 1/4 for the first of four workers).",
)
def run(  # noqa: PLR0913
    task_name: str,
    tasks_dir: Path | None,
    limit: int,
    time_limit: float,
    task_timeout: float,
    claude_command: str | None,
    dry_run: bool,
    verbose: bool,
    shard: str | None,
) -> None:
    """Process candidates of TASK_NAME until done or a limit is reached."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        parse_shard(shard)
    except PartitionError as error:
        raise click.BadParameter(str(error), param_hint="--shard") from error

    try:
        lines = CONTROLLER.run_task(
            RunTaskCommand(
                task_name=task_name,
                tasks_dir=tasks_dir,
                limit=limit,
                time_limit_seconds=time_limit,
                task_timeout_seconds=task_timeout,
                claude_command=claude_command,
                dry_run=dry_run,
                verbose=verbose,
                shard=shard,
            ),
        )
    except NigelError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@nigel.command("list")
@click.option(
    "--tasks-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory with one sub-directory per task (default: ./nigel).",
)
def list_tasks(tasks_dir: Path | None) -> None:
    """List available tasks."""

    try:
        lines = CONTROLLER.list_tasks(ListTasksCommand(tasks_dir=tasks_dir))
    except NigelError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    nigel()
