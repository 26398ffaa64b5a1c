"""Shell command execution for candidate sources and task hooks."""

from __future__ import annotations

import subprocess
import sys
from enum import Enum
from pathlib import Path

from nigel.loop.errors import CandidateSourceError, ExecutionError


class OutputMode(str, Enum):
    """How a hook command's output reaches the operator."""

    PASSTHROUGH = "passthrough"
    SILENT = "silent"
    SHOW_ON_FAIL = "show_on_fail"


def run_candidate_source(command: str, work_dir: Path) -> bytes:
    """Run the candidate source and return its stdout; non-zero exit is fatal."""

    try:
        completed = subprocess.run(  # noqa: S603
            ["bash", "-c", command],  # noqa: S607
            cwd=work_dir,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            check=False,
        )
    except OSError as error:
        raise CandidateSourceError(f"Candidate source failed to start: {error}") from error
    if completed.returncode != 0:
        stderr = completed.stderr.decode("utf-8", errors="replace").strip()
        raise CandidateSourceError(
            f"Candidate source failed with exit code {completed.returncode}"
            + (f"\nstderr: {stderr}" if stderr else ""),
        )
    return completed.stdout


def run_command(
    command: str,
    work_dir: Path,
    *,
    mode: OutputMode = OutputMode.PASSTHROUGH,
) -> bool:
    """Run a shell command and report whether it exited with status 0."""

    capture = mode is not OutputMode.PASSTHROUGH
    try:
        completed = subprocess.run(  # noqa: S603
            ["bash", "-c", command],  # noqa: S607
            cwd=work_dir,
            stdin=subprocess.DEVNULL,
            capture_output=capture,
            text=capture,
            encoding="utf-8" if capture else None,
            errors="replace" if capture else None,
            check=False,
        )
    except OSError as error:
        raise ExecutionError(f"Command failed to start: {error}", exit_code=127) from error

    if completed.returncode == 0:
        return True
    if mode is OutputMode.SHOW_ON_FAIL:
        if completed.stdout:
            sys.stdout.write(completed.stdout)
            sys.stdout.flush()
        if completed.stderr:
            sys.stderr.write(completed.stderr)
            sys.stderr.flush()
    return False


def has_uncommitted_changes(work_dir: Path) -> bool:
    """Report unstaged, staged, or untracked changes in a git work tree."""

    for args in (["git", "diff", "--quiet"], ["git", "diff", "--cached", "--quiet"]):
        completed = _git(args, work_dir)
        if completed.returncode == 1:
            return True
        if completed.returncode != 0:
            raise ExecutionError(
                f"{' '.join(args)} failed: {completed.stderr.strip()}",
                exit_code=completed.returncode,
            )

    status = _git(["git", "status", "--porcelain"], work_dir)
    if status.returncode != 0:
        raise ExecutionError(
            f"git status failed: {status.stderr.strip()}",
            exit_code=status.returncode,
        )
    return bool(status.stdout.strip())


def _git(args: list[str], work_dir: Path) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(  # noqa: S603
            args,
            cwd=work_dir,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as error:
        raise ExecutionError(f"git is not available: {error}", exit_code=127) from error
