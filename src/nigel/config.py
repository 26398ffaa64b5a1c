"""Runtime configuration for the candidate loop."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from nigel.loop.transcript import DEFAULT_TRANSCRIPT_FILE
from nigel.loop.tracker import DEFAULT_IGNORED_FILE

DEFAULT_BACKOFF_BASE_SECONDS = 5 * 60
DEFAULT_BACKOFF_MAX_SECONDS = 60 * 60

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


@dataclass(slots=True)
class BackoffSettings:
    """Rate-limit backoff: ``base * 2**level`` capped at ``max``."""

    base_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS
    max_seconds: float = DEFAULT_BACKOFF_MAX_SECONDS


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    tasks_dir: Path = Path("nigel")
    work_dir: Path = field(default_factory=Path.cwd)
    claude_command: str = "claude"
    ignored_file: str = DEFAULT_IGNORED_FILE
    transcript_file: str = DEFAULT_TRANSCRIPT_FILE
    backoff: BackoffSettings = field(default_factory=BackoffSettings)

    @classmethod
    def from_env(cls, tasks_dir: Path | None = None) -> Settings:
        """Load settings from environment with defaults for a project checkout."""

        work_dir = Path(os.getenv("NIGEL_WORK_DIR", "") or Path.cwd())
        return cls(
            tasks_dir=tasks_dir or Path(os.getenv("NIGEL_TASKS_DIR", "") or work_dir / "nigel"),
            work_dir=work_dir,
            claude_command=os.getenv("NIGEL_CLAUDE_COMMAND", "claude"),
            ignored_file=os.getenv("NIGEL_IGNORED_FILE", DEFAULT_IGNORED_FILE),
            transcript_file=os.getenv("NIGEL_TRANSCRIPT_FILE", DEFAULT_TRANSCRIPT_FILE),
            backoff=BackoffSettings(
                base_seconds=float(
                    os.getenv("NIGEL_BACKOFF_BASE_SECONDS", str(DEFAULT_BACKOFF_BASE_SECONDS)),
                ),
                max_seconds=float(
                    os.getenv("NIGEL_BACKOFF_MAX_SECONDS", str(DEFAULT_BACKOFF_MAX_SECONDS)),
                ),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the loop cannot work with."""

        if self.backoff.base_seconds <= 0:
            raise ValueError("NIGEL_BACKOFF_BASE_SECONDS must be > 0.")
        if self.backoff.max_seconds < self.backoff.base_seconds:
            raise ValueError(
                "NIGEL_BACKOFF_MAX_SECONDS must be >= NIGEL_BACKOFF_BASE_SECONDS.",
            )
        if not self.claude_command.strip():
            raise ValueError("NIGEL_CLAUDE_COMMAND must not be empty.")
        for name, value in (
            ("NIGEL_IGNORED_FILE", self.ignored_file),
            ("NIGEL_TRANSCRIPT_FILE", self.transcript_file),
        ):
            if not value.strip() or Path(value).name != value:
                raise ValueError(f"{name} must be a plain file name, got {value!r}.")


def parse_duration(value: str | float | int | None) -> float:
    """Parse ``90``, ``30s``, ``5m``, ``1h30m`` or ``250ms`` into seconds."""

    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Duration must be >= 0, got {value!r}")
        return float(value)

    text = value.strip().lower()
    if not text:
        return 0.0
    try:
        seconds = float(text)
    except ValueError:
        seconds = _parse_unit_duration(text)
    if seconds < 0:
        raise ValueError(f"Duration must be >= 0, got {value!r}")
    return seconds


def _parse_unit_duration(text: str) -> float:
    position = 0
    total = 0.0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position == 0 or position != len(text):
        raise ValueError(f"Invalid duration: {text!r} (expected e.g. 30s, 5m, 1h30m)")
    return total
