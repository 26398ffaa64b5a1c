"""Backend interface for assistant execution."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


class TextSink(Protocol):
    def write(self, text: str, /) -> object: ...


@dataclass(slots=True)
class AssistantRunRequest:
    """Inputs required to run the assistant for one candidate."""

    prompt: str
    work_dir: Path
    claude_command: str
    claude_flags: str = ""
    timeout_seconds: float | None = None
    observer: TextSink | None = None
    error_observer: TextSink | None = None
    log_sink: TextSink | None = None
    shutdown_requested: Callable[[], bool] | None = None
    graceful_shutdown_seconds: float = 0.0


@dataclass(slots=True)
class AssistantRunResult:
    """Execution outcome from the backend."""

    exit_code: int
    timed_out: bool
    diagnostics: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


class AssistantBackend(Protocol):
    """Protocol implemented by assistant runners."""

    def run(self, request: AssistantRunRequest) -> AssistantRunResult:
        """Run the assistant once and return execution metadata."""
