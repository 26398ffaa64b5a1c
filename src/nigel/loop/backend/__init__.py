"""Assistant and shell backends."""

from nigel.loop.backend.base import AssistantBackend, AssistantRunRequest, AssistantRunResult
from nigel.loop.backend.claude_backend import ClaudeBackend, find_assistant_executable
from nigel.loop.backend.shell import (
    OutputMode,
    has_uncommitted_changes,
    run_candidate_source,
    run_command,
)
from nigel.loop.backend.streaming import StreamAccumulator, TeeWriter

__all__ = [
    "AssistantBackend",
    "AssistantRunRequest",
    "AssistantRunResult",
    "ClaudeBackend",
    "OutputMode",
    "StreamAccumulator",
    "TeeWriter",
    "find_assistant_executable",
    "has_uncommitted_changes",
    "run_candidate_source",
    "run_command",
]
