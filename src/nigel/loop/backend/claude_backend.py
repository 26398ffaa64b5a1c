"""Subprocess backend streaming the assistant's stream-JSON output."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import signal
import subprocess
import threading
import time
from collections.abc import Callable
from typing import IO

from nigel.loop.backend.base import AssistantRunRequest, AssistantRunResult
from nigel.loop.backend.streaming import StreamAccumulator, TeeWriter
from nigel.loop.errors import ExecutionError
from nigel.loop.interpolation import shell_quote

logger = logging.getLogger(__name__)

STREAM_FLAGS = "--output-format stream-json --verbose --include-partial-messages"
TIMEOUT_EXIT_CODE = 124
_POLL_INTERVAL_SECONDS = 0.1
_READER_JOIN_SECONDS = 5.0


class ClaudeBackend:
    """Run the assistant through ``bash -c`` and stream its events."""

    def run(self, request: AssistantRunRequest) -> AssistantRunResult:
        command = build_assistant_command(
            claude_command=request.claude_command,
            claude_flags=request.claude_flags,
            prompt=request.prompt,
        )
        lock = threading.Lock()
        stdout_tee = TeeWriter(request.observer, request.log_sink, lock=lock)
        stderr_tee = TeeWriter(
            request.error_observer or request.observer,
            request.log_sink,
            lock=lock,
        )
        accumulator = StreamAccumulator(stdout_tee)
        stderr_lines: list[str] = []

        try:
            process = subprocess.Popen(  # noqa: S603
                ["bash", "-c", command],  # noqa: S607
                cwd=request.work_dir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=True,
            )
        except OSError as error:
            raise ExecutionError(f"Assistant failed to start: {error}", exit_code=127) from error

        readers = [
            _start_reader(process.stdout, accumulator.feed_line),
            _start_reader(
                process.stderr,
                lambda line: _forward_stderr(line, stderr_tee, stderr_lines),
            ),
        ]
        exit_code, timed_out = _wait_with_deadline(
            process,
            timeout_seconds=request.timeout_seconds,
            shutdown_requested=request.shutdown_requested,
            graceful_shutdown_seconds=request.graceful_shutdown_seconds,
        )
        for reader in readers:
            reader.join(timeout=_READER_JOIN_SECONDS)

        return AssistantRunResult(
            exit_code=exit_code,
            timed_out=timed_out,
            diagnostics="\n".join([*stderr_lines, *accumulator.errors]),
        )


def build_assistant_command(*, claude_command: str, claude_flags: str, prompt: str) -> str:
    parts = [claude_command.strip()]
    if claude_flags.strip():
        parts.append(claude_flags.strip())
    parts.append(STREAM_FLAGS)
    parts.append(f"-p {shell_quote(prompt)}")
    return " ".join(parts)


def find_assistant_executable(claude_command: str) -> str | None:
    """Resolve the first word of ``claude_command`` on PATH, or ``None``."""

    try:
        words = shlex.split(claude_command)
    except ValueError:
        return None
    if not words:
        return None
    return shutil.which(words[0])


def _start_reader(stream: IO[str] | None, consume: Callable[[str], None]) -> threading.Thread:
    def _pump() -> None:
        if stream is None:
            return
        with stream:
            for line in stream:
                consume(line)

    thread = threading.Thread(target=_pump, daemon=True)
    thread.start()
    return thread


def _forward_stderr(line: str, tee: TeeWriter, collected: list[str]) -> None:
    collected.append(line.rstrip("\n"))
    tee.write(line)


def _wait_with_deadline(
    process: subprocess.Popen[str],
    *,
    timeout_seconds: float | None,
    shutdown_requested: Callable[[], bool] | None,
    graceful_shutdown_seconds: float,
) -> tuple[int, bool]:
    start_monotonic = time.monotonic()
    shutdown_deadline: float | None = None

    while True:
        returncode = process.poll()
        if returncode is not None:
            return returncode, False

        now = time.monotonic()
        if timeout_seconds and now - start_monotonic >= timeout_seconds:
            logger.info("Assistant exceeded %.1fs timeout, terminating", timeout_seconds)
            terminate_process_group(process)
            return TIMEOUT_EXIT_CODE, True

        if shutdown_requested is not None and shutdown_requested():
            if shutdown_deadline is None:
                shutdown_deadline = now + max(0.0, graceful_shutdown_seconds)
            if now >= shutdown_deadline:
                terminate_process_group(process)
                return TIMEOUT_EXIT_CODE, True

        time.sleep(_POLL_INTERVAL_SECONDS)


def terminate_process_group(process: subprocess.Popen[str]) -> None:
    """SIGTERM the process group, then SIGKILL it if it does not exit."""

    try:
        os.killpg(process.pid, signal.SIGTERM)
    except (ProcessLookupError, PermissionError):
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            return
        process.wait(timeout=2)
