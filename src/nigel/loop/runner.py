"""Sequential candidate loop with rate-limit backoff."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from nigel.config import (
    DEFAULT_BACKOFF_BASE_SECONDS,
    DEFAULT_BACKOFF_MAX_SECONDS,
    BackoffSettings,
)
from nigel.loop.backend import (
    AssistantBackend,
    AssistantRunRequest,
    OutputMode,
    run_candidate_source,
    run_command,
)
from nigel.loop.candidates import (
    count_candidates,
    filter_by_partition,
    parse_candidates,
    select_candidate,
)
from nigel.loop.console import Console, ErrorStream
from nigel.loop.errors import ExecutionError, InterpolationError, RateLimitError
from nigel.loop.failure_classifier import classify_assistant_failure
from nigel.loop.interpolation import interpolate_command, interpolate_prompt
from nigel.loop.models import Candidate, RunnerOptions, RunSummary, StopReason
from nigel.loop.tracker import AttemptTracker
from nigel.loop.transcript import TranscriptLog
from nigel.tasks import TaskDefinition

logger = logging.getLogger(__name__)

_MAX_BACKOFF_EXPONENT = 62


def calculate_backoff(
    level: int,
    *,
    base_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS,
    max_seconds: float = DEFAULT_BACKOFF_MAX_SECONDS,
) -> float:
    """Return ``base * 2**level`` seconds, capped at ``max_seconds``."""

    exponent = min(max(level, 0), _MAX_BACKOFF_EXPONENT)
    return min(max_seconds, base_seconds * (2**exponent))


class Runner:
    """Selects, interpolates, executes and records one candidate at a time.

    Each iteration re-runs the candidate source, because a finished candidate
    usually changes the working tree and therefore what remains to be done.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        task: TaskDefinition,
        options: RunnerOptions,
        work_dir: Path,
        tracker: AttemptTracker,
        backend: AssistantBackend,
        console: Console,
        transcript: TranscriptLog | None = None,
        default_claude_command: str = "claude",
        backoff: BackoffSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        graceful_shutdown_seconds: float = 5.0,
    ) -> None:
        self.task = task
        self.options = options
        self.work_dir = work_dir
        self.tracker = tracker
        self.backend = backend
        self.console = console
        self.transcript = transcript
        self.claude_command = (
            options.claude_command or task.claude_command or default_claude_command
        )
        self.backoff = backoff or BackoffSettings()
        self.graceful_shutdown_seconds = graceful_shutdown_seconds
        self._clock = clock
        self._sleep = sleep
        self._started_at = 0.0
        self._backoff_level = 0
        self._previewed: set[str] = set()
        self._stop_requested = False
        self._stop_signal_name: str | None = None

    @property
    def timeout_seconds(self) -> float | None:
        timeout = self.options.task_timeout_seconds or self.task.task_timeout_seconds
        return timeout or None

    def run(self) -> RunSummary:
        """Loop until candidates are exhausted, a limit is hit, or a stop is requested."""

        summary = RunSummary()
        self._started_at = self._clock()
        with self._signal_handlers():
            summary.stop_reason = self._loop(summary)
        summary.elapsed_seconds = self._clock() - self._started_at
        logger.info(
            "Run finished: task=%s reason=%s iterations=%d",
            self.task.name,
            summary.stop_reason.value,
            summary.iterations,
        )
        return summary

    def request_stop(self, *, signal_name: str = "manual") -> None:
        self._stop_requested = True
        self._stop_signal_name = signal_name

    def _loop(self, summary: RunSummary) -> StopReason:  # noqa: PLR0911
        announce = True
        while True:
            if self._stop_requested:
                return self._interrupted()

            candidate = self._next_candidate(summary, announce=announce)
            announce = False
            if candidate is None:
                self.console.success("No candidates left to process.")
                return StopReason.EXHAUSTED
            if self.options.limit > 0 and summary.iterations >= self.options.limit:
                self.console.info(f"Iteration limit of {self.options.limit} reached.")
                return StopReason.LIMIT_REACHED
            if self._time_expired():
                self.console.info("Time limit reached.")
                return StopReason.TIME_EXPIRED

            task_id = summary.iterations + 1
            self.console.bold(f"[{task_id}] {candidate.key}")

            try:
                prompt = interpolate_prompt(self.task.prompt_template, candidate, task_id=task_id)
            except InterpolationError as error:
                summary.iterations += 1
                summary.interpolation_errors += 1
                self._backoff_level = 0
                self.console.error(f"Skipping {candidate.key}: {error}")
                logger.warning("Interpolation failed for %s: %s", candidate.key, error)
                self._mark_attempted(candidate)
                continue

            if self.options.dry_run:
                summary.iterations += 1
                self.console.line(prompt)
                self._previewed.add(candidate.key)
                continue

            try:
                self._attempt(candidate, prompt)
            except RateLimitError as error:
                summary.rate_limited += 1
                self._back_off(error)
                continue
            except ExecutionError as error:
                if self._stop_requested:
                    return self._interrupted()
                self._backoff_level = 0
                summary.iterations += 1
                summary.failed += 1
                self.console.error(f"Failed {candidate.key}: {error}")
                logger.warning("Candidate %s failed: %s", candidate.key, error)
                self._run_on_failure(candidate)
                self._mark_attempted(candidate)
                continue

            self._backoff_level = 0
            summary.iterations += 1
            summary.succeeded += 1
            self.console.success(f"Completed {candidate.key}")
            self._mark_attempted(candidate)

    def _interrupted(self) -> StopReason:
        self.console.warning(f"Stop requested ({self._stop_signal_name}), not starting new work.")
        logger.info("Run interrupted by %s", self._stop_signal_name)
        return StopReason.INTERRUPTED

    def _next_candidate(self, summary: RunSummary, *, announce: bool) -> Candidate | None:
        raw = run_candidate_source(self.task.candidate_source, self.work_dir)
        candidates = parse_candidates(raw)
        in_shard = filter_by_partition(candidates, self.options.partition)

        if announce or self.options.verbose:
            counts = count_candidates(
                total=len(candidates),
                in_shard=in_shard,
                ignored=self.tracker,
            )
            if announce:
                summary.skipped_ignored = counts.ignored
            shard = (
                f" shard={self.options.partition.describe()}:{counts.in_shard}"
                if self.options.partition.enabled
                else ""
            )
            self.console.info(
                f"Candidates: total={counts.total}{shard} "
                f"ignored={counts.ignored} available={counts.available}",
            )

        return select_candidate(in_shard, self.tracker, skip_keys=self._previewed)

    def _time_expired(self) -> bool:
        limit = self.options.time_limit_seconds
        return limit > 0 and self._clock() - self._started_at >= limit

    def _attempt(self, candidate: Candidate, prompt: str) -> None:
        self._transcript_call(lambda transcript: transcript.start_entry(prompt))
        try:
            result = self.backend.run(
                AssistantRunRequest(
                    prompt=prompt,
                    work_dir=self.work_dir,
                    claude_command=self.claude_command,
                    claude_flags=self.task.claude_flags,
                    timeout_seconds=self.timeout_seconds,
                    observer=self.console,
                    error_observer=ErrorStream(),
                    log_sink=self.transcript,
                    shutdown_requested=lambda: self._stop_requested,
                    graceful_shutdown_seconds=self.graceful_shutdown_seconds,
                ),
            )
        finally:
            self._transcript_call(lambda transcript: transcript.end_entry())

        if not result.ok:
            classification = classify_assistant_failure(
                exit_code=result.exit_code,
                timed_out=result.timed_out,
                output=result.diagnostics,
            )
            raise classification.to_error(exit_code=result.exit_code)
        self._verify(candidate)

    def _verify(self, candidate: Candidate) -> None:
        if not self.task.verify_command:
            return
        command = interpolate_command(self.task.verify_command, candidate, self.task.name)
        if run_command(command, self.work_dir, mode=OutputMode.SHOW_ON_FAIL):
            return
        if self.task.accept_best_effort:
            self.console.warning(
                f"Verification failed for {candidate.key}; accepted as best effort.",
            )
            return
        raise ExecutionError("Verification command failed", exit_code=1)

    def _run_on_failure(self, candidate: Candidate) -> None:
        if not self.task.on_failure_command:
            return
        command = interpolate_command(self.task.on_failure_command, candidate, self.task.name)
        try:
            ok = run_command(command, self.work_dir, mode=OutputMode.PASSTHROUGH)
        except ExecutionError as error:
            ok = False
            logger.warning("on_failure_command could not start: %s", error)
        if not ok:
            self.console.warning("on_failure_command exited non-zero")

    def _mark_attempted(self, candidate: Candidate) -> None:
        if self.options.dry_run:
            self._previewed.add(candidate.key)
            return
        self.tracker.add(candidate.key)

    def _back_off(self, error: RateLimitError) -> None:
        delay = calculate_backoff(
            self._backoff_level,
            base_seconds=self.backoff.base_seconds,
            max_seconds=self.backoff.max_seconds,
        )
        self._backoff_level += 1
        if self.options.time_limit_seconds > 0:
            remaining = self.options.time_limit_seconds - (self._clock() - self._started_at)
            delay = min(delay, max(0.0, remaining))
        self.console.warning(f"{error}. Backing off for {_format_seconds(delay)}.")
        logger.info("Backoff level=%d delay=%.0fs", self._backoff_level, delay)
        self._sleep_with_stop(delay)

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = self._clock() + seconds
        while not self._stop_requested and self._clock() < deadline:
            self._sleep(min(1.0, max(0.0, deadline - self._clock())))

    def _transcript_call(self, call: Callable[[TranscriptLog], None]) -> None:
        if self.transcript is None:
            return
        try:
            call(self.transcript)
        except OSError as error:
            logger.warning("Transcript write failed: %s", error)

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(signal_name=name)

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)


def _format_seconds(seconds: float) -> str:
    minutes, secs = divmod(int(round(seconds)), 60)
    if minutes and secs:
        return f"{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m"
    return f"{secs}s"
