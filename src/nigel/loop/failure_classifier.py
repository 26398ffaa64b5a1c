"""Deterministic classification of failed assistant runs."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from nigel.loop.errors import ExecutionError, RateLimitError

ASSISTANT_FAILURE_CLASSIFIER_VERSION = 2

# Throttling markers specific enough not to appear in ordinary build or test output.
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "usage limit reached",
    "hit your usage limit",
    "usage_limit_reached",
    "rate_limit_error",
    "rate_limit_exceeded",
    "rate limit reached",
    "rate limit exceeded",
    "too many requests",
    "overloaded_error",
)
# A bare 429 only counts next to an HTTP or API status word.
_HTTP_429_RE = re.compile(r"\b(?:http(?:/\d(?:\.\d)?)?|status|status code|api error)\W{0,3}429\b")


class FailureClass(str, Enum):
    """Outcome classes driving the runner's retry policy."""

    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


@dataclass(slots=True)
class AssistantFailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    matched_rule: str
    matched_pattern: str | None

    def to_error(self, *, exit_code: int) -> ExecutionError | RateLimitError:
        if self.failure_class is FailureClass.RATE_LIMITED:
            return RateLimitError(
                f"Assistant is rate limited (matched {self.matched_pattern!r})",
                matched_pattern=self.matched_pattern or "",
            )
        if self.failure_class is FailureClass.TIMEOUT:
            return ExecutionError("Assistant timed out", exit_code=exit_code, timed_out=True)
        return ExecutionError(f"Assistant exited with code {exit_code}", exit_code=exit_code)


def classify_assistant_failure(
    *,
    exit_code: int,
    timed_out: bool,
    output: str,
) -> AssistantFailureClassification:
    """Classify a non-successful run; timeouts never count as rate limits."""

    if timed_out:
        return AssistantFailureClassification(
            failure_class=FailureClass.TIMEOUT,
            matched_rule="timeout",
            matched_pattern=None,
        )

    haystack = output.lower()
    pattern = _first_match(haystack, _RATE_LIMIT_PATTERNS)
    if pattern is None:
        status = _HTTP_429_RE.search(haystack)
        pattern = status.group(0) if status else None
    if pattern is not None:
        return AssistantFailureClassification(
            failure_class=FailureClass.RATE_LIMITED,
            matched_rule="rate_limit",
            matched_pattern=pattern,
        )

    return AssistantFailureClassification(
        failure_class=FailureClass.FAILED,
        matched_rule=f"exit_code_{exit_code}",
        matched_pattern=None,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
