"""Error taxonomy for the candidate loop.

Only ``ParseError``, ``CandidateSourceError``, ``PartitionError``,
``TrackerIOError`` and ``TaskConfigError`` terminate a run. The remaining
errors are absorbed by the runner and reported as one-line diagnostics.
"""

from __future__ import annotations


class NigelError(RuntimeError):
    """Base class for all loop errors."""


class ParseError(NigelError):
    """Candidate source output is neither a JSON array nor non-empty text."""


class CandidateSourceError(NigelError):
    """Candidate source command could not be run or exited non-zero."""


class PartitionError(NigelError):
    """Invalid shard specification."""


class TrackerIOError(NigelError):
    """Ignored list could not be read or written."""


class TaskConfigError(NigelError):
    """Task definition is missing or malformed."""


class InterpolationError(NigelError):
    """Typed template access does not match the candidate shape."""

    def __init__(self, variable: str, actual: str) -> None:
        super().__init__(f"{variable} requires an array candidate, got {actual}")
        self.variable = variable
        self.actual = actual


class ExecutionError(NigelError):
    """Assistant or command exited non-zero or timed out."""

    def __init__(self, message: str, *, exit_code: int, timed_out: bool = False) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.timed_out = timed_out


class RateLimitError(NigelError):
    """Assistant reported throttling; the candidate must be retried."""

    def __init__(self, message: str, *, matched_pattern: str) -> None:
        super().__init__(message)
        self.matched_pattern = matched_pattern
