"""Domain models for the candidate loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from nigel.loop.canonical import JsonValue, canonical_json, scalar_text


class CandidateShape(str, Enum):
    """Shape of the JSON value backing a candidate."""

    STRING = "string"
    ARRAY = "array"
    MAP = "map"


@dataclass(frozen=True, slots=True)
class Candidate:
    """One unit of work with its canonical key and original value."""

    key: str
    data: JsonValue

    @classmethod
    def from_value(cls, value: JsonValue) -> Candidate:
        if isinstance(value, str):
            return cls(key=value, data=value)
        if isinstance(value, (list, dict)):
            return cls(key=canonical_json(value), data=value)
        raise TypeError(
            f"Candidate must be a string, array or object, got {type(value).__name__}",
        )

    @property
    def shape(self) -> CandidateShape:
        if isinstance(self.data, list):
            return CandidateShape.ARRAY
        if isinstance(self.data, dict):
            return CandidateShape.MAP
        return CandidateShape.STRING

    @property
    def elements(self) -> list[str]:
        """Positional view used by the legacy ``$ARGUMENT`` placeholders."""

        if isinstance(self.data, list):
            return [scalar_text(item) for item in self.data]
        if isinstance(self.data, dict):
            return []
        return [self.data]

    def as_text(self) -> str:
        """Natural string form: strings and single-item arrays unwrap."""

        if isinstance(self.data, list):
            if len(self.data) == 1:
                return scalar_text(self.data[0])
            return canonical_json(self.data)
        if isinstance(self.data, dict):
            return canonical_json(self.data)
        return self.data

    def get_index(self, index: int) -> str | None:
        if not isinstance(self.data, list) or index < 0 or index >= len(self.data):
            return None
        return scalar_text(self.data[index])

    def get_slice(self, start: int) -> str | None:
        if not isinstance(self.data, list):
            return None
        return canonical_json(self.data[start:])

    def get_field(self, name: str) -> str | None:
        if not isinstance(self.data, dict) or name not in self.data:
            return None
        return scalar_text(self.data[name])


@dataclass(frozen=True, slots=True)
class HashPartition:
    """Static shard assignment; ``worker_index`` is 0-based."""

    worker_count: int = 1
    worker_index: int = 0

    @property
    def enabled(self) -> bool:
        return self.worker_count > 1

    def describe(self) -> str:
        return f"{self.worker_index + 1}/{self.worker_count}"


@dataclass(frozen=True, slots=True)
class RunnerOptions:
    """Per-run options; zero means unlimited for every limit."""

    limit: int = 0
    time_limit_seconds: float = 0.0
    task_timeout_seconds: float = 0.0
    dry_run: bool = False
    verbose: bool = False
    partition: HashPartition = field(default_factory=HashPartition)
    claude_command: str | None = None


class StopReason(str, Enum):
    """Terminal states of one run."""

    EXHAUSTED = "exhausted"
    LIMIT_REACHED = "limit_reached"
    TIME_EXPIRED = "time_expired"
    INTERRUPTED = "interrupted"


@dataclass(slots=True)
class CandidateCounts:
    """Candidate list breakdown for one selection pass."""

    total: int = 0
    in_shard: int = 0
    ignored: int = 0

    @property
    def available(self) -> int:
        return self.in_shard - self.ignored


@dataclass(slots=True)
class RunSummary:
    """Aggregate run counters for CLI reporting."""

    iterations: int = 0
    succeeded: int = 0
    failed: int = 0
    interpolation_errors: int = 0
    rate_limited: int = 0
    skipped_ignored: int = 0
    stop_reason: StopReason | None = None
    elapsed_seconds: float = 0.0
