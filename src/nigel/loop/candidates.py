"""Candidate parsing, hash partitioning and selection."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Sequence
from typing import Protocol

from nigel.loop.errors import ParseError, PartitionError
from nigel.loop.models import Candidate, CandidateCounts, HashPartition


class IgnoredKeys(Protocol):
    def contains(self, key: str) -> bool: ...


def parse_candidates(raw: bytes | str) -> list[Candidate]:
    """Decode candidate source output, preserving source order.

    A JSON array of strings, arrays or objects is decoded element by element.
    Anything that is not a JSON array is read as newline-delimited text, one
    trimmed non-blank line per candidate.
    """

    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        payload = json.loads(text)
    except ValueError:
        payload = None

    if isinstance(payload, list):
        return _candidates_from_array(payload)
    return _candidates_from_lines(text)


def _candidates_from_array(items: list[object]) -> list[Candidate]:
    candidates: list[Candidate] = []
    for position, item in enumerate(items):
        if isinstance(item, bool) or not isinstance(item, (str, list, dict)):
            raise ParseError(
                f"Candidate #{position} must be a string, array or object, "
                f"got {_json_type_name(item)}",
            )
        try:
            candidates.append(Candidate.from_value(item))
        except ValueError as error:
            raise ParseError(f"Candidate #{position} cannot be canonicalized: {error}") from error
    return candidates


def _candidates_from_lines(text: str) -> list[Candidate]:
    lines = [line.strip() for line in text.splitlines()]
    candidates = [Candidate(key=line, data=line) for line in lines if line]
    if not candidates:
        raise ParseError("Candidate source output is neither a JSON array nor non-empty text.")
    return candidates


def _json_type_name(value: object) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    return type(value).__name__


def partition_hash(key: str) -> int:
    digest = hashlib.md5(key.encode("utf-8"), usedforsecurity=False).digest()
    return int.from_bytes(digest, "big")


def filter_by_partition(
    candidates: Sequence[Candidate],
    partition: HashPartition,
) -> list[Candidate]:
    """Keep the candidates whose key hashes into this worker's shard."""

    if not partition.enabled:
        return list(candidates)
    return [
        candidate
        for candidate in candidates
        if partition_hash(candidate.key) % partition.worker_count == partition.worker_index
    ]


def parse_shard(value: str | None) -> HashPartition:
    """Parse a 1-based ``INDEX/TOTAL`` shard spec into a 0-based partition."""

    if value is None or not value.strip():
        return HashPartition()
    parts = value.split("/")
    if len(parts) != 2:  # noqa: PLR2004
        raise PartitionError(
            f"Shard must be in format INDEX/TOTAL (e.g. 1/4), got {value!r}",
        )
    try:
        index = int(parts[0].strip())
        total = int(parts[1].strip())
    except ValueError as error:
        raise PartitionError(f"Invalid shard values: {value!r}") from error
    if total < 1 or index < 1 or index > total:
        raise PartitionError(
            f"Invalid shard values: {value!r} (expected 1 <= INDEX <= TOTAL)",
        )
    return HashPartition(worker_count=total, worker_index=index - 1)


def select_candidate(
    candidates: Iterable[Candidate],
    ignored: IgnoredKeys,
    *,
    skip_keys: frozenset[str] | set[str] = frozenset(),
) -> Candidate | None:
    """Return the first candidate that is neither ignored nor in ``skip_keys``."""

    for candidate in candidates:
        if candidate.key in skip_keys:
            continue
        if not ignored.contains(candidate.key):
            return candidate
    return None


def count_candidates(
    *,
    total: int,
    in_shard: Sequence[Candidate],
    ignored: IgnoredKeys,
) -> CandidateCounts:
    return CandidateCounts(
        total=total,
        in_shard=len(in_shard),
        ignored=sum(1 for candidate in in_shard if ignored.contains(candidate.key)),
    )
