"""Persistent ignored list with optional per-key attempt budget."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from nigel.loop.errors import TrackerIOError

logger = logging.getLogger(__name__)

DEFAULT_IGNORED_FILE = "ignored.log"


@dataclass(frozen=True, slots=True)
class KeyState:
    """Attempt state of one key: not tracked, ``attempts`` so far, or done."""

    attempts: int = 0
    done: bool = False

    def record(self, max_repeat: int) -> KeyState:
        if self.done:
            return self
        attempts = self.attempts + 1
        return KeyState(attempts=attempts, done=max_repeat <= 0 or attempts >= max_repeat)


_NOT_TRACKED = KeyState()
_DONE = KeyState(done=True)


class AttemptTracker:
    """Ignored list backed by an append-only file, one key per line.

    With ``max_repeat == 0`` every recorded key is done immediately. With
    ``max_repeat > 0`` a key is done once it was recorded ``max_repeat``
    times. Keys loaded from disk are always done. Only the transition to done
    is appended to the file; partial attempts live in memory for one run.
    Keys are stored verbatim, surrounding whitespace included, one per line.
    """

    def __init__(self, path: Path, *, max_repeat: int = 0) -> None:
        self.path = path
        self.max_repeat = max(0, max_repeat)
        self._states: dict[str, KeyState] = {key: _DONE for key in _read_keys(path)}

    @classmethod
    def for_task_dir(
        cls,
        task_dir: Path,
        *,
        file_name: str = DEFAULT_IGNORED_FILE,
        max_repeat: int = 0,
    ) -> AttemptTracker:
        return cls(task_dir / file_name, max_repeat=max_repeat)

    def set_max_repeat(self, max_repeat: int) -> None:
        self.max_repeat = max(0, max_repeat)

    @property
    def done_count(self) -> int:
        return sum(1 for state in self._states.values() if state.done)

    def state(self, key: str) -> KeyState:
        return self._states.get(key, _NOT_TRACKED)

    def contains(self, key: str) -> bool:
        return self.state(key).done

    def add(self, key: str) -> KeyState:
        """Record one attempt for ``key`` and persist it if it became done."""

        current = self.state(key)
        updated = current.record(self.max_repeat)
        if updated.done and not current.done:
            self._append(key)
            logger.debug("Ignored list: %s done after %d attempt(s)", key, updated.attempts)
        self._states[key] = updated
        return updated

    def _append(self, key: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(f"{key}\n")
        except OSError as error:
            raise TrackerIOError(f"Failed to write ignored list {self.path}: {error}") from error


def _read_keys(path: Path) -> list[str]:
    try:
        with path.open(encoding="utf-8") as handle:
            keys = (line.rstrip("\r\n") for line in handle)
            return [key for key in keys if key.strip()]
    except FileNotFoundError:
        return []
    except (OSError, UnicodeDecodeError) as error:
        raise TrackerIOError(f"Failed to read ignored list {path}: {error}") from error
