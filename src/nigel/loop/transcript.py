"""Human-readable transcript of assistant invocations."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import TextIO

DEFAULT_TRANSCRIPT_FILE = "claude.log"
SEPARATOR = "=" * 80


class TranscriptLog:
    """Append-only transcript: one bracketed entry per assistant run."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._handle: TextIO | None = None

    def open(self) -> TranscriptLog:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self.path.open("a", encoding="utf-8")
        return self

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self) -> TranscriptLog:
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def start_entry(self, prompt: str, *, now: datetime | None = None) -> None:
        timestamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
        self.write(f"\n{SEPARATOR}\nTimestamp: {timestamp}\nPrompt: {prompt}\n{SEPARATOR}\n")

    def end_entry(self) -> None:
        self.write(f"{SEPARATOR}\n")

    def write(self, text: str) -> int:
        if self._handle is None:
            raise OSError(f"Transcript {self.path} is not open")
        written = self._handle.write(text)
        self._handle.flush()
        return written
