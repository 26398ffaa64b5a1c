from __future__ import annotations

import io
import json
from datetime import datetime
from pathlib import Path

import allure
import pytest

from nigel.loop.backend.streaming import StreamAccumulator, TeeWriter
from nigel.loop.transcript import SEPARATOR, TranscriptLog

pytestmark = [
    allure.epic("Candidate Loop"),
    allure.feature("Assistant Streaming"),
]


def _delta(text: str) -> str:
    return json.dumps(
        {
            "type": "stream_event",
            "event": {"type": "content_block_delta", "delta": {"type": "text_delta", "text": text}},
        },
    )


_STOP = json.dumps({"type": "stream_event", "event": {"type": "message_stop"}})


class _BrokenSink:
    def __init__(self) -> None:
        self.calls = 0

    def write(self, text: str) -> int:
        self.calls += 1
        raise OSError("disk full")


class TestStreamAccumulator:
    def test_deltas_and_message_boundaries(self) -> None:
        sink = io.StringIO()
        accumulator = StreamAccumulator(sink)

        for line in (_delta("Hello"), _delta(" World"), _STOP, _delta("!"), _STOP):
            accumulator.feed_line(line + "\n")

        assert sink.getvalue() == "Hello World\n!\n"

    def test_message_without_text_adds_no_newline(self) -> None:
        sink = io.StringIO()
        accumulator = StreamAccumulator(sink)

        for line in (_delta("a"), _STOP, _STOP, _delta(""), _STOP):
            accumulator.feed_line(line)

        assert sink.getvalue() == "a\n"

    def test_non_json_lines_pass_through_and_are_kept(self) -> None:
        sink = io.StringIO()
        accumulator = StreamAccumulator(sink)

        accumulator.feed_line("Warning: something odd")
        accumulator.feed_line("   \n")

        assert sink.getvalue() == "Warning: something odd\n"
        assert accumulator.errors == ["Warning: something odd"]

    def test_error_result_is_kept_for_diagnostics(self) -> None:
        sink = io.StringIO()
        accumulator = StreamAccumulator(sink)

        accumulator.feed_line(json.dumps({"type": "result", "is_error": True, "result": "boom"}))
        accumulator.feed_line(json.dumps({"type": "result", "is_error": False, "result": "ok"}))

        assert accumulator.errors == ["boom"]
        assert sink.getvalue() == ""

    def test_other_events_are_ignored(self) -> None:
        sink = io.StringIO()
        accumulator = StreamAccumulator(sink)

        accumulator.feed_line(json.dumps({"type": "system", "subtype": "init"}))
        accumulator.feed_line(json.dumps(["not", "an", "object"]))
        accumulator.feed_line(
            json.dumps(
                {
                    "type": "stream_event",
                    "event": {
                        "type": "content_block_delta",
                        "delta": {"type": "input_json_delta", "partial_json": "{}"},
                    },
                },
            ),
        )

        assert sink.getvalue() == ""
        assert accumulator.errors == []


class TestTeeWriter:
    def test_writes_to_both_sinks(self) -> None:
        primary, log = io.StringIO(), io.StringIO()
        tee = TeeWriter(primary, log)

        tee.write("abc")
        tee.write("")

        assert primary.getvalue() == "abc"
        assert log.getvalue() == "abc"

    def test_log_failure_is_tolerated_and_log_is_dropped(self) -> None:
        primary, log = io.StringIO(), _BrokenSink()
        tee = TeeWriter(primary, log)

        tee.write("one ")
        tee.write("two")

        assert primary.getvalue() == "one two"
        assert log.calls == 1
        assert tee.log is None

    def test_primary_failure_propagates(self) -> None:
        tee = TeeWriter(_BrokenSink(), io.StringIO())

        with pytest.raises(OSError, match="disk full"):
            tee.write("x")


class TestTranscriptLog:
    def test_entries_are_bracketed(self, tmp_path: Path) -> None:
        path = tmp_path / "claude.log"
        with TranscriptLog(path) as transcript:
            transcript.start_entry("Fix a.go", now=datetime(2025, 1, 2, 3, 4, 5))
            transcript.write("Echo\n")
            transcript.end_entry()

        assert path.read_text("utf-8") == (
            f"\n{SEPARATOR}\nTimestamp: 2025-01-02 03:04:05\nPrompt: Fix a.go\n"
            f"{SEPARATOR}\nEcho\n{SEPARATOR}\n"
        )

    def test_write_after_close_raises(self, tmp_path: Path) -> None:
        transcript = TranscriptLog(tmp_path / "claude.log").open()
        transcript.close()

        with pytest.raises(OSError, match="not open"):
            transcript.write("late")
