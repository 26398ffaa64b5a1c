"""Stream-JSON event handling and output fan-out."""

from __future__ import annotations

import json
import logging
import threading

from nigel.loop.backend.base import TextSink

logger = logging.getLogger(__name__)


class TeeWriter:
    """Forward text to a primary sink and, best-effort, to a log sink.

    Errors from the primary sink propagate. ``OSError`` from the log sink is
    logged once and the log sink is dropped for the rest of the run.
    """

    def __init__(
        self,
        primary: TextSink | None,
        log: TextSink | None = None,
        *,
        lock: threading.Lock | None = None,
    ) -> None:
        self.primary = primary
        self.log = log
        self._lock = lock or threading.Lock()

    def write(self, text: str) -> int:
        if not text:
            return 0
        with self._lock:
            if self.primary is not None:
                self.primary.write(text)
            if self.log is not None:
                try:
                    self.log.write(text)
                except OSError as error:
                    logger.warning("Transcript write failed, disabling transcript: %s", error)
                    self.log = None
        return len(text)


class StreamAccumulator:
    """Turn assistant stream events into plain text on ``sink``.

    ``content_block_delta`` events with non-empty ``text_delta`` text are
    written as they arrive. ``message_stop`` writes one newline, but only
    when the message produced text. Lines that are not JSON are passed
    through verbatim; error ``result`` lines are kept for diagnostics.
    """

    def __init__(self, sink: TextSink) -> None:
        self.sink = sink
        self.errors: list[str] = []
        self._message_has_content = False

    def feed_line(self, line: str) -> None:
        stripped = line.strip()
        if not stripped:
            return
        try:
            payload = json.loads(stripped)
        except ValueError:
            self.errors.append(stripped)
            self.sink.write(line if line.endswith("\n") else f"{line}\n")
            return
        if not isinstance(payload, dict):
            return

        payload_type = payload.get("type")
        if payload_type == "stream_event":
            event = payload.get("event")
            if isinstance(event, dict):
                self._handle_event(event)
        elif payload_type == "result" and payload.get("is_error"):
            self.errors.append(str(payload.get("result", "")))

    def _handle_event(self, event: dict[str, object]) -> None:
        event_type = event.get("type")
        if event_type == "content_block_delta":
            delta = event.get("delta")
            if not isinstance(delta, dict) or delta.get("type") != "text_delta":
                return
            text = delta.get("text")
            if isinstance(text, str) and text:
                self._message_has_content = True
                self.sink.write(text)
        elif event_type == "message_stop":
            if self._message_has_content:
                self.sink.write("\n")
            self._message_has_content = False
