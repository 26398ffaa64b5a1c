"""Local stand-in for the assistant CLI, used by integration tests.

Accepts the same stream flags as the real CLI and echoes the prompt back as
stream-JSON events.
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path


def _emit(payload: dict[str, object]) -> None:
    sys.stdout.write(json.dumps(payload) + "\n")
    sys.stdout.flush()


def _delta(text: str) -> dict[str, object]:
    return {
        "type": "stream_event",
        "event": {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "text_delta", "text": text},
        },
    }


def _message_stop() -> dict[str, object]:
    return {"type": "stream_event", "event": {"type": "message_stop"}}


def main(argv: list[str] | None = None) -> int:
    """Echo the prompt as one streamed message."""

    parser = argparse.ArgumentParser()
    parser.add_argument("-p", "--prompt", required=True)
    parser.add_argument("--output-format", default="text")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--include-partial-messages", action="store_true")
    parser.add_argument("--record", type=Path, default=None)
    parser.add_argument("--rate-limit-once", type=Path, default=None)
    parser.add_argument("--sleep", type=float, default=0.0)
    args = parser.parse_args(argv)

    if args.record is not None:
        with args.record.open("a", encoding="utf-8") as handle:
            handle.write(args.prompt.replace("\n", " ") + "\n")

    if args.rate_limit_once is not None and not args.rate_limit_once.exists():
        args.rate_limit_once.write_text("limited\n", "utf-8")
        _emit({"type": "result", "is_error": True, "result": "Claude AI usage limit reached"})
        return 1

    if args.sleep > 0:
        time.sleep(args.sleep)

    if "FAIL" in args.prompt:
        sys.stderr.write("echo_agent: simulated failure\n")
        return 2

    _emit(_delta("Echo: "))
    _emit(_delta(args.prompt))
    _emit(_message_stop())
    _emit(_message_stop())
    _emit({"type": "result", "is_error": False, "result": args.prompt})
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
