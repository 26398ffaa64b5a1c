"""Shared test fixtures."""

from __future__ import annotations

import shlex
import sys
from collections.abc import Callable
from pathlib import Path

import pytest
import yaml

ECHO_AGENT_COMMAND = f"{shlex.quote(sys.executable)} -m nigel.loop.backend.echo_agent"


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instantly."""

    def __init__(self) -> None:
        self.now = 1_000.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def echo_agent_command() -> str:
    return ECHO_AGENT_COMMAND


@pytest.fixture()
def make_task_dir(tmp_path: Path) -> Callable[..., Path]:
    """Create ``<tmp>/nigel/<name>/task.yaml`` from keyword values."""

    def _make(name: str = "demo", *, prompt_md: str | None = None, **values: object) -> Path:
        task_dir = tmp_path / "nigel" / name
        task_dir.mkdir(parents=True, exist_ok=True)
        (task_dir / "task.yaml").write_text(yaml.safe_dump(values), "utf-8")
        if prompt_md is not None:
            (task_dir / "prompt.md").write_text(prompt_md, "utf-8")
        return task_dir

    return _make
