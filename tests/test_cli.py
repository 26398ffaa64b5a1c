from __future__ import annotations

import subprocess
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from nigel import __version__
from nigel.main import nigel

pytestmark = [
    allure.epic("CLI"),
    allure.feature("Run & List Commands"),
]


@pytest.fixture()
def work_dir(monkeypatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("NIGEL_WORK_DIR", str(tmp_path))
    monkeypatch.delenv("NIGEL_TASKS_DIR", raising=False)
    monkeypatch.delenv("NIGEL_CLAUDE_COMMAND", raising=False)
    return tmp_path


@pytest.fixture()
def demo_task(make_task_dir) -> Path:
    return make_task_dir(
        "demo",
        candidate_source=r"printf 'a\nb\n'",
        prompt="Fix $INPUT",
    )


def test_version():
    assert __version__


def test_version_option():
    runner = CliRunner()
    result = runner.invoke(nigel, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_list_without_tasks(work_dir: Path) -> None:
    result = CliRunner().invoke(nigel, ["list"])

    assert result.exit_code == 0
    assert "No tasks found." in result.output


def test_list_shows_tasks_and_modes(work_dir: Path, make_task_dir) -> None:
    make_task_dir("alpha", candidate_source="echo a", prompt="x", accept_best_effort=True)
    make_task_dir("beta", candidate_source="echo b", prompt="x")

    result = CliRunner().invoke(nigel, ["list"])

    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[0] == "Available tasks:"
    assert lines[1].split() == ["alpha", "[best-effort]"]
    assert lines[2].split() == ["beta", "[standard]"]


def test_run_dry_run_prints_prompts_only(work_dir: Path, demo_task: Path) -> None:
    result = CliRunner().invoke(nigel, ["run", "demo", "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "Fix a" in result.output
    assert "Fix b" in result.output
    assert "Task summary: task=demo reason=exhausted iterations=2" in result.output
    assert not (demo_task / "ignored.log").exists()
    assert not (demo_task / "claude.log").exists()


def test_run_with_echo_agent(work_dir: Path, demo_task: Path, echo_agent_command: str) -> None:
    result = CliRunner().invoke(
        nigel,
        ["run", "demo", "--claude-command", echo_agent_command, "--task-timeout", "1m"],
    )

    assert result.exit_code == 0, result.output
    assert "Echo: Fix a" in result.output
    assert "succeeded=2" in result.output
    assert f"Transcript: {demo_task / 'claude.log'}" in result.output
    assert (demo_task / "ignored.log").read_text("utf-8") == "a\nb\n"
    transcript = (demo_task / "claude.log").read_text("utf-8")
    assert "Prompt: Fix a" in transcript
    assert "Echo: Fix b" in transcript


def test_run_respects_limit(work_dir: Path, demo_task: Path, echo_agent_command: str) -> None:
    result = CliRunner().invoke(
        nigel,
        ["run", "demo", "--claude-command", echo_agent_command, "--limit", "1"],
    )

    assert result.exit_code == 0, result.output
    assert "reason=limit_reached iterations=1" in result.output
    assert (demo_task / "ignored.log").read_text("utf-8") == "a\n"


def test_run_rejects_invalid_shard(work_dir: Path, demo_task: Path) -> None:
    result = CliRunner().invoke(nigel, ["run", "demo", "--shard", "5/4"])

    assert result.exit_code == 2
    assert "--shard" in result.output


def test_run_rejects_invalid_duration(work_dir: Path, demo_task: Path) -> None:
    result = CliRunner().invoke(nigel, ["run", "demo", "--time-limit", "soon"])

    assert result.exit_code == 2
    assert "Invalid duration" in result.output


def test_run_unknown_task(work_dir: Path) -> None:
    result = CliRunner().invoke(nigel, ["run", "missing"])

    assert result.exit_code == 1
    assert "not found" in result.output


def test_run_candidate_source_failure(work_dir: Path, make_task_dir) -> None:
    make_task_dir("broken", candidate_source="exit 4", prompt="x")

    result = CliRunner().invoke(nigel, ["run", "broken", "--dry-run"])

    assert result.exit_code == 1
    assert "exit code 4" in result.output


def test_run_requires_clean_tree(work_dir: Path, make_task_dir) -> None:
    make_task_dir("strict", candidate_source="echo a", prompt="x", require_clean_tree=True)
    subprocess.run(["git", "init", "-q"], cwd=work_dir, check=True)

    result = CliRunner().invoke(nigel, ["run", "strict"])

    assert result.exit_code == 1
    assert "Uncommitted changes" in result.output


def test_run_refuses_unknown_assistant_command(work_dir: Path, demo_task: Path) -> None:
    result = CliRunner().invoke(nigel, ["run", "demo", "--claude-command", "claudee-typo"])

    assert result.exit_code == 1
    assert "Assistant command not found" in result.output
    assert not (demo_task / "ignored.log").exists()


def test_dry_run_skips_assistant_command_check(work_dir: Path, demo_task: Path) -> None:
    result = CliRunner().invoke(nigel, ["run", "demo", "--dry-run", "--claude-command", "nope-x"])

    assert result.exit_code == 0, result.output


def test_list_reports_broken_tasks_without_hiding_valid_ones(
    work_dir: Path,
    make_task_dir,
) -> None:
    make_task_dir("good", candidate_source="echo a", prompt="x")
    make_task_dir("bad", candidate_source="echo a", prompt="x", promt="typo")

    result = CliRunner().invoke(nigel, ["list"])

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0] == "Available tasks:"
    assert lines[1].split() == ["good", "[standard]"]
    assert lines[2] == "Invalid tasks:"
    assert lines[3].split()[0] == "bad"
    assert "unknown keys: promt" in lines[3]
