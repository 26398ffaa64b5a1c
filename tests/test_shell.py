from __future__ import annotations

import subprocess
from pathlib import Path

import allure
import pytest

from nigel.loop.backend.shell import (
    OutputMode,
    has_uncommitted_changes,
    run_candidate_source,
    run_command,
)
from nigel.loop.errors import CandidateSourceError

pytestmark = [
    allure.epic("Candidate Loop"),
    allure.feature("Shell Commands"),
]


class TestCandidateSource:
    def test_returns_stdout_bytes(self, tmp_path: Path) -> None:
        (tmp_path / "a.txt").write_text("", "utf-8")

        output = run_candidate_source("ls *.txt", tmp_path)

        assert output == b"a.txt\n"

    def test_non_zero_exit_is_fatal_and_reports_stderr(self, tmp_path: Path) -> None:
        with pytest.raises(CandidateSourceError, match="exit code 3") as excinfo:
            run_candidate_source("echo nope >&2; exit 3", tmp_path)

        assert "stderr: nope" in str(excinfo.value)


class TestRunCommand:
    def test_passthrough_success(self, tmp_path: Path) -> None:
        assert run_command("true", tmp_path)
        assert not run_command("false", tmp_path)

    def test_show_on_fail_is_quiet_on_success(
        self,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert run_command("echo success; echo noise >&2", tmp_path, mode=OutputMode.SHOW_ON_FAIL)

        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err == ""

    def test_show_on_fail_replays_output_on_failure(
        self,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        ok = run_command(
            "echo failure; echo error >&2; exit 1",
            tmp_path,
            mode=OutputMode.SHOW_ON_FAIL,
        )

        captured = capsys.readouterr()
        assert not ok
        assert captured.out == "failure\n"
        assert captured.err == "error\n"

    def test_silent_never_prints(
        self,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert not run_command("echo hidden; exit 1", tmp_path, mode=OutputMode.SILENT)

        assert capsys.readouterr().out == ""

    def test_runs_in_work_dir(self, tmp_path: Path) -> None:
        assert run_command("touch marker", tmp_path)
        assert (tmp_path / "marker").exists()


def _git(tmp_path: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=tmp_path, check=True, capture_output=True)


class TestCleanTree:
    @pytest.fixture()
    def repo(self, tmp_path: Path) -> Path:
        _git(tmp_path, "init", "-q")
        _git(tmp_path, "config", "user.email", "dev@example.com")
        _git(tmp_path, "config", "user.name", "Dev")
        (tmp_path / "tracked.txt").write_text("one\n", "utf-8")
        _git(tmp_path, "add", "tracked.txt")
        _git(tmp_path, "commit", "-q", "-m", "init")
        return tmp_path

    def test_clean_repo(self, repo: Path) -> None:
        assert not has_uncommitted_changes(repo)

    def test_unstaged_change(self, repo: Path) -> None:
        (repo / "tracked.txt").write_text("two\n", "utf-8")

        assert has_uncommitted_changes(repo)

    def test_staged_change(self, repo: Path) -> None:
        (repo / "new.txt").write_text("x\n", "utf-8")
        _git(repo, "add", "new.txt")

        assert has_uncommitted_changes(repo)

    def test_untracked_file(self, repo: Path) -> None:
        (repo / "untracked.txt").write_text("x\n", "utf-8")

        assert has_uncommitted_changes(repo)
