"""Tests for running codex under the auth swap protocol."""

import pytest

from multicodex.core.errors import ProviderUnavailable
from multicodex.services.runner import CodexRunner, exit_code_from_returncode
from multicodex.services.switching import AuthSwapService

REFRESHING_CODEX = r'''
import os
import sys
from pathlib import Path

auth = Path(os.environ["CODEX_HOME"]) / "auth.json"
print("saw " + auth.read_text() + " args " + " ".join(sys.argv[1:]))
sys.stderr.write("warning line\n")
auth.write_text("refreshed-by-codex")
sys.exit(3)
'''


@pytest.fixture
def runner(paths, fake_codex):
    return CodexRunner(AuthSwapService(paths), executable=str(fake_codex(REFRESHING_CODEX)))


@pytest.fixture
def work_snapshot(paths):
    path = paths.account_auth_path("work")
    path.parent.mkdir(parents=True)
    path.write_text("work-auth")
    return path


def test_run_returns_exit_code_and_captures_refreshed_auth(runner, paths, work_snapshot):
    exit_code = runner.run("work", ["exec", "hello"])

    assert exit_code == 3
    assert work_snapshot.read_text() == "refreshed-by-codex"
    assert paths.active_auth_path.read_text() == "refreshed-by-codex"
    assert not paths.auth_lock_dir.exists()


def test_run_with_restore_puts_previous_login_back(runner, paths, work_snapshot):
    paths.active_auth_path.parent.mkdir(parents=True)
    paths.active_auth_path.write_text("personal-auth")

    runner.run("work", [], restore_previous=True)

    assert paths.active_auth_path.read_text() == "personal-auth"
    assert work_snapshot.read_text() == "refreshed-by-codex"


def test_run_capture_collects_output(runner, work_snapshot):
    result = runner.run_capture("work", ["login", "status"])

    assert result.exit_code == 3
    assert result.stdout == "saw work-auth args login status\n"
    assert result.stderr == "warning line\n"
    assert result.output == "saw work-auth args login status\nwarning line"


def test_environment_override_selects_executable(paths, fake_codex, work_snapshot, monkeypatch):
    script = fake_codex(REFRESHING_CODEX, name="codex-dev")
    monkeypatch.setenv("MULTICODEX_CODEX_BIN", str(script))
    runner = CodexRunner(AuthSwapService(paths))

    assert runner.command(["--version"]) == [str(script), "--version"]
    assert runner.run_capture("work", []).exit_code == 3


def test_missing_executable_is_unavailable_and_releases_lock(paths, work_snapshot, tmp_path):
    runner = CodexRunner(AuthSwapService(paths), executable=str(tmp_path / "missing-codex"))

    with pytest.raises(ProviderUnavailable, match="MULTICODEX_CODEX_BIN"):
        runner.run("work", [])

    assert not paths.auth_lock_dir.exists()
    assert work_snapshot.read_text() == "work-auth"


def test_signal_exit_codes_follow_shell_convention():
    assert exit_code_from_returncode(-15) == 143
    assert exit_code_from_returncode(-2) == 130
    assert exit_code_from_returncode(0) == 0
    assert exit_code_from_returncode(7) == 7
