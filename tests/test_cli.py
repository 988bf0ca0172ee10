"""End-to-end tests for the click command tree."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from multicodex.constants import VERSION
from multicodex.core.errors import TokenExpired
from multicodex.core.models import UsageSnapshot, UsageWindow
from multicodex.infrastructure.api import CodexUsageAPI
from multicodex.presentation.cli import cli


@pytest.fixture
def runner(home):
    return CliRunner()


def invoke_json(runner, args):
    result = runner.invoke(cli, args)
    return result, json.loads(result.stdout)


def test_version(runner):
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert VERSION in result.output


def test_add_then_list_json(runner):
    result, payload = invoke_json(runner, ["accounts", "add", "work", "--json"])
    assert result.exit_code == 0
    assert payload == {
        "schemaVersion": 1,
        "command": "accounts.add",
        "ok": True,
        "data": {"account": "work", "currentAccount": "work"},
    }

    result, payload = invoke_json(runner, ["ls", "--json"])
    assert result.exit_code == 0
    assert payload["command"] == "accounts.list"
    assert payload["data"]["currentAccount"] == "work"
    assert payload["data"]["accounts"] == [
        {"name": "work", "isCurrent": True, "hasAuth": False, "lastUsedAt": None, "lastLoginStatus": None}
    ]


def test_duplicate_add_reports_error_code(runner):
    runner.invoke(cli, ["add", "work"])

    result, payload = invoke_json(runner, ["add", "work", "--json"])

    assert result.exit_code == 1
    assert payload["ok"] is False
    assert payload["error"]["code"] == "ACCOUNT_EXISTS"


def test_current_without_accounts_exits_two(runner):
    result, payload = invoke_json(runner, ["which", "--json"])

    assert result.exit_code == 2
    assert payload["error"]["code"] == "NO_CURRENT_ACCOUNT"


def test_current_prints_plain_name(runner):
    runner.invoke(cli, ["add", "work"])

    result = runner.invoke(cli, ["accounts", "current"])

    assert result.exit_code == 0
    assert result.stdout.strip() == "work"


def test_switch_alias_and_rename(runner, paths):
    runner.invoke(cli, ["add", "work"])
    runner.invoke(cli, ["add", "personal"])

    assert runner.invoke(cli, ["switch", "personal"]).exit_code == 0
    result, payload = invoke_json(runner, ["accounts", "rename", "personal", "home", "--json"])

    assert result.exit_code == 0
    assert payload["data"] == {"from": "personal", "to": "home", "currentAccount": "home"}


def test_unknown_account_is_an_error(runner):
    runner.invoke(cli, ["add", "work"])

    result, payload = invoke_json(runner, ["accounts", "use", "ghost", "--json"])

    assert result.exit_code == 1
    assert payload["error"]["code"] == "UNKNOWN_ACCOUNT"


def test_run_without_separator_is_usage_error(runner):
    runner.invoke(cli, ["add", "work"])

    result = runner.invoke(cli, ["run", "work"])

    assert result.exit_code == 2
    assert "--" in result.output


def test_run_rejects_name_and_account_together(runner):
    result = runner.invoke(cli, ["run", "a", "--account", "b", "--", "exec"])

    assert result.exit_code == 2


def test_run_swaps_auth_and_propagates_exit_code(runner, paths, fake_codex, monkeypatch, tmp_path):
    record = tmp_path / "argv.json"
    script = fake_codex(
        "import json, os, sys\n"
        "from pathlib import Path\n"
        "auth = Path(os.environ['CODEX_HOME']) / 'auth.json'\n"
        f"Path({str(record)!r}).write_text(json.dumps({{'argv': sys.argv[1:], 'auth': auth.read_text()}}))\n"
        "auth.write_text('refreshed')\n"
        "sys.exit(5)\n"
    )
    monkeypatch.setenv("MULTICODEX_CODEX_BIN", str(script))
    runner.invoke(cli, ["add", "work"])
    runner.invoke(cli, ["add", "personal"])
    paths.account_auth_path("work").write_text("work-auth")
    paths.active_auth_path.parent.mkdir(parents=True)
    paths.active_auth_path.write_text("personal-auth")

    result = runner.invoke(cli, ["run", "work", "--temp", "--", "codex", "exec", "--model", "x"])

    assert result.exit_code == 5
    assert json.loads(record.read_text()) == {"argv": ["exec", "--model", "x"], "auth": "work-auth"}
    assert paths.account_auth_path("work").read_text() == "refreshed"
    assert paths.active_auth_path.read_text() == "personal-auth"


def test_codex_passthrough_uses_current_account(runner, paths, fake_codex, monkeypatch):
    script = fake_codex("import sys\nsys.exit(len(sys.argv) - 1)\n")
    monkeypatch.setenv("MULTICODEX_CODEX_BIN", str(script))
    runner.invoke(cli, ["add", "work"])

    result = runner.invoke(cli, ["codex", "--version", "-x"])

    assert result.exit_code == 2


def test_status_json_records_login_status(runner, paths, fake_codex, monkeypatch):
    script = fake_codex("print('Logged in using ChatGPT')\n")
    monkeypatch.setenv("MULTICODEX_CODEX_BIN", str(script))
    runner.invoke(cli, ["add", "work"])

    result, payload = invoke_json(runner, ["whoami", "--json"])

    assert result.exit_code == 0
    assert payload["command"] == "status"
    assert payload["data"]["account"] == "work"
    assert payload["data"]["output"] == "Logged in using ChatGPT"
    meta = json.loads(paths.account_meta_path("work").read_text())
    assert meta["lastLoginStatus"] == "Logged in using ChatGPT"


def test_limits_without_accounts_json(runner):
    result, payload = invoke_json(runner, ["limits", "--json"])

    assert result.exit_code == 2
    assert payload["error"]["code"] == "NO_ACCOUNTS"


def test_limits_json_reports_results_and_errors(runner):
    runner.invoke(cli, ["add", "good"])
    runner.invoke(cli, ["add", "bad"])

    def fetch_usage(auth_path, strict=False):
        if auth_path.parent.name == "bad":
            raise TokenExpired()
        return UsageSnapshot(primary=UsageWindow(used_percent=42, window_duration_mins=300, resets_at=1_700_001_800))

    with patch.object(CodexUsageAPI, "fetch_usage", side_effect=fetch_usage):
        result, payload = invoke_json(runner, ["usage", "--provider", "api", "--json"])

    assert result.exit_code == 1
    assert payload["ok"] is False
    assert payload["data"]["results"] == [
        {
            "account": "good",
            "source": "live-api",
            "provider": "api",
            "snapshot": {
                "primary": {"usedPercent": 42, "windowDurationMins": 300, "resetsAt": 1_700_001_800},
                "secondary": None,
                "credits": None,
            },
        }
    ]
    assert payload["data"]["errors"] == [
        {"account": "bad", "message": "Token expired. Run `codex` to log in again."}
    ]


def test_limits_table_uses_cache_on_second_run(runner):
    runner.invoke(cli, ["add", "work"])
    snapshot = UsageSnapshot(primary=UsageWindow(used_percent=91, window_duration_mins=300))

    with patch.object(CodexUsageAPI, "fetch_usage", return_value=snapshot) as fetch:
        first = runner.invoke(cli, ["limits", "work", "--provider", "api"])
        second = runner.invoke(cli, ["limits", "--account", "work", "--provider", "api"])

    assert first.exit_code == 0
    assert second.exit_code == 0
    assert fetch.call_count == 1
    assert "91%" in second.stdout
    assert "cached api" in second.stdout


def test_completion_script(runner):
    result = runner.invoke(cli, ["completion", "zsh"])

    assert result.exit_code == 0
    assert "_MULTICODEX_COMPLETE" in result.output
