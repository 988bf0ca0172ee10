"""Shared fixtures: an isolated HOME with multicodex and Codex state under tmp_path."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from multicodex.constants import MulticodexPaths


@pytest.fixture
def home(tmp_path, monkeypatch) -> Path:
    """Point HOME, MULTICODEX_HOME and CODEX_HOME at a throwaway directory."""
    user_home = tmp_path / "home"
    user_home.mkdir()
    monkeypatch.setenv("HOME", str(user_home))
    monkeypatch.setenv("MULTICODEX_HOME", str(user_home / ".config" / "multicodex"))
    monkeypatch.setenv("CODEX_HOME", str(user_home / ".codex"))
    monkeypatch.delenv("MULTICODEX_CODEX_BIN", raising=False)
    monkeypatch.delenv("MULTICODEX_DEBUG", raising=False)
    return user_home


@pytest.fixture
def paths(home) -> MulticodexPaths:
    return MulticodexPaths.from_env()


def auth_payload(
    access_token: str = "access-1",
    refresh_token: Optional[str] = "refresh-1",
    account_id: Optional[str] = "acct-1",
    last_refresh: Optional[str] = "2099-01-01T00:00:00.000Z",
) -> Dict[str, Any]:
    tokens: Dict[str, Any] = {"access_token": access_token, "id_token": "id-1"}
    if refresh_token is not None:
        tokens["refresh_token"] = refresh_token
    if account_id is not None:
        tokens["account_id"] = account_id
    payload: Dict[str, Any] = {"OPENAI_API_KEY": None, "tokens": tokens}
    if last_refresh is not None:
        payload["last_refresh"] = last_refresh
    return payload


@pytest.fixture
def write_auth():
    """Write an auth.json payload (see auth_payload for keyword arguments)."""

    def _write(path: Path, **kwargs) -> bytes:
        data = (json.dumps(auth_payload(**kwargs), indent=2) + "\n").encode("utf-8")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return data

    return _write


@pytest.fixture
def make_response():
    """Build a real requests.Response without touching the network."""

    def _make(status: int = 200, body: Any = None, headers: Optional[Dict[str, str]] = None, text: Optional[str] = None):
        response = requests.Response()
        response.status_code = status
        if text is None:
            text = "" if body is None else json.dumps(body)
        response._content = text.encode("utf-8")
        response.encoding = "utf-8"
        response.headers = CaseInsensitiveDict(headers or {})
        return response

    return _make


@pytest.fixture
def fake_codex(tmp_path):
    """
    Create an executable Python script usable as MULTICODEX_CODEX_BIN.

    The script body receives ``sys.argv`` and the environment like codex would.
    """

    def _make(body: str, name: str = "codex") -> Path:
        script = tmp_path / "bin" / name
        script.parent.mkdir(parents=True, exist_ok=True)
        script.write_text(f"#!{sys.executable}\n{body}", encoding="utf-8")
        script.chmod(0o755)
        return script

    return _make
