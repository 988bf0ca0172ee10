"""Shared constants and filesystem layout for the multicodex package."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .presentation.console import console, debug

VERSION = "0.2.0"

# Wrapped tool
CODEX_BIN_ENV = "MULTICODEX_CODEX_BIN"
DEFAULT_CODEX_BIN = "codex"
RPC_ARGS = ["-s", "read-only", "-a", "untrusted", "app-server"]
RPC_MESSAGE_TIMEOUT_SECONDS = 10.0

# Usage windows as reported by the provider
FIVE_HOUR_WINDOW_MINS = 300
WEEKLY_WINDOW_MINS = 7 * 24 * 60

# Limits fetching
LIMITS_PROVIDERS = ("auto", "api", "rpc")
DEFAULT_LIMITS_TTL_SECONDS = 300
API_FETCH_MAX_WORKERS = 8

TOKEN_REFRESH_AGE_SECONDS = 8 * 24 * 60 * 60  # refresh before first request when older
STORE_LOCK_TIMEOUT_SECONDS = 10
KEYCHAIN_SERVICE = "Codex Auth"


def codex_executable() -> str:
    """Return the wrapped tool's executable, honoring MULTICODEX_CODEX_BIN."""
    override = os.environ.get(CODEX_BIN_ENV, "").strip()
    return override or DEFAULT_CODEX_BIN


@dataclass(frozen=True)
class MulticodexPaths:
    """Resolved locations of multicodex state and the wrapped tool's auth file."""

    home: Path
    codex_home: Path
    user_home: Path

    @classmethod
    def from_env(cls) -> MulticodexPaths:
        user_home = Path.home()

        override = os.environ.get("MULTICODEX_HOME", "").strip()
        home = Path(override).expanduser().resolve() if override else user_home / ".config" / "multicodex"

        codex_override = os.environ.get("CODEX_HOME", "").strip()
        codex_home = Path(codex_override).expanduser() if codex_override else user_home / ".codex"

        return cls(home=home, codex_home=codex_home, user_home=user_home)

    @property
    def config_path(self) -> Path:
        return self.home / "config.json"

    @property
    def accounts_dir(self) -> Path:
        return self.home / "accounts"

    def account_dir(self, account: str) -> Path:
        return self.accounts_dir / account

    def account_auth_path(self, account: str) -> Path:
        return self.account_dir(account) / "auth.json"

    def account_meta_path(self, account: str) -> Path:
        return self.account_dir(account) / "meta.json"

    @property
    def auth_lock_dir(self) -> Path:
        return self.home / "locks" / "auth.lockdir"

    @property
    def store_lock_path(self) -> Path:
        return self.home / ".store.lock"

    @property
    def limits_cache_path(self) -> Path:
        return self.home / "limits-cache.json"

    @property
    def headers_path(self) -> Path:
        return self.home / "headers.json"

    @property
    def active_auth_path(self) -> Path:
        """The wrapped tool's single credential file."""
        return self.codex_home / "auth.json"
