"""Codex credential discovery and persistence."""

from __future__ import annotations

import json
import os
import re
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..constants import KEYCHAIN_SERVICE, TOKEN_REFRESH_AGE_SECONDS, MulticodexPaths, console, debug
from ..core.models import LoadedAuth
from ..utils import as_record, atomic_write_text, parse_iso_timestamp, parse_json_record, read_text_or_none

_HEX_RE = re.compile(r'^[0-9a-fA-F]+$')


def decode_hex_utf8(text: str) -> Optional[str]:
    clean = text[2:] if text[:2] in ('0x', '0X') else text
    if not clean or len(clean) % 2 != 0 or not _HEX_RE.match(clean):
        return None
    return bytes.fromhex(clean).decode('utf-8', errors='replace')


def parse_auth_payload(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse an auth payload stored as JSON or as hex-encoded UTF-8 JSON."""
    if text is None:
        return None
    parsed = parse_json_record(text)
    if parsed is not None:
        return parsed

    decoded = decode_hex_utf8(text.strip())
    if decoded is None:
        return None
    return parse_json_record(decoded)


def has_token_like_auth(auth: Optional[Dict[str, Any]]) -> bool:
    """True when the payload carries an access token or an API key."""
    if auth is None:
        return False
    api_key = auth.get('OPENAI_API_KEY')
    if isinstance(api_key, str) and api_key:
        return True
    tokens = as_record(auth.get('tokens'))
    if tokens is None:
        return False
    access_token = tokens.get('access_token')
    return isinstance(access_token, str) and bool(access_token)


def needs_refresh(auth: Dict[str, Any], now: Optional[float] = None) -> bool:
    """A token needs a proactive refresh when ``last_refresh`` is missing, unparseable, or older than 8 days."""
    refreshed_at = parse_iso_timestamp(auth.get('last_refresh'))
    if refreshed_at is None:
        return True
    now = time.time() if now is None else now
    return now - refreshed_at.timestamp() > TOKEN_REFRESH_AGE_SECONDS


class CredentialStore:
    """
    Locates and persists Codex auth payloads.

    Responsibilities:
    - Resolve the first usable auth file among the candidate locations
    - Fall back to the macOS keychain entry used by Codex
    - Write refreshed tokens back to wherever they were loaded from
    """

    def __init__(self, paths: MulticodexPaths, platform: str = sys.platform):
        self.paths = paths
        self.platform = platform

    def candidate_paths(self, preferred_path: Optional[Path] = None) -> List[Path]:
        """Candidate auth files in lookup order, deduplicated by resolved path."""
        candidates: List[Path] = []
        if preferred_path is not None:
            candidates.append(preferred_path)
        candidates.append(self.paths.active_auth_path)

        codex_home = os.environ.get('CODEX_HOME', '').strip()
        if codex_home:
            candidates.append(Path(codex_home) / 'auth.json')

        candidates.append(self.paths.user_home / '.config' / 'codex' / 'auth.json')
        candidates.append(self.paths.user_home / '.codex' / 'auth.json')

        deduped: List[Path] = []
        seen = set()
        for candidate in candidates:
            resolved = candidate.expanduser().resolve()
            if resolved in seen:
                continue
            seen.add(resolved)
            deduped.append(resolved)
        return deduped

    def load_from_file(self, path: Path) -> Optional[LoadedAuth]:
        text = read_text_or_none(path)
        if text is None:
            return None

        auth = parse_auth_payload(text)
        if not has_token_like_auth(auth):
            debug(f'Skipping {path}: no usable token')
            return None
        return LoadedAuth(auth=auth, source='file', path=path)

    def load(self, preferred_path: Optional[Path] = None, strict: bool = False) -> Optional[LoadedAuth]:
        """
        Load the first usable auth payload.

        Args:
            preferred_path: Checked before the default locations
            strict: Only consider ``preferred_path`` (no defaults, no keychain)

        Returns:
            LoadedAuth, or None when nothing usable exists
        """
        if strict:
            if preferred_path is None:
                return None
            return self.load_from_file(preferred_path)

        for path in self.candidate_paths(preferred_path):
            loaded = self.load_from_file(path)
            if loaded is not None:
                debug(f'Loaded auth from {path}')
                return loaded

        return self.load_from_keychain()

    def load_from_keychain(self) -> Optional[LoadedAuth]:
        if self.platform != 'darwin':
            return None
        try:
            result = subprocess.run(
                ['security', 'find-generic-password', '-s', KEYCHAIN_SERVICE, '-w'],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            debug(f'Keychain lookup failed: {exc}')
            return None

        if result.returncode != 0:
            return None
        auth = parse_auth_payload(result.stdout)
        if not has_token_like_auth(auth):
            return None
        return LoadedAuth(auth=auth, source='keychain')

    def persist(self, loaded: LoadedAuth):
        """Write ``loaded.auth`` back to its source. Keychain writes are best-effort."""
        if loaded.source == 'file' and loaded.path is not None:
            atomic_write_text(loaded.path, json.dumps(loaded.auth, indent=2) + '\n')
            return

        if self.platform != 'darwin':
            return
        try:
            result = subprocess.run(
                [
                    'security',
                    'add-generic-password',
                    '-U',
                    '-s',
                    KEYCHAIN_SERVICE,
                    '-a',
                    KEYCHAIN_SERVICE,
                    '-w',
                    json.dumps(loaded.auth),
                ],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            console.print(f'[yellow]Warning: could not update keychain credentials: {exc}[/yellow]')
            return
        if result.returncode != 0:
            console.print('[yellow]Warning: could not update keychain credentials[/yellow]')
