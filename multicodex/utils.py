"""Shared utility functions: atomic file primitives and lenient JSON/time parsing."""

from __future__ import annotations

import json
import math
import os
import re
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


def read_bytes_or_none(path: Path) -> Optional[bytes]:
    """Return file contents, or None when the file does not exist."""
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def read_text_or_none(path: Path) -> Optional[str]:
    data = read_bytes_or_none(path)
    if data is None:
        return None
    return data.decode("utf-8", errors="replace")


def unlink_if_exists(path: Path):
    """Remove a file, tolerating its absence."""
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def atomic_write_bytes(path: Path, data: bytes, mode: int = 0o600):
    """Atomically replace ``path`` with ``data`` through a uniquely named sibling temp file."""
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    tmp_path = path.with_name(f"{path.name}.tmp.{os.getpid()}.{secrets.token_hex(4)}")
    try:
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())

        os.replace(tmp_path, path)
        os.chmod(path, mode)
    except Exception:
        unlink_if_exists(tmp_path)
        raise


def atomic_write_text(path: Path, text: str, mode: int = 0o600):
    atomic_write_bytes(path, text.encode("utf-8"), mode=mode)


def atomic_write_json(path: Path, data: Dict[str, Any], mode: int = 0o600):
    """Atomically write pretty-printed JSON with a trailing newline."""
    atomic_write_text(path, json.dumps(data, indent=2) + "\n", mode=mode)


def as_record(value: Any) -> Optional[Dict[str, Any]]:
    """Return ``value`` if it is a JSON object, else None."""
    if isinstance(value, dict):
        return value
    return None


def parse_json_record(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse text into a JSON object; anything else (blank, invalid, non-object) is None."""
    if not text or not text.strip():
        return None
    try:
        return as_record(json.loads(text))
    except ValueError:
        return None


def read_number(value: Any) -> Optional[float]:
    """Read a finite number from a JSON value or a numeric string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def read_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    return None


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (Z suffix and nanosecond fractions allowed)."""
    if not isinstance(value, str) or not value.strip():
        return None
    normalized = _FRACTION_RE.sub(r".\1", value.strip()).replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
