"""Configuration helpers for usage request headers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Optional

from .constants import VERSION
from .utils import atomic_write_json


def default_headers() -> Dict[str, str]:
    return {
        'accept': 'application/json',
        'user-agent': f'multicodex/{VERSION}',
    }


def load_headers_config(headers_path: Optional[Path]) -> Dict[str, str]:
    """Load headers configuration, creating defaults if missing."""
    headers = default_headers()
    if headers_path is None:
        return headers

    if not headers_path.exists():
        try:
            atomic_write_json(headers_path, headers)
        except OSError:
            return headers

    try:
        with open(headers_path, 'r', encoding='utf-8') as handle:
            config = json.load(handle)
    except (OSError, ValueError):
        return headers

    if isinstance(config, dict):
        headers.update({str(key).lower(): str(value) for key, value in config.items()})
    return headers
