"""TTL-bounded, file-persisted cache of usage snapshots."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from ..core.models import CachedLimits, OutcomeKind, UsageSnapshot
from ..infrastructure.locking import StoreLock
from ..utils import as_record, atomic_write_json, parse_json_record, read_number, read_text_or_none

CACHE_VERSION = 1
CACHE_PROVIDERS = ("api", "rpc")


def _provider_for(kind: OutcomeKind) -> str:
    if kind is OutcomeKind.LIVE_API:
        return "api"
    if kind is OutcomeKind.LIVE_RPC:
        return "rpc"
    raise ValueError(f"Only live results are cached, got {kind.value}")


class LimitsCache:
    """
    Map of account -> last fetched usage snapshot.

    Entries never expire on their own; ``get`` refuses entries older than the
    caller's TTL. Any problem reading the file is treated as an empty cache.
    """

    def __init__(self, cache_path: Path, lock_path: Path, clock: Callable[[], float] = time.time):
        self.cache_path = cache_path
        self.lock_path = lock_path
        self.clock = clock

    def _load(self) -> Dict[str, Any]:
        try:
            text = read_text_or_none(self.cache_path)
        except OSError:
            text = None

        data = parse_json_record(text)
        if data is None or data.get("version") != CACHE_VERSION or as_record(data.get("accounts")) is None:
            return {"version": CACHE_VERSION, "accounts": {}}
        return data

    def get(self, account: str, ttl_seconds: float) -> Optional[CachedLimits]:
        entry = as_record(self._load()["accounts"].get(account))
        if entry is None:
            return None

        fetched_at = read_number(entry.get("fetchedAt"))
        snapshot = as_record(entry.get("snapshot"))
        if fetched_at is None or snapshot is None:
            return None

        age_seconds = max(0.0, self.clock() - fetched_at / 1000)
        if age_seconds > ttl_seconds:
            return None

        provider = entry.get("provider")
        return CachedLimits(
            snapshot=UsageSnapshot.from_dict(snapshot),
            age_seconds=age_seconds,
            provider=provider if provider in CACHE_PROVIDERS else None,
        )

    def set(self, account: str, snapshot: UsageSnapshot, source: OutcomeKind):
        self.set_many([(account, snapshot, source)])

    def set_many(self, entries: Iterable[Tuple[str, UsageSnapshot, OutcomeKind]]):
        """Write several live results in one read-modify-write."""
        entries = list(entries)
        if not entries:
            return

        with StoreLock(self.lock_path):
            cache = self._load()
            fetched_at = int(self.clock() * 1000)
            for account, snapshot, source in entries:
                cache["accounts"][account] = {
                    "snapshot": snapshot.to_dict(),
                    "fetchedAt": fetched_at,
                    "provider": _provider_for(source),
                }
            atomic_write_json(self.cache_path, cache)

    def forget(self, account: str):
        with StoreLock(self.lock_path):
            cache = self._load()
            if cache["accounts"].pop(account, None) is not None:
                atomic_write_json(self.cache_path, cache)

    def rename(self, old: str, new: str):
        with StoreLock(self.lock_path):
            cache = self._load()
            entry = cache["accounts"].pop(old, None)
            if entry is None:
                return
            cache["accounts"][new] = entry
            atomic_write_json(self.cache_path, cache)
