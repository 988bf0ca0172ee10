"""JSON-backed account registry (config.json)."""

from __future__ import annotations

import contextlib
import re
from typing import Any, Dict, Iterator, Optional

from ..constants import MulticodexPaths, console
from ..core.errors import AccountNotFound, InvalidAccountName, NoAccountsConfigured
from ..core.models import MulticodexConfig
from ..infrastructure.locking import StoreLock
from ..utils import as_record, atomic_write_json, parse_json_record, read_text_or_none

ACCOUNT_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def normalize_account_name(name: str) -> str:
   return name.strip()


def is_valid_account_name(name: str) -> bool:
   return bool(ACCOUNT_NAME_RE.match(name))


def validate_account_name(name: str) -> str:
   """Normalize ``name`` and raise InvalidAccountName when it is not usable as a directory name."""
   account = normalize_account_name(name)
   if not is_valid_account_name(account):
      raise InvalidAccountName(account)
   return account


def _read_current(raw: Dict[str, Any]) -> Optional[str]:
   current = raw.get("currentAccount")
   if isinstance(current, str) and current.strip():
      return current
   return None


def config_from_dict(raw: Any) -> MulticodexConfig:
   """
   Build a config from any JSON value.

   Version 2 is the current layout. Version 1 (per-account ``codexHome``
   directories) is migrated: only the account names carry over, accounts
   without a ``codexHome`` were never usable and are dropped. Anything else
   is treated as an empty registry.
   """
   record = as_record(raw)
   if record is None:
      return MulticodexConfig()

   accounts_raw = as_record(record.get("accounts")) or {}
   version = record.get("version")

   if version == 2:
      return MulticodexConfig(
         accounts={name: {} for name in accounts_raw},
         current_account=_read_current(record),
      )

   if version == 1:
      accounts = {}
      for name, entry in accounts_raw.items():
         entry = as_record(entry)
         if entry is None:
            continue
         codex_home = entry.get("codexHome")
         if not isinstance(codex_home, str) or not codex_home.strip():
            continue
         accounts[name] = {}
      return MulticodexConfig(accounts=accounts, current_account=_read_current(record))

   return MulticodexConfig()


class Store:
   """
   Repository for the account registry.

   Reads are lock-free; every read-modify-write goes through ``update()``,
   which holds the store lock so concurrent multicodex processes do not lose
   each other's changes.
   """

   def __init__(self, paths: MulticodexPaths):
      self.paths = paths

   def lock(self) -> StoreLock:
      return StoreLock(self.paths.store_lock_path)

   def load(self) -> MulticodexConfig:
      """Load config.json; a missing file is an empty registry."""
      text = read_text_or_none(self.paths.config_path)
      if text is None:
         return MulticodexConfig()

      raw = parse_json_record(text)
      if raw is None:
         console.print(f"[yellow]Ignoring unreadable config: {self.paths.config_path}[/yellow]")
      return config_from_dict(raw)

   def save(self, config: MulticodexConfig):
      atomic_write_json(self.paths.config_path, config.to_dict())

   @contextlib.contextmanager
   def update(self) -> Iterator[MulticodexConfig]:
      """Load, yield for mutation, and save the config under the store lock."""
      with self.lock():
         config = self.load()
         yield config
         self.save(config)

   def resolve_account_name(self, requested: Optional[str] = None, config: Optional[MulticodexConfig] = None) -> str:
      """
      Pick the account a command operates on.

      Order: explicit request, the current account (if still registered),
      the first registered account.

      Raises:
         NoAccountsConfigured: nothing requested and the registry is empty
      """
      if requested and requested.strip():
         return normalize_account_name(requested)

      config = config or self.load()
      if config.current_account and config.current_account in config.accounts:
         return config.current_account

      names = list(config.accounts)
      if names:
         return names[0]

      raise NoAccountsConfigured()

   def ensure_account_exists(self, account: str, config: Optional[MulticodexConfig] = None):
      config = config or self.load()
      if account not in config.accounts:
         raise AccountNotFound(account)
