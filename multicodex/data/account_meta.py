"""Per-account advisory metadata (meta.json)."""

from __future__ import annotations

from typing import Optional

from ..constants import MulticodexPaths, debug
from ..core.models import AccountMeta
from ..utils import atomic_write_json, now_iso, parse_json_record, read_text_or_none


class AccountMetaStore:
   """Metadata is informational only; a missing or corrupt file reads as None."""

   def __init__(self, paths: MulticodexPaths):
      self.paths = paths

   def read(self, account: str) -> Optional[AccountMeta]:
      path = self.paths.account_meta_path(account)
      try:
         text = read_text_or_none(path)
      except OSError as exc:
         debug(f"Cannot read {path}: {exc}")
         return None
      return AccountMeta.from_dict(parse_json_record(text))

   def write(self, account: str, meta: AccountMeta):
      meta.updated_at = now_iso()
      atomic_write_json(self.paths.account_meta_path(account), meta.to_dict())

   def ensure(self, account: str) -> AccountMeta:
      existing = self.read(account)
      if existing is not None:
         return existing
      meta = AccountMeta(created_at=now_iso())
      self.write(account, meta)
      return meta

   def update(self, account: str, **patch: Optional[str]) -> AccountMeta:
      """Merge ``patch`` (snake_case field names) into the stored metadata."""
      meta = self.read(account) or AccountMeta(created_at=now_iso())
      for key, value in patch.items():
         if key not in AccountMeta._FIELDS:
            raise TypeError(f"Unknown account meta field: {key}")
         setattr(meta, key, value)
      self.write(account, meta)
      return meta
