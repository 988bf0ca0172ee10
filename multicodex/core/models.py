"""Core domain models for multicodex."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..constants import FIVE_HOUR_WINDOW_MINS, WEEKLY_WINDOW_MINS
from ..utils import as_record, read_bool, read_number


def _optional_int(value: Any) -> Optional[int]:
   number = read_number(value)
   return None if number is None else int(number)


@dataclass
class UsageWindow:
   """One rolling rate-limit window."""

   used_percent: Optional[float] = None
   window_duration_mins: Optional[int] = None
   resets_at: Optional[int] = None  # epoch seconds

   @classmethod
   def from_dict(cls, data: Any) -> Optional[UsageWindow]:
      record = as_record(data)
      if record is None:
         return None
      return cls(
         used_percent=read_number(record.get("usedPercent")),
         window_duration_mins=_optional_int(record.get("windowDurationMins")),
         resets_at=_optional_int(record.get("resetsAt")),
      )

   def to_dict(self) -> Dict[str, Any]:
      return {
         "usedPercent": self.used_percent,
         "windowDurationMins": self.window_duration_mins,
         "resetsAt": self.resets_at,
      }


@dataclass
class CreditsSnapshot:
   has_credits: Optional[bool] = None
   unlimited: Optional[bool] = None
   balance: Optional[str] = None

   @classmethod
   def from_dict(cls, data: Any) -> Optional[CreditsSnapshot]:
      record = as_record(data)
      if record is None:
         return None
      balance = record.get("balance")
      return cls(
         has_credits=read_bool(record.get("hasCredits")),
         unlimited=read_bool(record.get("unlimited")),
         balance=None if balance is None else str(balance),
      )

   def to_dict(self) -> Dict[str, Any]:
      return {"hasCredits": self.has_credits, "unlimited": self.unlimited, "balance": self.balance}


def _format_number(value: float) -> str:
   return str(int(value)) if value == int(value) else str(value)


def _read_duration_mins(window: Optional[Dict[str, Any]], fallback_mins: int) -> int:
   seconds = read_number((window or {}).get("limit_window_seconds"))
   if seconds is not None and seconds > 0:
      return max(1, round(seconds / 60))
   return fallback_mins


def _read_resets_at(window: Optional[Dict[str, Any]], now_sec: int) -> Optional[int]:
   window = window or {}
   reset_at = read_number(window.get("reset_at"))
   if reset_at is not None:
      return int(reset_at)

   reset_after = read_number(window.get("reset_after_seconds"))
   if reset_after is not None:
      return int(now_sec + reset_after)

   return None


def _build_window(
   used_percent: Optional[float], duration_mins: Optional[int], resets_at: Optional[int]
) -> Optional[UsageWindow]:
   if used_percent is None and duration_mins is None and resets_at is None:
      return None
   return UsageWindow(used_percent=used_percent, window_duration_mins=duration_mins, resets_at=resets_at)


@dataclass
class UsageSnapshot:
   """Provider-agnostic usage/quota state for one account."""

   primary: Optional[UsageWindow] = None
   secondary: Optional[UsageWindow] = None
   credits: Optional[CreditsSnapshot] = None

   @classmethod
   def from_dict(cls, data: Any) -> UsageSnapshot:
      """Build from the camelCase shape used by the RPC protocol and the limits cache."""
      record = as_record(data) or {}
      return cls(
         primary=UsageWindow.from_dict(record.get("primary")),
         secondary=UsageWindow.from_dict(record.get("secondary")),
         credits=CreditsSnapshot.from_dict(record.get("credits")),
      )

   @classmethod
   def from_usage_response(
      cls, headers: Mapping[str, str], data: Dict[str, Any], now: Optional[float] = None
   ) -> UsageSnapshot:
      """
      Build from the REST usage endpoint.

      Used-percent headers take precedence over body fields; the provider may
      omit the body values when it sends the headers.
      """
      now_sec = int(now if now is not None else time.time())
      lowered = {str(key).lower(): value for key, value in headers.items()}

      rate_limit = as_record(data.get("rate_limit")) or {}
      primary_window = as_record(rate_limit.get("primary_window"))
      secondary_window = as_record(rate_limit.get("secondary_window"))
      review_window = as_record((as_record(data.get("code_review_rate_limit")) or {}).get("primary_window"))

      header_primary = read_number(lowered.get("x-codex-primary-used-percent"))
      header_secondary = read_number(lowered.get("x-codex-secondary-used-percent"))

      primary_used = header_primary
      if primary_used is None:
         primary_used = read_number((primary_window or {}).get("used_percent"))
      primary = _build_window(
         primary_used,
         _read_duration_mins(primary_window, FIVE_HOUR_WINDOW_MINS),
         _read_resets_at(primary_window, now_sec),
      )

      secondary_source = secondary_window if secondary_window is not None else review_window
      secondary_used = header_secondary
      if secondary_used is None:
         secondary_used = read_number((secondary_window or {}).get("used_percent"))
      if secondary_used is None:
         secondary_used = read_number((review_window or {}).get("used_percent"))
      secondary = _build_window(
         secondary_used,
         _read_duration_mins(secondary_source, WEEKLY_WINDOW_MINS),
         _read_resets_at(secondary_source, now_sec),
      )

      body_credits = as_record(data.get("credits")) or {}
      header_balance = read_number(lowered.get("x-codex-credits-balance"))
      body_balance = read_number(body_credits.get("balance"))
      has_credits = read_bool(body_credits.get("has_credits"))
      unlimited = read_bool(body_credits.get("unlimited"))

      credits = None
      if header_balance is not None or body_balance is not None or has_credits is not None or unlimited is not None:
         balance = header_balance if header_balance is not None else body_balance
         credits = CreditsSnapshot(
            has_credits=has_credits,
            unlimited=unlimited,
            balance=None if balance is None else _format_number(balance),
         )

      return cls(primary=primary, secondary=secondary, credits=credits)

   def to_dict(self) -> Dict[str, Any]:
      return {
         "primary": self.primary.to_dict() if self.primary else None,
         "secondary": self.secondary.to_dict() if self.secondary else None,
         "credits": self.credits.to_dict() if self.credits else None,
      }

   def pick_windows(self) -> Tuple[Optional[UsageWindow], Optional[UsageWindow]]:
      """Return (five_hour, weekly), matched by duration with positional fallback."""
      five: Optional[UsageWindow] = None
      weekly: Optional[UsageWindow] = None

      for window in (self.primary, self.secondary):
         if window is None:
            continue
         if window.window_duration_mins == FIVE_HOUR_WINDOW_MINS:
            five = window
         elif window.window_duration_mins == WEEKLY_WINDOW_MINS:
            weekly = window

      if five is None and self.primary is not None and self.primary is not weekly:
         five = self.primary
      if weekly is None and self.secondary is not None and self.secondary is not five:
         weekly = self.secondary

      return five, weekly


@dataclass
class LoadedAuth:
   """
   Credential payload plus where it came from.

   Intentionally mutable: a token refresh rewrites ``auth`` in place before it
   is persisted back to ``source``.
   """

   auth: Dict[str, Any]
   source: str  # "file" or "keychain"
   path: Optional[Path] = None

   @property
   def tokens(self) -> Dict[str, Any]:
      return as_record(self.auth.get("tokens")) or {}

   def _token(self, key: str) -> Optional[str]:
      value = self.tokens.get(key)
      return value if isinstance(value, str) and value else None

   @property
   def access_token(self) -> Optional[str]:
      return self._token("access_token")

   @property
   def refresh_token(self) -> Optional[str]:
      return self._token("refresh_token")

   @property
   def account_id(self) -> Optional[str]:
      return self._token("account_id")

   @property
   def api_key(self) -> Optional[str]:
      value = self.auth.get("OPENAI_API_KEY")
      return value if isinstance(value, str) and value else None


@dataclass
class LockOwner:
   """Owner record stored inside the auth lock directory."""

   pid: int
   started_at: str
   account: str

   @classmethod
   def from_dict(cls, data: Any) -> Optional[LockOwner]:
      record = as_record(data)
      if record is None:
         return None
      pid = record.get("pid")
      started_at = record.get("startedAt")
      account = record.get("account")
      if isinstance(pid, bool) or not isinstance(pid, int) or pid <= 0:
         return None
      if not isinstance(started_at, str) or not isinstance(account, str):
         return None
      return cls(pid=pid, started_at=started_at, account=account)

   def to_dict(self) -> Dict[str, Any]:
      return {"pid": self.pid, "startedAt": self.started_at, "account": self.account}

   def describe(self) -> str:
      return f"{self.account} (pid {self.pid}, started {self.started_at})"


@dataclass
class MulticodexConfig:
   """Account registry persisted in config.json (version 2)."""

   accounts: Dict[str, Dict[str, Any]] = field(default_factory=dict)
   current_account: Optional[str] = None

   def to_dict(self) -> Dict[str, Any]:
      data: Dict[str, Any] = {"version": 2}
      if self.current_account:
         data["currentAccount"] = self.current_account
      data["accounts"] = self.accounts
      return data

   def sorted_names(self) -> List[str]:
      return sorted(self.accounts)


@dataclass
class AccountMeta:
   """Advisory per-account metadata; never required for correctness."""

   created_at: str
   last_used_at: Optional[str] = None
   last_login_status: Optional[str] = None
   last_login_checked_at: Optional[str] = None
   updated_at: Optional[str] = None

   _FIELDS = {
      "created_at": "createdAt",
      "last_used_at": "lastUsedAt",
      "last_login_status": "lastLoginStatus",
      "last_login_checked_at": "lastLoginCheckedAt",
      "updated_at": "updatedAt",
   }

   @classmethod
   def from_dict(cls, data: Any) -> Optional[AccountMeta]:
      record = as_record(data)
      if record is None or not isinstance(record.get("createdAt"), str):
         return None
      values = {}
      for attr, key in cls._FIELDS.items():
         value = record.get(key)
         values[attr] = value if isinstance(value, str) else None
      return cls(**values)

   def to_dict(self) -> Dict[str, Any]:
      data = {}
      for attr, key in self._FIELDS.items():
         value = getattr(self, attr)
         if value is not None:
            data[key] = value
      return data


@dataclass
class AccountEntry:
   """Account as shown by `accounts list`."""

   name: str
   is_current: bool
   has_auth: bool
   last_used_at: Optional[str] = None
   last_login_status: Optional[str] = None

   def to_dict(self) -> Dict[str, Any]:
      return {
         "name": self.name,
         "isCurrent": self.is_current,
         "hasAuth": self.has_auth,
         "lastUsedAt": self.last_used_at,
         "lastLoginStatus": self.last_login_status,
      }


@dataclass
class CachedLimits:
   snapshot: UsageSnapshot
   age_seconds: float
   provider: Optional[str] = None  # "api" or "rpc"


class OutcomeKind(str, Enum):
   CACHED = "cached"
   LIVE_API = "live-api"
   LIVE_RPC = "live-rpc"
   FAILED = "failed"


@dataclass
class LimitsOutcome:
   """Tagged per-account result of a limits query: Cached | LiveApi | LiveRpc | Failed."""

   account: str
   kind: OutcomeKind
   snapshot: Optional[UsageSnapshot] = None
   age_seconds: Optional[float] = None
   cached_provider: Optional[str] = None
   api_error: Optional[str] = None
   rpc_error: Optional[str] = None

   @classmethod
   def cached(cls, account: str, cached: CachedLimits) -> LimitsOutcome:
      return cls(
         account=account,
         kind=OutcomeKind.CACHED,
         snapshot=cached.snapshot,
         age_seconds=cached.age_seconds,
         cached_provider=cached.provider,
      )

   @classmethod
   def live(cls, account: str, kind: OutcomeKind, snapshot: UsageSnapshot) -> LimitsOutcome:
      return cls(account=account, kind=kind, snapshot=snapshot)

   @classmethod
   def failed(cls, account: str, api_error: Optional[str] = None, rpc_error: Optional[str] = None) -> LimitsOutcome:
      return cls(account=account, kind=OutcomeKind.FAILED, api_error=api_error, rpc_error=rpc_error)

   @property
   def ok(self) -> bool:
      return self.kind is not OutcomeKind.FAILED

   @property
   def is_live(self) -> bool:
      return self.kind in (OutcomeKind.LIVE_API, OutcomeKind.LIVE_RPC)

   @property
   def provider(self) -> str:
      if self.kind is OutcomeKind.LIVE_API:
         return "api"
      if self.kind is OutcomeKind.LIVE_RPC:
         return "rpc"
      if self.kind is OutcomeKind.CACHED:
         return self.cached_provider or "cached"
      return "none"

   @property
   def source_label(self) -> str:
      if self.kind is OutcomeKind.CACHED:
         return f"cached {self.provider} {round(self.age_seconds or 0)}s"
      return self.kind.value

   @property
   def error(self) -> Optional[str]:
      if self.kind is not OutcomeKind.FAILED:
         return None
      if self.api_error is not None and self.rpc_error is not None:
         return f"API failed ({self.api_error}); RPC fallback failed ({self.rpc_error})"
      return self.api_error or self.rpc_error or "Unknown error"

   def to_result_dict(self) -> Dict[str, Any]:
      result: Dict[str, Any] = {
         "account": self.account,
         "source": self.kind.value,
         "provider": self.provider,
         "snapshot": self.snapshot.to_dict() if self.snapshot else None,
      }
      if self.kind is OutcomeKind.CACHED:
         result["ageSec"] = round(self.age_seconds or 0)
      return result


@dataclass
class LimitsExecution:
   """Exactly one outcome per requested account, in request order."""

   outcomes: List[LimitsOutcome]

   @property
   def results(self) -> List[LimitsOutcome]:
      return [outcome for outcome in self.outcomes if outcome.ok]

   @property
   def errors(self) -> List[LimitsOutcome]:
      return [outcome for outcome in self.outcomes if not outcome.ok]

   @property
   def had_error(self) -> bool:
      return any(not outcome.ok for outcome in self.outcomes)

   def outcome_for(self, account: str) -> Optional[LimitsOutcome]:
      for outcome in self.outcomes:
         if outcome.account == account:
            return outcome
      return None


@dataclass
class CaptureResult:
   exit_code: int
   stdout: str
   stderr: str

   @property
   def output(self) -> str:
      return (self.stdout + self.stderr).strip()
