"""Per-account usage limits retrieval across cache, REST API and RPC providers."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional

from ..constants import API_FETCH_MAX_WORKERS, LIMITS_PROVIDERS, MulticodexPaths, console, debug
from ..core.models import LimitsExecution, LimitsOutcome, OutcomeKind, UsageSnapshot
from ..data.limits_cache import LimitsCache
from ..infrastructure.api import CodexUsageAPI
from ..infrastructure.rpc import fetch_rate_limits_via_rpc
from .switching import AuthSwapService


def error_message(exc: BaseException) -> str:
   return str(exc) or exc.__class__.__name__


class LimitsService:
   """
   Orchestrates limits queries for a set of accounts.

   Per account: cache hit (within TTL) -> live fetch from the selected
   provider -> in ``auto`` mode, a sequential RPC fallback for accounts whose
   API fetch failed. One account's failure never affects another's outcome.
   """

   def __init__(
      self,
      paths: MulticodexPaths,
      usage_api: CodexUsageAPI,
      swap_service: AuthSwapService,
      cache: LimitsCache,
      rpc_fetch: Optional[Callable[[], UsageSnapshot]] = None,
      max_workers: int = API_FETCH_MAX_WORKERS,
   ):
      self.paths = paths
      self.usage_api = usage_api
      self.swap_service = swap_service
      self.cache = cache
      self.rpc_fetch = rpc_fetch or fetch_rate_limits_via_rpc
      self.max_workers = max_workers

   def execute(
      self,
      provider: str,
      targets: List[str],
      force_lock: bool = False,
      use_cache: bool = True,
      ttl_seconds: float = 300,
      on_fetching: Optional[Callable[[str], None]] = None,
   ) -> LimitsExecution:
      """
      Produce exactly one outcome per account in ``targets``, in order.

      Args:
         provider: "auto", "api" or "rpc"
         targets: Account names
         force_lock: Break a live auth lock for RPC fetches
         use_cache: Consult the limits cache before fetching
         ttl_seconds: Maximum cache age accepted
         on_fetching: Called with the account name before each live fetch
      """
      if provider not in LIMITS_PROVIDERS:
         raise ValueError(f"Unknown limits provider: {provider}")

      outcomes: Dict[str, LimitsOutcome] = {}
      pending: List[str] = []

      for account in targets:
         cached = self.cache.get(account, ttl_seconds) if use_cache else None
         if cached is not None:
            debug(f"Limits cache hit for {account} ({cached.age_seconds:.0f}s old)")
            outcomes[account] = LimitsOutcome.cached(account, cached)
         else:
            pending.append(account)

      if provider == "rpc":
         for account in pending:
            outcomes[account] = self._fetch_rpc(account, force_lock, on_fetching)
      else:
         outcomes.update(self._fetch_api_batch(pending, on_fetching))

         if provider == "auto":
            for account in pending:
               outcome = outcomes[account]
               if outcome.ok:
                  continue
               rpc_outcome = self._fetch_rpc(account, force_lock, None)
               if rpc_outcome.ok:
                  outcomes[account] = rpc_outcome
               else:
                  outcomes[account] = LimitsOutcome.failed(
                     account, api_error=outcome.api_error, rpc_error=rpc_outcome.rpc_error
                  )

      ordered = [outcomes[account] for account in targets]
      self._write_cache([outcome for outcome in ordered if outcome.is_live])
      return LimitsExecution(outcomes=ordered)

   def _fetch_api(self, account: str) -> UsageSnapshot:
      return self.usage_api.fetch_usage(self.paths.account_auth_path(account), strict=True)

   def _fetch_api_batch(
      self, accounts: List[str], on_fetching: Optional[Callable[[str], None]]
   ) -> Dict[str, LimitsOutcome]:
      """Fetch usage via the REST API in parallel; no lock, the active file is untouched."""
      if not accounts:
         return {}

      results: Dict[str, LimitsOutcome] = {}
      max_workers = max(1, min(len(accounts), self.max_workers))

      for account in accounts:
         if on_fetching:
            on_fetching(account)

      with ThreadPoolExecutor(max_workers=max_workers) as executor:
         future_map = {executor.submit(self._fetch_api, account): account for account in accounts}

         for future in as_completed(future_map):
            account = future_map[future]
            try:
               results[account] = LimitsOutcome.live(account, OutcomeKind.LIVE_API, future.result())
            except Exception as exc:
               debug(f"API usage fetch failed for {account}: {exc}")
               results[account] = LimitsOutcome.failed(account, api_error=error_message(exc))

      return results

   def _fetch_rpc(
      self, account: str, force_lock: bool, on_fetching: Optional[Callable[[str], None]]
   ) -> LimitsOutcome:
      """Fetch via RPC with the account temporarily active; the previous active auth is restored."""
      if on_fetching:
         on_fetching(account)
      try:
         snapshot = self.swap_service.with_account_auth(
            account, self.rpc_fetch, force_lock=force_lock, restore_previous=True
         )
      except Exception as exc:
         debug(f"RPC usage fetch failed for {account}: {exc}")
         return LimitsOutcome.failed(account, rpc_error=error_message(exc))
      return LimitsOutcome.live(account, OutcomeKind.LIVE_RPC, snapshot)

   def _write_cache(self, outcomes: List[LimitsOutcome]):
      try:
         self.cache.set_many((outcome.account, outcome.snapshot, outcome.kind) for outcome in outcomes)
      except Exception as exc:
         console.print(f"[yellow]Warning: Could not update limits cache: {exc}[/yellow]")
