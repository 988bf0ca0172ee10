"""Account management service layer."""

from __future__ import annotations

import os
import shutil
from typing import List, Optional, Tuple

from ..constants import MulticodexPaths
from ..core.errors import AccountExists, AccountNotFound
from ..core.models import AccountEntry, MulticodexConfig
from ..data.account_meta import AccountMetaStore
from ..data.limits_cache import LimitsCache
from ..data.store import Store, normalize_account_name, validate_account_name
from ..utils import now_iso
from .switching import AuthSwapService


class AccountService:
    """
    Orchestrates account operations.

    Responsibilities:
    - Add/list/rename/remove accounts in the registry
    - Keep per-account directories and metadata in step with the registry
    - Switch the active Codex login between accounts
    """

    def __init__(
        self,
        paths: MulticodexPaths,
        store: Store,
        meta_store: AccountMetaStore,
        swap_service: AuthSwapService,
        cache: LimitsCache,
    ):
        self.paths = paths
        self.store = store
        self.meta_store = meta_store
        self.swap_service = swap_service
        self.cache = cache

    def add_account(self, name: str) -> Tuple[str, MulticodexConfig]:
        """
        Register a new account with an empty auth snapshot.

        The first account added becomes current.

        Raises:
            InvalidAccountName: If the name is not letters, digits, underscore, or dash
            AccountExists: If the name is taken
        """
        account = validate_account_name(name)
        with self.store.update() as config:
            if account in config.accounts:
                raise AccountExists(account)
            self.paths.account_dir(account).mkdir(mode=0o700, parents=True, exist_ok=True)
            config.accounts[account] = {}
            if not config.current_account:
                config.current_account = account

        self.meta_store.ensure(account)
        return account, config

    def list_accounts(self) -> Tuple[List[AccountEntry], Optional[str]]:
        """Accounts sorted by name, plus the current account name."""
        config = self.store.load()
        entries = []
        for name in config.sorted_names():
            meta = self.meta_store.read(name)
            entries.append(
                AccountEntry(
                    name=name,
                    is_current=name == config.current_account,
                    has_auth=self.paths.account_auth_path(name).is_file(),
                    last_used_at=meta.last_used_at if meta else None,
                    last_login_status=meta.last_login_status if meta else None,
                )
            )
        current = config.current_account if config.current_account in config.accounts else None
        return entries, current

    def account_names(self) -> List[str]:
        return self.store.load().sorted_names()

    def remove_account(self, name: str, delete_data: bool = False) -> MulticodexConfig:
        """
        Remove an account from the registry.

        Args:
            delete_data: Also delete the account directory (auth snapshot and metadata)
        """
        account = normalize_account_name(name)
        with self.store.update() as config:
            if account not in config.accounts:
                raise AccountNotFound(account)
            del config.accounts[account]
            if config.current_account == account:
                remaining = config.sorted_names()
                config.current_account = remaining[0] if remaining else None

        if delete_data:
            shutil.rmtree(self.paths.account_dir(account), ignore_errors=True)
        self.cache.forget(account)
        return config

    def rename_account(self, old_name: str, new_name: str) -> MulticodexConfig:
        """Rename an account, moving its directory and keeping the current pointer."""
        old = normalize_account_name(old_name)
        new = validate_account_name(new_name)
        with self.store.update() as config:
            if old not in config.accounts:
                raise AccountNotFound(old)
            if new in config.accounts or self.paths.account_dir(new).exists():
                raise AccountExists(new)

            old_dir = self.paths.account_dir(old)
            if old_dir.exists():
                os.replace(old_dir, self.paths.account_dir(new))

            config.accounts[new] = config.accounts.pop(old)
            if config.current_account == old:
                config.current_account = new

        self.cache.rename(old, new)
        return config

    def resolve_existing(self, requested: Optional[str] = None) -> str:
        """Resolve the requested (or current) account and check it is registered."""
        config = self.store.load()
        account = self.store.resolve_account_name(requested, config)
        self.store.ensure_account_exists(account, config)
        return account

    def use_account(self, name: str, force_lock: bool = False) -> str:
        """Install the account's auth as the active Codex login and make it current."""
        account = normalize_account_name(name)
        self.store.ensure_account_exists(account)
        self.swap_service.apply_account_auth_to_default(account, force_lock=force_lock)

        with self.store.update() as config:
            if account not in config.accounts:
                raise AccountNotFound(account)
            config.current_account = account

        self.touch(account)
        return account

    def current_account(self) -> Optional[str]:
        config = self.store.load()
        if config.current_account in config.accounts:
            return config.current_account
        return None

    def import_auth(self, name: Optional[str] = None, force_lock: bool = False) -> str:
        """Copy the active Codex auth file into an account's snapshot."""
        account = self.resolve_existing(name)
        self.swap_service.import_default_auth_to_account(account, force_lock=force_lock)
        self.touch(account)
        return account

    def touch(self, account: str):
        """Stamp lastUsedAt."""
        self.meta_store.update(account, last_used_at=now_iso())

    def record_login_status(self, account: str, output: str):
        checked_at = now_iso()
        self.meta_store.update(
            account,
            last_used_at=checked_at,
            last_login_status=output or None,
            last_login_checked_at=checked_at,
        )
