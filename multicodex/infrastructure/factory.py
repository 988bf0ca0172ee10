"""Wires multicodex stores and services from one set of resolved paths."""

from __future__ import annotations

from typing import Optional

import requests

from ..constants import MulticodexPaths
from ..data.account_meta import AccountMetaStore
from ..data.credential_store import CredentialStore
from ..data.limits_cache import LimitsCache
from ..data.store import Store
from ..services.accounts import AccountService
from ..services.limits import LimitsService
from ..services.runner import CodexRunner
from ..services.switching import AuthSwapService
from .api import CodexUsageAPI
from .oauth import TokenRefresher


class ServiceFactory:
    """Builds services that share one path layout, credential store and HTTP session."""

    def __init__(self, paths: Optional[MulticodexPaths] = None):
        self.paths = paths or MulticodexPaths.from_env()
        self._store: Optional[Store] = None
        self._credential_store: Optional[CredentialStore] = None
        self._session: Optional[requests.Session] = None

    def get_store(self) -> Store:
        """Registry store, shared per factory."""
        if self._store is None:
            self._store = Store(self.paths)
        return self._store

    def get_credential_store(self) -> CredentialStore:
        """Credential store, shared so refreshed tokens persist through one instance."""
        if self._credential_store is None:
            self._credential_store = CredentialStore(self.paths)
        return self._credential_store

    def get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def get_meta_store(self) -> AccountMetaStore:
        return AccountMetaStore(self.paths)

    def get_limits_cache(self) -> LimitsCache:
        return LimitsCache(self.paths.limits_cache_path, self.paths.store_lock_path)

    def get_swap_service(self) -> AuthSwapService:
        return AuthSwapService(self.paths)

    def get_usage_api(self) -> CodexUsageAPI:
        credential_store = self.get_credential_store()
        session = self.get_session()
        return CodexUsageAPI(
            credential_store,
            refresher=TokenRefresher(credential_store, session=session),
            session=session,
            headers_path=self.paths.headers_path,
        )

    def get_account_service(self) -> AccountService:
        """Account operations over the registry, metadata and auth snapshots."""
        return AccountService(
            paths=self.paths,
            store=self.get_store(),
            meta_store=self.get_meta_store(),
            swap_service=self.get_swap_service(),
            cache=self.get_limits_cache(),
        )

    def get_limits_service(self) -> LimitsService:
        return LimitsService(
            paths=self.paths,
            usage_api=self.get_usage_api(),
            swap_service=self.get_swap_service(),
            cache=self.get_limits_cache(),
        )

    def get_runner(self) -> CodexRunner:
        return CodexRunner(self.get_swap_service())

    def close(self):
        """Close the shared HTTP session."""
        if self._session:
            self._session.close()
            self._session = None

    def __enter__(self) -> ServiceFactory:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
