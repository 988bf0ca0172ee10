"""HTTP client for the Codex usage endpoint."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import requests

from ..config import load_headers_config
from ..core.errors import (
    ApiKeyAuthUnsupported,
    NotLoggedIn,
    ProviderFetchFailed,
    ProviderTimeout,
    TokenExpired,
)
from ..core.models import LoadedAuth, UsageSnapshot
from ..data.credential_store import CredentialStore, needs_refresh
from ..utils import parse_json_record
from .oauth import TokenRefresher

UNAUTHORIZED = (401, 403)


class CodexUsageAPI:
    """Fetch usage/quota for a stored Codex login, refreshing its token when needed."""

    USAGE_URL = "https://chatgpt.com/backend-api/wham/usage"
    TIMEOUT = 10

    def __init__(
        self,
        credential_store: CredentialStore,
        refresher: Optional[TokenRefresher] = None,
        session: Optional[requests.Session] = None,
        headers_path: Optional[Path] = None,
    ):
        self.credential_store = credential_store
        self.session = session or requests.Session()
        self.refresher = refresher or TokenRefresher(credential_store, session=self.session)
        self.headers_path = headers_path

    def _get_headers(self, token: str, account_id: Optional[str]) -> Dict[str, str]:
        headers = load_headers_config(self.headers_path)
        headers["authorization"] = f"Bearer {token}"
        if account_id:
            headers["chatgpt-account-id"] = account_id
        return headers

    def _request(self, token: str, account_id: Optional[str]) -> requests.Response:
        try:
            return self.session.get(
                self.USAGE_URL,
                headers=self._get_headers(token, account_id),
                timeout=self.TIMEOUT,
            )
        except requests.Timeout as exc:
            raise ProviderTimeout(f"Usage request timed out after {self.TIMEOUT}s") from exc
        except requests.RequestException as exc:
            raise ProviderFetchFailed(f"Usage request failed: {exc}") from exc

    def fetch_usage(self, auth_path: Optional[Path] = None, strict: bool = False) -> UsageSnapshot:
        """
        Fetch usage for the login stored at ``auth_path`` (or the default locations).

        Raises:
            NotLoggedIn: no usable credentials
            ApiKeyAuthUnsupported: only an API key is stored
            TokenExpired: the provider rejected the token even after a refresh
            ProviderTimeout / ProviderFetchFailed: transport or response problems
        """
        loaded = self.credential_store.load(auth_path, strict=strict)
        if loaded is None:
            raise NotLoggedIn()
        return self.fetch_usage_for_auth(loaded)

    def fetch_usage_for_auth(self, loaded: LoadedAuth) -> UsageSnapshot:
        access_token = loaded.access_token
        if not access_token:
            if loaded.api_key:
                raise ApiKeyAuthUnsupported()
            raise NotLoggedIn()

        account_id = loaded.account_id

        if needs_refresh(loaded.auth):
            refreshed = self.refresher.refresh(loaded)
            if refreshed:
                access_token = refreshed

        response = self._request(access_token, account_id)

        # One refresh and one retry, never more.
        if response.status_code in UNAUTHORIZED:
            refreshed = self.refresher.refresh(loaded)
            if refreshed:
                access_token = refreshed
                response = self._request(access_token, account_id)

        if response.status_code in UNAUTHORIZED:
            raise TokenExpired()

        if not 200 <= response.status_code < 300:
            raise ProviderFetchFailed(f"Usage request failed (HTTP {response.status_code}). Try again later.")

        body = parse_json_record(response.text)
        if body is None:
            raise ProviderFetchFailed("Usage response invalid. Try again later.")

        return UsageSnapshot.from_usage_response(response.headers, body)
