"""OAuth refresh-token grant for Codex (ChatGPT) logins."""

from __future__ import annotations

from typing import Any, Optional

import requests

from ..constants import console, debug
from ..core.errors import SessionExpired, TokenConflict, TokenExpired, TokenRevoked
from ..core.models import LoadedAuth
from ..data.credential_store import CredentialStore
from ..utils import as_record, now_iso, parse_json_record


class OAuthConfig:
   """OAuth endpoints and client configuration."""

   CLIENT_ID = "app_EMoamEEZ73f0CkXaXp7hrann"
   TOKEN_URL = "https://auth.openai.com/oauth/token"
   TIMEOUT = 15


REFRESH_ERRORS = {
   "refresh_token_expired": SessionExpired,
   "refresh_token_reused": TokenConflict,
   "refresh_token_invalidated": TokenRevoked,
}


def token_error_from_code(code: Any) -> TokenExpired:
   """Map an OAuth error code to the matching re-login error."""
   error_cls = REFRESH_ERRORS.get(code) if isinstance(code, str) else None
   return error_cls() if error_cls else TokenExpired()


class TokenRefresher:
   """
   Refreshes access tokens and persists them back to their source.

   Returns None when a refresh is not possible right now (no refresh token,
   network failure, unexpected response); callers keep using the old token.
   Raises a TokenExpired subclass when the provider rejects the refresh token.
   """

   def __init__(
      self,
      credential_store: CredentialStore,
      session: Optional[requests.Session] = None,
      config: Optional[OAuthConfig] = None,
   ):
      self.credential_store = credential_store
      self.session = session or requests.Session()
      self.config = config or OAuthConfig()

   def refresh(self, loaded: LoadedAuth) -> Optional[str]:
      refresh_token = loaded.refresh_token
      if not refresh_token:
         return None

      console.print("[yellow]Refreshing token...[/yellow]")
      try:
         response = self.session.post(
            self.config.TOKEN_URL,
            data={
               "grant_type": "refresh_token",
               "client_id": self.config.CLIENT_ID,
               "refresh_token": refresh_token,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.config.TIMEOUT,
         )
      except requests.RequestException as exc:
         debug(f"Token refresh request failed: {exc}")
         return None

      body = parse_json_record(response.text)
      if response.status_code in (400, 401):
         body = body or {}
         code = (as_record(body.get("error")) or {}).get("code") or body.get("error") or body.get("code")
         raise token_error_from_code(code)

      if not 200 <= response.status_code < 300 or body is None:
         debug(f"Token refresh returned HTTP {response.status_code}")
         return None

      access_token = body.get("access_token")
      if not isinstance(access_token, str) or not access_token:
         return None

      tokens = dict(loaded.tokens)
      tokens["access_token"] = access_token
      for key in ("refresh_token", "id_token"):
         if isinstance(body.get(key), str):
            tokens[key] = body[key]

      loaded.auth["tokens"] = tokens
      loaded.auth["last_refresh"] = now_iso()

      self.credential_store.persist(loaded)
      console.print("[green]Token refreshed successfully[/green]")
      return access_token
