"""Domain-specific exceptions for multicodex."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
   from .models import LockOwner


class MulticodexError(Exception):
   """Base exception for all multicodex domain errors."""

   code = "ERROR"


class Locked(MulticodexError):
   """Another live process holds the auth swap lock."""

   code = "LOCKED"

   def __init__(self, owner: Optional[LockOwner]):
      self.owner = owner
      who = owner.describe() if owner else "unknown owner"
      super().__init__(
         f"Auth swap is locked by {who}. "
         "Wait for the other multicodex-managed Codex session to finish or run again with --force."
      )


class StoreBusy(MulticodexError):
   """Timed out waiting for another multicodex process to finish writing its state files."""

   code = "STORE_BUSY"


class NotLoggedIn(MulticodexError):
   """No usable credential found anywhere."""

   code = "NOT_LOGGED_IN"

   def __init__(self, message: str = "Not logged in. Run `codex` to authenticate."):
      super().__init__(message)


class ApiKeyAuthUnsupported(MulticodexError):
   """Only an API key is stored; the usage endpoint needs an OAuth access token."""

   code = "API_KEY_AUTH"

   def __init__(self, message: str = "Usage not available for API key."):
      super().__init__(message)


class TokenExpired(MulticodexError):
   """Stored credentials were rejected; interactive re-login required."""

   code = "TOKEN_EXPIRED"

   def __init__(self, message: str = "Token expired. Run `codex` to log in again."):
      super().__init__(message)


class SessionExpired(TokenExpired):
   code = "SESSION_EXPIRED"

   def __init__(self):
      super().__init__("Session expired. Run `codex` to log in again.")


class TokenConflict(TokenExpired):
   """Refresh token was already used by another client."""

   code = "TOKEN_CONFLICT"

   def __init__(self):
      super().__init__("Token conflict. Run `codex` to log in again.")


class TokenRevoked(TokenExpired):
   code = "TOKEN_REVOKED"

   def __init__(self):
      super().__init__("Token revoked. Run `codex` to log in again.")


class ProviderUnavailable(MulticodexError):
   """The Codex CLI is missing, or its RPC subprocess exited."""

   code = "PROVIDER_UNAVAILABLE"


class ProviderTimeout(MulticodexError):
   """An RPC message or HTTP request exceeded its time bound."""

   code = "TIMEOUT"


class ProviderFetchFailed(MulticodexError):
   """Non-2xx HTTP response, RPC error, or malformed usage payload."""

   code = "FETCH_FAILED"


class AccountNotFound(MulticodexError):
   code = "UNKNOWN_ACCOUNT"

   def __init__(self, account: str):
      self.account = account
      super().__init__(f"Unknown account: {account}. Run `multicodex accounts list`.")


class AccountExists(MulticodexError):
   code = "ACCOUNT_EXISTS"

   def __init__(self, account: str):
      self.account = account
      super().__init__(f"Account already exists: {account}")


class InvalidAccountName(MulticodexError):
   code = "INVALID_ACCOUNT_NAME"

   def __init__(self, account: str):
      self.account = account
      super().__init__(f"Invalid account name: {account!r}. Use letters, numbers, underscore, or dash.")


class NoAccountsConfigured(MulticodexError):
   code = "NO_ACCOUNTS"

   def __init__(self):
      super().__init__(
         "No account configured. Run `multicodex accounts add <name>` and then `multicodex accounts use <name>`."
      )
