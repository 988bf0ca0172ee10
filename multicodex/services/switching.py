"""Auth swap orchestration around the wrapped tool's single credential file."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional, TypeVar

from ..constants import MulticodexPaths, debug
from ..infrastructure.locking import AuthLock
from ..utils import atomic_write_bytes, read_bytes_or_none, unlink_if_exists

T = TypeVar("T")


def _copy_or_remove(src: Path, dest: Path):
   """Make ``dest`` a copy of ``src``; an absent ``src`` removes ``dest``."""
   data = read_bytes_or_none(src)
   if data is None:
      unlink_if_exists(dest)
      return
   atomic_write_bytes(dest, data)


class AuthSwapService:
   """
   Installs an account's auth snapshot as the active Codex login.

   Every operation runs under the auth lock. ``with_account_auth`` is the
   full protocol: install the snapshot, run a task, capture whatever the task
   left in the active file back into the snapshot (refreshed tokens), and
   optionally restore the previously active file.
   """

   def __init__(self, paths: MulticodexPaths, lock: Optional[AuthLock] = None):
      self.paths = paths
      self.lock = lock or AuthLock(paths.auth_lock_dir)

   def _install(self, account: str):
      _copy_or_remove(self.paths.account_auth_path(account), self.paths.active_auth_path)

   def _capture(self, account: str):
      _copy_or_remove(self.paths.active_auth_path, self.paths.account_auth_path(account))

   def with_account_auth(
      self,
      account: str,
      task: Callable[[], T],
      force_lock: bool = False,
      restore_previous: bool = False,
   ) -> T:
      """
      Run ``task`` with ``account`` active.

      Snapshot capture, restore and lock release run on every exit path,
      including a task that raises or an interrupt; the task's error
      propagates after cleanup.

      Raises:
         Locked: another live process holds the auth lock and force_lock is False
      """
      active_path = self.paths.active_auth_path
      handle = self.lock.acquire(account, force=force_lock)
      try:
         previous = read_bytes_or_none(active_path) if restore_previous else None
         installed = False
         try:
            self._install(account)
            installed = True
            debug(f"Installed auth for {account}")
            return task()
         finally:
            try:
               # Without a completed install the active file is not this account's.
               if installed:
                  self._capture(account)
            finally:
               if restore_previous:
                  if previous is None:
                     unlink_if_exists(active_path)
                  else:
                     atomic_write_bytes(active_path, previous)
                  debug("Restored previous active auth")
      finally:
         handle.release()

   def import_default_auth_to_account(self, account: str, force_lock: bool = False):
      """Capture the active auth file into ``account``'s snapshot."""
      with self.lock.acquire(account, force=force_lock):
         self._capture(account)

   def apply_account_auth_to_default(self, account: str, force_lock: bool = False):
      """Install ``account``'s snapshot as the active auth file."""
      with self.lock.acquire(account, force=force_lock):
         self._install(account)
