"""Filesystem locking helpers."""

from __future__ import annotations

import json
import os
import secrets
import shutil
import time
from pathlib import Path
from typing import Optional

import psutil
from filelock import FileLock as FileLocker, Timeout as FileLockTimeout

from ..constants import STORE_LOCK_TIMEOUT_SECONDS, console, debug
from ..core.errors import Locked, StoreBusy
from ..core.models import LockOwner
from ..utils import now_iso, parse_json_record

OWNER_FILE = "owner.json"


def read_lock_owner(lock_dir: Path) -> Optional[LockOwner]:
    """Owner recorded in ``lock_dir``, or None when missing or unreadable."""
    try:
        text = (lock_dir / OWNER_FILE).read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    return LockOwner.from_dict(parse_json_record(text))


def is_pid_running(pid: int) -> bool:
    """Best-effort liveness probe; a permission-denied probe counts as alive."""
    if pid <= 0:
        return False
    try:
        process = psutil.Process(pid)
        return process.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return True


class AuthLockHandle:
    """Held auth lock. Releasing removes the whole lock directory."""

    def __init__(self, lock_dir: Path, owner: LockOwner):
        self.lock_dir = lock_dir
        self.owner = owner
        self.released = False

    def release(self):
        if self.released:
            return
        shutil.rmtree(self.lock_dir, ignore_errors=True)
        self.released = True

    def __enter__(self) -> AuthLockHandle:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


class AuthLock:
    """
    Cross-process mutual exclusion around the active auth file.

    The lock is a directory: ``mkdir`` is the atomic create, and an
    ``owner.json`` inside it records who holds it. A lock whose owner
    process is gone is reclaimed without ``force``; a live owner's lock is
    only taken over with ``force``. There is no timeout.
    """

    def __init__(self, lock_dir: Path):
        self.lock_dir = lock_dir

    def read_owner(self) -> Optional[LockOwner]:
        return read_lock_owner(self.lock_dir)

    def _write_owner(self, owner: LockOwner):
        fd = os.open(self.lock_dir / OWNER_FILE, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(owner.to_dict(), indent=2) + "\n")
            handle.flush()
            os.fsync(handle.fileno())

    def _remove(self):
        shutil.rmtree(self.lock_dir, ignore_errors=True)

    def _reclaim(self, expected: Optional[LockOwner]):
        """
        Move the lock directory aside and delete it, but only if it still
        belongs to ``expected``.

        The rename is atomic, so of several waiters reclaiming the same stale
        lock only one moves it. A waiter that moved a lock created after it
        read the owner puts it back.
        """
        tombstone = self.lock_dir.with_name(f"{self.lock_dir.name}.stale.{os.getpid()}.{secrets.token_hex(4)}")
        try:
            os.rename(self.lock_dir, tombstone)
        except FileNotFoundError:
            return

        if read_lock_owner(tombstone) != expected:
            debug("Auth lock changed hands while reclaiming; leaving it in place")
            os.rename(tombstone, self.lock_dir)
            return
        shutil.rmtree(tombstone)

    def acquire(self, account: str, force: bool = False) -> AuthLockHandle:
        """Acquire the lock for ``account`` or raise Locked."""
        self.lock_dir.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        owner = LockOwner(pid=os.getpid(), started_at=now_iso(), account=account)

        while True:
            try:
                os.mkdir(self.lock_dir, 0o700)
            except FileExistsError:
                existing = self.read_owner()
                if existing is not None and not is_pid_running(existing.pid):
                    debug(f"Reclaiming stale auth lock held by {existing.describe()}")
                    self._reclaim(existing)
                    continue

                if force:
                    who = existing.describe() if existing else "unknown owner"
                    console.print(f"[yellow]Breaking auth lock held by {who}[/yellow]")
                    self._reclaim(existing)
                    continue

                raise Locked(existing)

            try:
                self._write_owner(owner)
            except BaseException:
                self._remove()
                raise

            debug(f"Acquired auth lock for {account} (pid {owner.pid})")
            return AuthLockHandle(self.lock_dir, owner)


class StoreLock:
    """Short-lived file lock serializing read-modify-write of shared state files."""

    def __init__(self, lock_path: Path, timeout: float = STORE_LOCK_TIMEOUT_SECONDS):
        self.lock_path = lock_path
        self.timeout = timeout
        self.lock = FileLocker(str(lock_path), timeout=-1)

    def acquire(self):
        """Acquire the lock, waiting up to ``timeout`` seconds."""
        self.lock_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

        start_time = time.time()
        shown_waiting_msg = False
        while True:
            try:
                self.lock.acquire(timeout=0.05)
                if shown_waiting_msg:
                    console.print("[green]✓ Lock acquired[/green]")
                return
            except FileLockTimeout:
                if time.time() - start_time >= self.timeout:
                    raise StoreBusy(
                        f"Timed out after {self.timeout:g}s waiting for another multicodex process ({self.lock_path})"
                    )
                if not shown_waiting_msg:
                    console.print("[yellow]Waiting for another multicodex operation to complete...[/yellow]")
                    shown_waiting_msg = True

    def release(self):
        if self.lock.is_locked:
            self.lock.release()

    def __enter__(self) -> StoreLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
