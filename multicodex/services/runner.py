"""Run the wrapped `codex` executable with an account's auth swapped in."""

from __future__ import annotations

import contextlib
import signal
import subprocess
import threading
from typing import Iterator, List, Optional

from ..constants import codex_executable, debug
from ..core.errors import ProviderUnavailable
from ..core.models import CaptureResult
from .switching import AuthSwapService

FORWARDED_SIGNALS = tuple(
    sig for sig in (getattr(signal, "SIGTERM", None), getattr(signal, "SIGHUP", None)) if sig is not None
)


def exit_code_from_returncode(returncode: int) -> int:
    """Shell convention: a child killed by signal N exits 128 + N."""
    if returncode < 0:
        return 128 - returncode
    return returncode


@contextlib.contextmanager
def forward_signals(proc: subprocess.Popen) -> Iterator[None]:
    """
    While ``proc`` runs, keep this process alive until the child exits.

    SIGINT from the terminal already reaches the child through the process
    group, so the parent ignores it; SIGTERM/SIGHUP are forwarded. Handlers
    can only be installed from the main thread.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def forward_signal(sig, frame):
        if proc.poll() is None:
            proc.send_signal(sig)

    def absorb_signal(sig, frame):
        debug("SIGINT received; waiting for codex to exit")

    previous = {signal.SIGINT: signal.signal(signal.SIGINT, absorb_signal)}
    for sig in FORWARDED_SIGNALS:
        previous[sig] = signal.signal(sig, forward_signal)
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


class CodexRunner:
    """Spawns codex under the auth swap protocol."""

    def __init__(self, swap_service: AuthSwapService, executable: Optional[str] = None):
        self.swap_service = swap_service
        self.executable = executable

    def command(self, args: List[str]) -> List[str]:
        return [self.executable or codex_executable(), *args]

    def _spawn(self, args: List[str], **kwargs) -> subprocess.Popen:
        cmd = self.command(args)
        debug(f"Running: {' '.join(cmd)}")
        try:
            return subprocess.Popen(cmd, **kwargs)
        except FileNotFoundError as exc:
            raise ProviderUnavailable(
                f"Codex executable not found: {cmd[0]}. Install codex or set MULTICODEX_CODEX_BIN."
            ) from exc
        except OSError as exc:
            raise ProviderUnavailable(f"Failed to start {cmd[0]}: {exc}") from exc

    def run(self, account: str, args: List[str], force_lock: bool = False, restore_previous: bool = False) -> int:
        """Run codex with inherited stdio and return its exit code."""

        def task() -> int:
            proc = self._spawn(args)
            with forward_signals(proc):
                returncode = proc.wait()
            return exit_code_from_returncode(returncode)

        return self.swap_service.with_account_auth(
            account, task, force_lock=force_lock, restore_previous=restore_previous
        )

    def run_capture(
        self, account: str, args: List[str], force_lock: bool = False, restore_previous: bool = True
    ) -> CaptureResult:
        """Run codex with captured output (used for `codex login status`)."""

        def task() -> CaptureResult:
            proc = self._spawn(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
            with forward_signals(proc):
                stdout, stderr = proc.communicate()
            return CaptureResult(
                exit_code=exit_code_from_returncode(proc.returncode),
                stdout=stdout or "",
                stderr=stderr or "",
            )

        return self.swap_service.with_account_auth(
            account, task, force_lock=force_lock, restore_previous=restore_previous
        )
