"""Line-delimited JSON-RPC client for `codex app-server`."""

from __future__ import annotations

import json
import queue
import signal
import subprocess
import threading
from typing import Any, Dict, List, Optional

from ..constants import RPC_ARGS, RPC_MESSAGE_TIMEOUT_SECONDS, VERSION, codex_executable, debug
from ..core.errors import ProviderFetchFailed, ProviderTimeout, ProviderUnavailable
from ..core.models import UsageSnapshot
from ..utils import as_record


class _Closed:
    """Queue marker: the subprocess closed its stdout."""

    def __init__(self, reason: str):
        self.reason = reason


def describe_exit(returncode: Optional[int]) -> str:
    if returncode is None:
        return "exit unknown"
    if returncode < 0:
        try:
            return f"signal {signal.Signals(-returncode).name}"
        except ValueError:
            return f"signal {-returncode}"
    return f"exit {returncode}"


class CodexRpcClient:
    """
    Speaks newline-delimited JSON-RPC to a restricted Codex subprocess.

    A reader thread turns stdout lines into messages on a queue and enqueues a
    close marker once stdout ends, so waiting for the next message races the
    per-message timeout against the process exiting.
    """

    def __init__(
        self,
        executable: Optional[str] = None,
        args: Optional[List[str]] = None,
        message_timeout: float = RPC_MESSAGE_TIMEOUT_SECONDS,
    ):
        self.executable = executable or codex_executable()
        self.args = list(RPC_ARGS if args is None else args)
        self.message_timeout = message_timeout
        self.messages: "queue.Queue[Any]" = queue.Queue()
        self.next_id = 1
        self.closed_reason: Optional[str] = None

        try:
            self.process = subprocess.Popen(
                [self.executable, *self.args],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            raise ProviderUnavailable(f"Failed to start Codex RPC ({self.executable}): {exc}") from exc

        self._reader = threading.Thread(target=self._read_stdout, name="codex-rpc-stdout", daemon=True)
        self._reader.start()
        self._stderr_reader = threading.Thread(target=self._drain_stderr, name="codex-rpc-stderr", daemon=True)
        self._stderr_reader.start()

    def _read_stdout(self):
        for line in self.process.stdout:
            trimmed = line.strip()
            if not trimmed:
                continue
            try:
                message = json.loads(trimmed)
            except ValueError:
                debug(f"RPC non-JSON line ignored: {trimmed[:200]}")
                continue
            if isinstance(message, dict):
                self.messages.put(message)

        returncode = self.process.wait()
        self.messages.put(_Closed(f"Codex RPC closed ({describe_exit(returncode)})"))

    def _drain_stderr(self):
        for line in self.process.stderr:
            if line.strip():
                debug(f"codex app-server: {line.rstrip()}")

    def shutdown(self):
        """Kill and reap the subprocess. Safe to call more than once."""
        if self.process.poll() is None:
            self.process.kill()
        try:
            self.process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            debug("Codex RPC did not exit after kill")
        if self.process.stdin:
            try:
                self.process.stdin.close()
            except OSError:
                pass

    def __enter__(self) -> CodexRpcClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    def _send(self, payload: Dict[str, Any]):
        body = json.dumps(payload)
        debug(f"RPC -> {body}")
        try:
            self.process.stdin.write(body + "\n")
            self.process.stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as exc:
            reason = self.closed_reason or f"Codex RPC closed ({describe_exit(self.process.poll())})"
            raise ProviderUnavailable(reason) from exc

    def _next_message(self) -> Dict[str, Any]:
        if self.closed_reason:
            raise ProviderUnavailable(self.closed_reason)
        try:
            message = self.messages.get(timeout=self.message_timeout)
        except queue.Empty:
            raise ProviderTimeout("Codex RPC timed out") from None

        if isinstance(message, _Closed):
            self.closed_reason = message.reason
            raise ProviderUnavailable(message.reason)
        return message

    def notify(self, method: str, params: Optional[Dict[str, Any]] = None):
        self._send({"method": method, "params": params or {}})

    def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a request and wait for the response carrying its id."""
        request_id = self.next_id
        self.next_id += 1
        self._send({"id": request_id, "method": method, "params": params or {}})

        while True:
            message = self._next_message()
            message_id = message.get("id")
            if message_id is None:
                debug(f"RPC notification ignored: {message.get('method')}")
                continue
            if message_id != request_id:
                debug(f"RPC message with unexpected id {message_id!r} discarded")
                continue

            debug(f"RPC <- {method} response")
            error = as_record(message.get("error"))
            if error and error.get("message"):
                raise ProviderFetchFailed(f"Codex RPC error: {error['message']}")
            return message

    def initialize(self, client_name: str = "multicodex", client_version: str = VERSION):
        self.request("initialize", {"clientInfo": {"name": client_name, "version": client_version}})
        self.notify("initialized", {})

    def fetch_rate_limits(self) -> UsageSnapshot:
        message = self.request("account/rateLimits/read")
        result = as_record(message.get("result")) or {}
        return UsageSnapshot.from_dict(result.get("rateLimits"))


def fetch_rate_limits_via_rpc(executable: Optional[str] = None) -> UsageSnapshot:
    """Spawn Codex in read-only app-server mode and read the active account's rate limits."""
    client = CodexRpcClient(executable=executable)
    try:
        client.initialize()
        return client.fetch_rate_limits()
    finally:
        client.shutdown()
