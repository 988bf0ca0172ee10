"""Rich formatting helpers for the multicodex presentation layer."""

from __future__ import annotations

import json
import sys
from datetime import datetime
from typing import Any, Dict, List, NoReturn, Optional

from rich import box
from rich.markup import escape
from rich.table import Table

from ..core.errors import MulticodexError
from ..core.models import AccountEntry, CreditsSnapshot, LimitsExecution, LimitsOutcome, UsageWindow
from .console import console

SCHEMA_VERSION = 1
STATUS_WIDTH = 22


def format_percent(value: Optional[float]) -> str:
   """Format used-percent rounded to 0.1, color-coded."""
   if value is None:
      return "-"
   rounded = round(value, 1)
   text = f"{int(rounded)}%" if rounded == int(rounded) else f"{rounded}%"
   if rounded >= 90:
      return f"[red]{text}[/red]"
   if rounded >= 70:
      return f"[yellow]{text}[/yellow]"
   return f"[green]{text}[/green]"


def format_reset(resets_at: Optional[int]) -> str:
   """Local reset time as MM-DD HH:MM."""
   if not resets_at:
      return "-"
   return datetime.fromtimestamp(resets_at).strftime("%m-%d %H:%M")


def format_credits(credits: Optional[CreditsSnapshot]) -> str:
   if credits is None:
      return "-"
   if credits.unlimited:
      return "unlimited"
   if credits.has_credits is False:
      return "none"
   if credits.balance:
      return credits.balance
   return "-"


def _window_cells(window: Optional[UsageWindow]) -> tuple:
   if window is None:
      return "-", "-"
   return format_percent(window.used_percent), format_reset(window.resets_at)


def render_limits_table(outcomes: List[LimitsOutcome]) -> Table:
   """Render successful limits outcomes as a Rich table."""
   table = Table(box=box.SIMPLE_HEAD)
   table.add_column("account", style="cyan")
   table.add_column("5h", justify="right")
   table.add_column("weekly", justify="right")
   table.add_column("5h reset")
   table.add_column("weekly reset")
   table.add_column("credits", justify="right")
   table.add_column("source", style="dim")

   for outcome in outcomes:
      if not outcome.ok or outcome.snapshot is None:
         continue
      five, weekly = outcome.snapshot.pick_windows()
      five_used, five_reset = _window_cells(five)
      weekly_used, weekly_reset = _window_cells(weekly)
      table.add_row(
         escape(outcome.account),
         five_used,
         weekly_used,
         five_reset,
         weekly_reset,
         escape(format_credits(outcome.snapshot.credits)),
         outcome.source_label,
      )

   return table


def truncate_one_line(text: str, width: int) -> str:
   line = " ".join(text.split())
   if len(line) <= width:
      return line
   return line[: max(0, width - 1)] + "…"


def render_accounts_table(accounts: List[AccountEntry]) -> Table:
   """Render the account registry as a Rich table."""
   table = Table(box=box.SIMPLE_HEAD)
   table.add_column("", width=1)
   table.add_column("account", style="cyan")
   table.add_column("status", max_width=STATUS_WIDTH, no_wrap=True)
   table.add_column("last used", style="dim")

   for entry in accounts:
      if entry.last_login_status:
         status = escape(truncate_one_line(entry.last_login_status, STATUS_WIDTH))
      elif entry.has_auth:
         status = "[green]auth saved[/green]"
      else:
         status = "[dim]no auth[/dim]"
      table.add_row(
         "[bold green]*[/bold green]" if entry.is_current else "",
         escape(entry.name),
         status,
         entry.last_used_at or "never",
      )

   return table


def limits_payload(execution: LimitsExecution) -> Dict[str, Any]:
   return {
      "results": [outcome.to_result_dict() for outcome in execution.results],
      "errors": [{"account": outcome.account, "message": outcome.error} for outcome in execution.errors],
   }


def envelope(command: str, ok: bool, data: Any = None, error: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
   """JSON envelope shared by every --json command."""
   payload: Dict[str, Any] = {"schemaVersion": SCHEMA_VERSION, "command": command, "ok": ok}
   if error is not None:
      payload["error"] = error
   else:
      payload["data"] = data
   return payload


def write_json(payload: Dict[str, Any]):
   print(json.dumps(payload, indent=2))


def emit_error(exc: Exception, command: str, output_json: bool = False, exit_code: int = 1) -> NoReturn:
   """Report an error on stderr (or as a JSON envelope on stdout) and exit."""
   message = str(exc) or exc.__class__.__name__
   if output_json:
      code = exc.code if isinstance(exc, MulticodexError) else "ERROR"
      write_json(envelope(command, False, error={"message": message, "code": code}))
   else:
      console.print(f"[red]Error: {escape(message)}[/red]")
   sys.exit(exit_code)
