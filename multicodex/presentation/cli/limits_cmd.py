"""Usage limits commands."""

from __future__ import annotations

from typing import Optional

import click
from rich.markup import escape

from ...constants import DEFAULT_LIMITS_TTL_SECONDS, LIMITS_PROVIDERS, console
from ...core.errors import MulticodexError, NoAccountsConfigured
from ...infrastructure.factory import ServiceFactory
from ..console import stdout_console
from ..renderers import emit_error, envelope, limits_payload, render_limits_table, write_json
from .accounts import complete_account_names, force_option, json_option
from .run import pick_account


@click.command()
@click.argument("name", required=False, shell_complete=complete_account_names)
@click.option("--account", "account", help="Account name (alternative to the positional NAME)")
@click.option(
   "--provider",
   type=click.Choice(LIMITS_PROVIDERS),
   default="auto",
   show_default=True,
   help="Usage provider: REST API, codex RPC, or API with RPC fallback",
)
@force_option
@click.option("--cache/--no-cache", "use_cache", default=True, help="Use cached results within the TTL")
@click.option("--refresh", is_flag=True, help="Fetch live values (bypass the cache)")
@click.option(
   "--ttl",
   type=float,
   default=DEFAULT_LIMITS_TTL_SECONDS,
   show_default=True,
   help="Cache TTL in seconds",
)
@json_option
@click.pass_context
def limits(
   ctx: click.Context,
   name: Optional[str],
   account: Optional[str],
   provider: str,
   force: bool,
   use_cache: bool,
   refresh: bool,
   ttl: float,
   output_json: bool,
):
   """Show usage limits for one or all accounts."""
   requested = pick_account(name, account)
   factory = ServiceFactory()
   try:
      account_service = factory.get_account_service()
      targets = [account_service.resolve_existing(requested)] if requested else account_service.account_names()

      if not targets:
         if output_json:
            emit_error(NoAccountsConfigured(), "limits", output_json=True, exit_code=2)
         console.print("[yellow]No accounts configured. Run: multicodex accounts add <name>[/yellow]")
         return

      def on_fetching(target: str):
         console.print(f"[dim]Fetching limits for {escape(target)}...[/dim]")

      execution = factory.get_limits_service().execute(
         provider,
         targets,
         force_lock=force,
         use_cache=use_cache and not refresh,
         ttl_seconds=max(0.0, ttl),
         on_fetching=None if output_json else on_fetching,
      )
   except MulticodexError as exc:
      emit_error(exc, "limits", output_json)
   finally:
      factory.close()

   if output_json:
      write_json(envelope("limits", not execution.had_error, limits_payload(execution)))
   else:
      if execution.results:
         stdout_console.print(render_limits_table(execution.results))
      for outcome in execution.errors:
         console.print(f"[red]{escape(outcome.account)}: {escape(outcome.error or '')}[/red]")

   if execution.had_error:
      ctx.exit(1)
