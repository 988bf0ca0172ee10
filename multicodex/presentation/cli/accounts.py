"""Account management commands."""

from __future__ import annotations

from typing import Dict, List, Optional

import click
from click.shell_completion import CompletionItem

from ...constants import console
from ...core.errors import MulticodexError
from ...infrastructure.factory import ServiceFactory
from ..console import stdout_console
from ..renderers import emit_error, envelope, render_accounts_table, write_json


def complete_account_names(ctx, param, incomplete: str) -> List[CompletionItem]:
   """Shell completion for account-name arguments."""
   factory = ServiceFactory()
   try:
      names = factory.get_account_service().account_names()
   except (OSError, MulticodexError):
      return []
   finally:
      factory.close()
   return [CompletionItem(name) for name in names if name.startswith(incomplete)]


json_option = click.option("--json", "output_json", is_flag=True, help="Output JSON")
force_option = click.option("--force", is_flag=True, help="Take over the auth lock even if its owner is alive")


def show_accounts(output_json: bool):
   factory = ServiceFactory()
   try:
      entries, current = factory.get_account_service().list_accounts()
   except MulticodexError as exc:
      emit_error(exc, "accounts.list", output_json)
   finally:
      factory.close()

   if output_json:
      write_json(
         envelope(
            "accounts.list",
            True,
            {"accounts": [entry.to_dict() for entry in entries], "currentAccount": current},
         )
      )
      return

   if not entries:
      console.print("[yellow]No accounts configured. Run: multicodex accounts add <name>[/yellow]")
      return

   stdout_console.print(render_accounts_table(entries))


@click.command(name="list")
@json_option
def list_accounts_cmd(output_json: bool):
   """List accounts."""
   show_accounts(output_json)


@click.command()
@click.argument("name")
@json_option
def add(name: str, output_json: bool):
   """Add an account (log in afterwards with `multicodex run NAME -- login`)."""
   factory = ServiceFactory()
   try:
      account, config = factory.get_account_service().add_account(name)
   except MulticodexError as exc:
      emit_error(exc, "accounts.add", output_json)
   finally:
      factory.close()

   if output_json:
      write_json(envelope("accounts.add", True, {"account": account, "currentAccount": config.current_account}))
      return
   console.print(f"[green]✓[/green] Added account: [bold]{account}[/bold]")


@click.command()
@click.argument("name", shell_complete=complete_account_names)
@click.option("--delete-data", is_flag=True, help="Also delete the stored auth snapshot and metadata")
@json_option
def remove(name: str, delete_data: bool, output_json: bool):
   """Remove an account."""
   factory = ServiceFactory()
   try:
      account_service = factory.get_account_service()
      config = account_service.remove_account(name, delete_data=delete_data)
   except MulticodexError as exc:
      emit_error(exc, "accounts.remove", output_json)
   finally:
      factory.close()

   removed = name.strip()
   if output_json:
      write_json(
         envelope("accounts.remove", True, {"removedAccount": removed, "currentAccount": config.current_account})
      )
      return
   console.print(f"[green]✓[/green] Removed account: [bold]{removed}[/bold]")


@click.command()
@click.argument("old", shell_complete=complete_account_names)
@click.argument("new")
@json_option
def rename(old: str, new: str, output_json: bool):
   """Rename an account."""
   factory = ServiceFactory()
   try:
      config = factory.get_account_service().rename_account(old, new)
   except MulticodexError as exc:
      emit_error(exc, "accounts.rename", output_json)
   finally:
      factory.close()

   if output_json:
      write_json(
         envelope(
            "accounts.rename",
            True,
            {"from": old.strip(), "to": new.strip(), "currentAccount": config.current_account},
         )
      )
      return
   console.print(f"[green]✓[/green] Renamed account: {old.strip()} -> [bold]{new.strip()}[/bold]")


@click.command()
@click.argument("name", shell_complete=complete_account_names)
@force_option
@json_option
def use(name: str, force: bool, output_json: bool):
   """Make an account current and install its auth as the active Codex login."""
   factory = ServiceFactory()
   try:
      account = factory.get_account_service().use_account(name, force_lock=force)
   except MulticodexError as exc:
      emit_error(exc, "accounts.use", output_json)
   finally:
      factory.close()

   if output_json:
      write_json(envelope("accounts.use", True, {"currentAccount": account}))
      return
   console.print(f"[green]✓[/green] Now using: [bold]{account}[/bold]")


@click.command()
@json_option
@click.pass_context
def current(ctx: click.Context, output_json: bool):
   """Print the current account."""
   factory = ServiceFactory()
   try:
      account = factory.get_account_service().current_account()
   finally:
      factory.close()

   message = "No current account set. Run `multicodex accounts add <name>`."
   if not account:
      if output_json:
         write_json(envelope("accounts.current", False, error={"message": message, "code": "NO_CURRENT_ACCOUNT"}))
      else:
         console.print(f"[red]{message}[/red]")
      ctx.exit(2)

   if output_json:
      write_json(envelope("accounts.current", True, {"currentAccount": account}))
      return
   click.echo(account)


@click.command(name="import")
@click.argument("name", required=False, shell_complete=complete_account_names)
@force_option
@json_option
def import_auth(name: Optional[str], force: bool, output_json: bool):
   """Save the active Codex auth file into an account's snapshot."""
   factory = ServiceFactory()
   try:
      account = factory.get_account_service().import_auth(name, force_lock=force)
      active_path = factory.paths.active_auth_path
   except MulticodexError as exc:
      emit_error(exc, "accounts.import", output_json)
   finally:
      factory.close()

   if output_json:
      write_json(envelope("accounts.import", True, {"account": account}))
      return
   console.print(f"[green]✓[/green] Imported {active_path} into account: [bold]{account}[/bold]")


class AliasedGroup(click.Group):
   """Group that also resolves hidden short aliases of its commands."""

   def __init__(self, *args, aliases: Optional[Dict[str, str]] = None, **kwargs):
      super().__init__(*args, **kwargs)
      self.aliases = aliases or {}

   def get_command(self, ctx, cmd_name):
      return super().get_command(ctx, self.aliases.get(cmd_name, cmd_name))

   def resolve_command(self, ctx, args):
      _, cmd, remaining = super().resolve_command(ctx, args)
      return cmd.name if cmd else None, cmd, remaining


@click.group(
   cls=AliasedGroup,
   invoke_without_command=True,
   aliases={"rm": "remove", "switch": "use", "which": "current", "ls": "list"},
)
@json_option
@click.pass_context
def accounts(ctx: click.Context, output_json: bool):
   """Manage accounts."""
   if ctx.invoked_subcommand is None:
      show_accounts(output_json)


accounts.add_command(list_accounts_cmd)
accounts.add_command(add)
accounts.add_command(remove)
accounts.add_command(rename)
accounts.add_command(use)
accounts.add_command(current)
accounts.add_command(import_auth)
