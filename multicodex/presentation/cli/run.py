"""Commands that run codex with an account's auth swapped in."""

from __future__ import annotations

from typing import List, Optional

import click

from ...core.errors import MulticodexError
from ...infrastructure.factory import ServiceFactory
from ...utils import now_iso
from ..renderers import emit_error, envelope, write_json
from .accounts import complete_account_names, force_option, json_option

RUN_USAGE = "Usage: multicodex run [NAME] [--account NAME] [--temp] [--force] -- <codex args...>"


class RunCommand(click.Command):
   """Splits argv at `--`: options before it are ours, everything after goes to codex."""

   def parse_args(self, ctx: click.Context, args: List[str]) -> List[str]:
      if "--" in args:
         index = args.index("--")
         ctx.meta["codex_args"] = list(args[index + 1 :])
         args = args[:index]
      else:
         ctx.meta["codex_args"] = None
      return super().parse_args(ctx, args)


def pick_account(name: Optional[str], account: Optional[str]) -> Optional[str]:
   if name and account:
      raise click.UsageError("Use either a positional [NAME] or --account, not both.")
   return account or name


def run_with_account(
   ctx: click.Context, account: Optional[str], args: List[str], force_lock: bool, restore_previous: bool
):
   factory = ServiceFactory()
   try:
      account_service = factory.get_account_service()
      resolved = account_service.resolve_existing(account)
      account_service.touch(resolved)
      exit_code = factory.get_runner().run(resolved, args, force_lock=force_lock, restore_previous=restore_previous)
   except MulticodexError as exc:
      emit_error(exc, "run")
   finally:
      factory.close()
   ctx.exit(exit_code)


@click.command(cls=RunCommand)
@click.argument("name", required=False, shell_complete=complete_account_names)
@click.option("--account", "account", help="Account name (alternative to the positional NAME)")
@click.option("--temp", is_flag=True, help="Restore the previously active auth when codex exits")
@force_option
@click.pass_context
def run(ctx: click.Context, name: Optional[str], account: Optional[str], temp: bool, force: bool):
   """Run codex for an account (pass codex args after --)."""
   codex_args = ctx.meta.get("codex_args")
   if codex_args is None:
      raise click.UsageError(RUN_USAGE)
   if codex_args and codex_args[0] == "codex":
      codex_args = codex_args[1:]

   run_with_account(ctx, pick_account(name, account), codex_args, force_lock=force, restore_previous=temp)


@click.command(
   name="codex",
   context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
   add_help_option=False,
)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def codex_passthrough(ctx: click.Context, args):
   """Run codex with the current account."""
   run_with_account(ctx, None, list(args), force_lock=False, restore_previous=False)


@click.command()
@click.argument("name", required=False, shell_complete=complete_account_names)
@click.option("--account", "account", help="Account name (alternative to the positional NAME)")
@json_option
@click.pass_context
def status(ctx: click.Context, name: Optional[str], account: Optional[str], output_json: bool):
   """Show login status for an account (runs `codex login status`)."""
   requested = pick_account(name, account)
   factory = ServiceFactory()
   try:
      account_service = factory.get_account_service()
      resolved = account_service.resolve_existing(requested)
      result = factory.get_runner().run_capture(resolved, ["login", "status"], restore_previous=True)
      account_service.record_login_status(resolved, result.output)
   except MulticodexError as exc:
      emit_error(exc, "status", output_json)
   finally:
      factory.close()

   if output_json:
      write_json(
         envelope(
            "status",
            result.exit_code == 0,
            {
               "account": resolved,
               "exitCode": result.exit_code,
               "stdout": result.stdout,
               "stderr": result.stderr,
               "output": result.output,
               "checkedAt": now_iso(),
            },
         )
      )
   else:
      if result.stdout:
         click.echo(result.stdout, nl=False)
      if result.stderr:
         click.echo(result.stderr, nl=False, err=True)

   ctx.exit(result.exit_code)
