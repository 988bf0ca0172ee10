"""Shell completion script command."""

from __future__ import annotations

import click
from click.shell_completion import get_completion_class

COMPLETE_VAR = "_MULTICODEX_COMPLETE"


@click.command()
@click.argument("shell", type=click.Choice(["bash", "zsh", "fish"]))
@click.pass_context
def completion(ctx: click.Context, shell: str):
   """Print the shell completion script (bash|zsh|fish).

   \b
   Example:
     eval "$(multicodex completion zsh)"
   """
   completion_class = get_completion_class(shell)
   root = ctx.find_root()
   script = completion_class(root.command, {}, root.info_name or "multicodex", COMPLETE_VAR).source()
   click.echo(script)
