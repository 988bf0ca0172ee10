"""Command-line interface for multicodex."""

import click

from ...constants import VERSION
from .accounts import (
    AliasedGroup,
    accounts,
    add,
    current,
    import_auth,
    list_accounts_cmd,
    remove,
    rename,
    show_accounts,
    use,
)
from .completion import completion
from .limits_cmd import limits
from .run import codex_passthrough, run, status


@click.group(
    cls=AliasedGroup,
    invoke_without_command=True,
    aliases={
        'account': 'accounts',
        'ls': 'list',
        'rm': 'remove',
        'switch': 'use',
        'which': 'current',
        'whoami': 'status',
        'usage': 'limits',
    },
)
@click.version_option(VERSION, '-V', '--version', prog_name='multicodex')
@click.pass_context
def cli(ctx):
    """multicodex - Run Codex with multiple accounts."""
    if ctx.invoked_subcommand is None:
        show_accounts(output_json=False)


# Register commands
cli.add_command(accounts)

# Shortcuts for common account commands
cli.add_command(list_accounts_cmd)
cli.add_command(add)
cli.add_command(remove)
cli.add_command(rename)
cli.add_command(use)
cli.add_command(current)
cli.add_command(import_auth)

cli.add_command(run)
cli.add_command(codex_passthrough)
cli.add_command(status)
cli.add_command(limits)
cli.add_command(completion)


__all__ = ['cli']
