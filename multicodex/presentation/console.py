"""Shared console instances for multicodex output.

The stderr console carries progress, warnings and errors. Tables and JSON go
to the stdout console so scripts and the menu bar app can parse stdout.
"""

import os

from rich.console import Console
from rich.markup import escape

console = Console(stderr=True)
stdout_console = Console()


def debug(message: str):
    """Print a diagnostic line when MULTICODEX_DEBUG=1."""
    if os.environ.get("MULTICODEX_DEBUG") == "1":
        console.print(f"[dim][DEBUG] {escape(message)}[/dim]", highlight=False)
