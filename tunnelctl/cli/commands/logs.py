# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Activity log commands."""

import click

from tunnelctl.cli import cli
from tunnelctl.cli.helpers import console, daemon_request, handle_errors


@cli.command()
@click.option("-n", "--lines", "limit", type=int, default=50, show_default=True,
              help="Number of most recent entries (0 for all).")
@click.option("--errors", "errors_only", is_flag=True, help="Only show errors.")
@click.option("--clear", is_flag=True, help="Clear the log.")
@handle_errors
def logs(limit: int, errors_only: bool, clear: bool):
    """Show the tunnelctld activity log."""
    if clear:
        daemon_request("clear_logs")
        console.print("[green]Log cleared[/green]")
        return

    response = daemon_request("logs", errors_only=errors_only, limit=limit or None)
    entries = response.get("entries", [])
    if not entries:
        console.print("[yellow]No log entries[/yellow]")
        return

    for entry in entries:
        style = "red" if entry["level"] == "error" else None
        line = entry["line"]
        # Messages carry raw ssh output, never rich markup
        if style:
            console.print(line, style=style, markup=False, highlight=False)
        else:
            console.print(line, markup=False, highlight=False)
