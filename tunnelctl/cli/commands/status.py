# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Status overview of hosts and tunnels."""

from rich.table import Table

from tunnelctl.cli import cli
from tunnelctl.cli.helpers import console, daemon_request, handle_errors
from tunnelctl.core.status import IndicatorState

DOT = "●"


def _dot(indicator: str) -> str:
    state = IndicatorState(indicator)
    return f"[{state.style}]{DOT}[/{state.style}]"


@cli.command()
@handle_errors
def status():
    """Show hosts, tunnels and connection state."""
    response = daemon_request("snapshot")
    hosts = response.get("hosts", [])
    if not hosts:
        console.print("[yellow]No hosts configured[/yellow]")
        return

    table = Table(title="Tunnels", show_lines=False)
    table.add_column("", width=1)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Host / Tunnel", style="cyan")
    table.add_column("State")

    for entry in hosts:
        host_state = IndicatorState(entry["indicator"])
        table.add_row(
            _dot(entry["indicator"]),
            "",
            f"[bold]{entry['alias']}[/bold]",
            f"[{host_state.style}]{host_state.label}[/{host_state.style}]",
        )
        for position, tunnel in enumerate(entry["tunnels"], start=1):
            state = IndicatorState(tunnel["indicator"])
            table.add_row(
                _dot(tunnel["indicator"]),
                str(position),
                f"  {tunnel['summary']}",
                f"[{state.style}]{state.label}[/{state.style}]",
            )

    console.print(table)
    console.print(f"[dim]Control sockets: {response.get('control_socket_base')}[/dim]")
    if response.get("last_error"):
        console.print(f"[red]Last error:[/red] {response['last_error']}")
