# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Host commands - ssh aliases and their master connections."""

import click
from rich.table import Table

from tunnelctl.cli import cli
from tunnelctl.cli.helpers import console, daemon_request, handle_errors
from tunnelctl.cli.helpers.completions import _complete_host


@cli.group()
def host():
    """Manage hosts (ssh config aliases)."""
    pass


@host.command("list")
@handle_errors
def host_list():
    """List configured hosts."""
    response = daemon_request("snapshot")
    hosts = response.get("hosts", [])
    if not hosts:
        console.print("[yellow]No hosts configured[/yellow]")
        console.print("[blue]Add one with:[/blue] tunnelctl host add <alias>")
        return

    table = Table(title="Hosts")
    table.add_column("Alias", style="cyan")
    table.add_column("ID", style="dim")
    table.add_column("Status")
    table.add_column("Tunnels", justify="right")
    table.add_column("Config Forwards", style="yellow")

    for entry in hosts:
        active = sum(1 for t in entry["tunnels"] if t["is_active"])
        status = entry["status"]
        if entry["reconnecting"]:
            status = "[blue]Reconnecting[/blue]"
        elif entry["is_master_running"]:
            status = f"[green]{status}[/green]"
        table.add_row(
            entry["alias"],
            entry["id"][:8],
            status,
            f"{active}/{len(entry['tunnels'])}",
            "✓" if entry["respects_config_forwardings"] else "-",
        )

    console.print(table)


@host.command("add")
@click.argument("alias")
@handle_errors
def host_add(alias: str):
    """Add a host by its ssh config alias."""
    response = daemon_request("add_host", alias=alias)
    console.print(f"[green]Added host {response['host']['alias']}[/green]")


@host.command("remove")
@click.argument("host", shell_complete=_complete_host)
@handle_errors
def host_remove(host: str):
    """Disconnect and remove a host with all its tunnels."""
    response = daemon_request("remove_host", host=host)
    console.print(f"[green]Removed host {response['host']['alias']}[/green]")


@host.command("rename")
@click.argument("host", shell_complete=_complete_host)
@click.argument("alias")
@handle_errors
def host_rename(host: str, alias: str):
    """Change a host's ssh alias. Its master connection is closed."""
    response = daemon_request("rename_host", host=host, alias=alias)
    if response.get("changed"):
        console.print(f"[green]Updated host alias to {alias.strip()}[/green]")
    else:
        console.print("[yellow]Alias unchanged[/yellow]")


@host.command("forwardings")
@click.argument("host", shell_complete=_complete_host)
@click.argument("state", type=click.Choice(["on", "off"]))
@handle_errors
def host_forwardings(host: str, state: str):
    """Keep (on) or clear (off) forwardings defined in ssh_config.

    Takes effect on the next connect; a running master is closed.
    """
    daemon_request("set_forwardings", host=host, enabled=state == "on")
    label = "enabled" if state == "on" else "disabled"
    console.print(f"[green]Config forwardings {label} for {host}[/green]")


@host.command("connect")
@click.argument("host", shell_complete=_complete_host)
@handle_errors
def host_connect(host: str):
    """Start the master connection without forwarding anything."""
    daemon_request("connect_host", host=host)
    console.print(f"[green]Connected {host}[/green]")


@host.command("disconnect")
@click.argument("host", shell_complete=_complete_host)
@handle_errors
def host_disconnect(host: str):
    """Close the master connection and every tunnel on it."""
    daemon_request("disconnect_host", host=host)
    console.print(f"[green]Disconnected {host}[/green]")


@host.command("inspect")
@click.argument("host", shell_complete=_complete_host)
@click.option("--grep", "pattern", help="Only show options containing this text.")
@handle_errors
def host_inspect(host: str, pattern: str):
    """Show the effective ssh_config for a host (ssh -G)."""
    response = daemon_request("inspect_config", host=host)
    options = response.get("options", [])
    if pattern:
        needle = pattern.lower()
        options = [(k, v) for k, v in options if needle in k.lower() or needle in v.lower()]

    table = Table(title=f"ssh -G {response.get('alias', host)}")
    table.add_column("Option", style="cyan")
    table.add_column("Value")
    for key, value in options:
        table.add_row(key, value)
    console.print(table)
