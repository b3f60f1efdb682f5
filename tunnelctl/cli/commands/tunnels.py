# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tunnel commands - port forwards on a host's master connection.

TUNNEL may be the position shown by `tunnelctl status` (1-based), a tunnel
id, or a unique id prefix.
"""

from typing import Optional, Tuple

import click

from tunnelctl.cli import cli
from tunnelctl.cli.helpers import console, daemon_request, handle_errors
from tunnelctl.cli.helpers.completions import _complete_host, _complete_tunnel

TUNNEL_TYPES = ["local", "remote", "dynamic"]


def _parse_endpoint(value: Optional[str]) -> Tuple[Optional[str], Optional[int]]:
    """Split HOST:PORT (the host may be a bracketed IPv6 address)."""
    if not value:
        return None, None
    host, sep, port = value.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise click.BadParameter(f"expected HOST:PORT, got {value!r}", param_hint="--to")
    return host.strip("[]"), int(port)


def _print_started(response: dict) -> None:
    summary = response["tunnel"]["summary"]
    if response.get("skipped") == "port_in_use":
        console.print(f"[yellow]Local port in use, tunnel {summary} not started[/yellow]")
    else:
        console.print(f"[green]Started tunnel {summary}[/green]")


@cli.group()
def tunnel():
    """Manage tunnels (local, remote and dynamic forwards)."""
    pass


@tunnel.command("add")
@click.argument("host", shell_complete=_complete_host)
@click.argument("tunnel_type", metavar="TYPE", type=click.Choice(TUNNEL_TYPES))
@click.argument("local_port", type=click.IntRange(1, 65535))
@click.option("--to", "endpoint", help="Remote endpoint HOST:PORT (local and remote tunnels).")
@click.option("--start", "start_now", is_flag=True, help="Start the tunnel right away.")
@handle_errors
def tunnel_add(host: str, tunnel_type: str, local_port: int, endpoint: str, start_now: bool):
    """Add a tunnel to HOST.

    Examples:
        tunnelctl tunnel add prod local 8080 --to 127.0.0.1:80
        tunnelctl tunnel add prod remote 3000 --to localhost:9000
        tunnelctl tunnel add prod dynamic 1080
    """
    remote_host, remote_port = _parse_endpoint(endpoint)
    response = daemon_request(
        "add_tunnel",
        host=host,
        type=tunnel_type,
        local_port=local_port,
        remote_host=remote_host,
        remote_port=remote_port,
    )
    added = response["tunnel"]
    console.print(f"[green]Added tunnel {added['summary']} for {host}[/green]")
    if start_now:
        started = daemon_request("start_tunnel", host=host, tunnel=added["id"])
        _print_started(started)


@tunnel.command("edit")
@click.argument("host", shell_complete=_complete_host)
@click.argument("tunnel_ref", metavar="TUNNEL", shell_complete=_complete_tunnel)
@click.option("--type", "tunnel_type", type=click.Choice(TUNNEL_TYPES))
@click.option("--local-port", type=click.IntRange(1, 65535))
@click.option("--to", "endpoint", help="Remote endpoint HOST:PORT.")
@handle_errors
def tunnel_edit(
    host: str,
    tunnel_ref: str,
    tunnel_type: Optional[str],
    local_port: Optional[int],
    endpoint: Optional[str],
):
    """Change a tunnel. An active tunnel is stopped first."""
    remote_host, remote_port = _parse_endpoint(endpoint)
    response = daemon_request(
        "update_tunnel",
        host=host,
        tunnel=tunnel_ref,
        type=tunnel_type,
        local_port=local_port,
        remote_host=remote_host,
        remote_port=remote_port,
    )
    console.print(f"[green]Updated tunnel {response['tunnel']['summary']}[/green]")


@tunnel.command("duplicate")
@click.argument("host", shell_complete=_complete_host)
@click.argument("tunnel_ref", metavar="TUNNEL", shell_complete=_complete_tunnel)
@handle_errors
def tunnel_duplicate(host: str, tunnel_ref: str):
    """Copy a tunnel (inactive, placed right after the original)."""
    response = daemon_request("duplicate_tunnel", host=host, tunnel=tunnel_ref)
    console.print(f"[green]Duplicated tunnel {response['tunnel']['summary']}[/green]")


@tunnel.command("remove")
@click.argument("host", shell_complete=_complete_host)
@click.argument("tunnel_ref", metavar="TUNNEL", shell_complete=_complete_tunnel)
@handle_errors
def tunnel_remove(host: str, tunnel_ref: str):
    """Remove a tunnel, stopping it if active."""
    response = daemon_request("remove_tunnel", host=host, tunnel=tunnel_ref)
    console.print(f"[green]Removed tunnel {response['tunnel']['summary']}[/green]")


@tunnel.command("toggle")
@click.argument("host", shell_complete=_complete_host)
@click.argument("tunnel_ref", metavar="TUNNEL", shell_complete=_complete_tunnel)
@handle_errors
def tunnel_toggle(host: str, tunnel_ref: str):
    """Start the tunnel if stopped, stop it if running."""
    response = daemon_request("toggle_tunnel", host=host, tunnel=tunnel_ref)
    if response.get("skipped"):
        _print_started(response)
        return
    current = response["tunnel"]
    state = "active" if current["is_active"] else "stopped"
    console.print(f"[green]Tunnel {current['summary']} is {state}[/green]")


@tunnel.command("start")
@click.argument("host", shell_complete=_complete_host)
@click.argument("tunnel_ref", metavar="TUNNEL", shell_complete=_complete_tunnel)
@handle_errors
def tunnel_start(host: str, tunnel_ref: str):
    """Start a tunnel, connecting the host first if needed."""
    response = daemon_request("start_tunnel", host=host, tunnel=tunnel_ref)
    _print_started(response)


@tunnel.command("stop")
@click.argument("host", shell_complete=_complete_host)
@click.argument("tunnel_ref", metavar="TUNNEL", shell_complete=_complete_tunnel)
@handle_errors
def tunnel_stop(host: str, tunnel_ref: str):
    """Stop a tunnel. The master closes with the host's last tunnel."""
    response = daemon_request("stop_tunnel", host=host, tunnel=tunnel_ref)
    console.print(f"[green]Stopped tunnel {response['tunnel']['summary']}[/green]")


@tunnel.command("start-all")
@click.argument("host", shell_complete=_complete_host)
@handle_errors
def tunnel_start_all(host: str):
    """Start every stopped tunnel of HOST."""
    daemon_request("start_all", host=host)
    console.print(f"[green]Started all tunnels for {host}[/green]")
    console.print("[blue]Check results with:[/blue] tunnelctl status")


@tunnel.command("stop-all")
@click.argument("host", shell_complete=_complete_host)
@handle_errors
def tunnel_stop_all(host: str):
    """Stop every active tunnel of HOST."""
    daemon_request("stop_all", host=host)
    console.print(f"[green]Stopped all tunnels for {host}[/green]")
