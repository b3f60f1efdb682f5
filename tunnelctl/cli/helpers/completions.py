# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Click shell completions backed by the daemon snapshot."""

from click.shell_completion import CompletionItem

from tunnelctl.cli.helpers.daemon_client import send_daemon_command
from tunnelctl.cli.helpers.utils import DaemonError


def _snapshot_hosts() -> list:
    try:
        response = send_daemon_command({"action": "snapshot"}, timeout=2.0)
    except DaemonError:
        return []
    return response.get("hosts", []) if response.get("ok") else []


def _complete_host(ctx, param, incomplete):
    """Autocomplete host aliases."""
    return [
        CompletionItem(host["alias"], help=host.get("status", ""))
        for host in _snapshot_hosts()
        if host["alias"].startswith(incomplete)
    ]


def _complete_tunnel(ctx, param, incomplete):
    """Autocomplete tunnel positions for the host given earlier on the line."""
    host_ref = ctx.params.get("host")
    for host in _snapshot_hosts():
        if host_ref in (host["alias"], host["id"]):
            return [
                CompletionItem(str(position), help=tunnel["summary"])
                for position, tunnel in enumerate(host["tunnels"], start=1)
                if str(position).startswith(incomplete)
            ]
    return []
