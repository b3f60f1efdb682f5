# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Service management commands for tunnelctld."""

import os
import shutil
import subprocess

import click

from tunnelctl.cli import cli
from tunnelctl.cli.helpers import console, handle_errors
from tunnelctl.paths import HostPaths
from tunnelctl.settings import get_config

# Timeout for systemctl operations (seconds)
SYSTEMCTL_TIMEOUT = 30

SERVICE_NAME = "tunnelctld"


def _systemctl(*args: str, check: bool = False) -> subprocess.CompletedProcess:
    return subprocess.run(
        ["systemctl", "--user", *args], check=check, timeout=SYSTEMCTL_TIMEOUT
    )


def _create_service_file() -> str:
    """Create systemd service file content."""
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR", f"/run/user/{os.getuid()}")
    socket_path = str(get_config().socket_path)

    tunnelctl_path = shutil.which("tunnelctl") or "/usr/bin/env tunnelctl"

    # ssh-agent socket so key-based masters work without a prompt
    agent_line = ""
    if os.environ.get("SSH_AUTH_SOCK"):
        agent_line = f"Environment=SSH_AUTH_SOCK={os.environ['SSH_AUTH_SOCK']}\n"

    return f"""[Unit]
Description=tunnelctl Daemon (persistent SSH tunnels)
After=network-online.target
Wants=network-online.target

[Service]
Type=simple
Environment=PYTHONUNBUFFERED=1
Environment=XDG_RUNTIME_DIR={runtime_dir}
{agent_line}ExecStart={tunnelctl_path} service serve {socket_path}
Restart=on-failure
RestartSec=5
StandardOutput=journal
StandardError=journal

[Install]
WantedBy=default.target
"""


@cli.group()
def service():
    """Manage the tunnelctld background service."""
    pass


@service.command("install")
@handle_errors
def service_install():
    """Install and start the systemd service."""
    unit_path = HostPaths.systemd_unit()
    unit_path.parent.mkdir(parents=True, exist_ok=True)
    unit_path.write_text(_create_service_file())
    console.print(f"[green]Installed service at {unit_path}[/green]")

    try:
        _systemctl("daemon-reload")
        _systemctl("enable", SERVICE_NAME)
        _systemctl("start", SERVICE_NAME)
        console.print("[green]Service enabled and started[/green]")
        console.print("[blue]Logs: tunnelctl service logs[/blue]")
    except FileNotFoundError:
        console.print("[yellow]systemctl not found - service file created but not loaded[/yellow]")
    except subprocess.TimeoutExpired:
        console.print("[red]systemctl command timed out[/red]")


@service.command("uninstall")
@handle_errors
def service_uninstall():
    """Uninstall the systemd service."""
    unit_path = HostPaths.systemd_unit()

    try:
        _systemctl("stop", SERVICE_NAME)
        _systemctl("disable", SERVICE_NAME)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        pass

    if not unit_path.exists():
        console.print("[yellow]Service not installed[/yellow]")
        return

    unit_path.unlink()
    console.print(f"[green]Uninstalled service from {unit_path}[/green]")
    try:
        _systemctl("daemon-reload")
    except (FileNotFoundError, subprocess.TimeoutExpired):
        pass


def _run_systemctl_verb(verb: str, done: str) -> None:
    try:
        _systemctl(verb, SERVICE_NAME, check=True)
    except subprocess.CalledProcessError:
        raise click.ClickException(
            f"Failed to {verb} service. Check: tunnelctl service status"
        )
    except FileNotFoundError:
        raise click.ClickException("systemctl not found")
    except subprocess.TimeoutExpired:
        raise click.ClickException("systemctl command timed out")
    console.print(f"[green]Service {done}[/green]")


@service.command("start")
@handle_errors
def service_start():
    """Start the service."""
    _run_systemctl_verb("start", "started")


@service.command("stop")
@handle_errors
def service_stop():
    """Stop the service (disconnects every host)."""
    _run_systemctl_verb("stop", "stopped")


@service.command("restart")
@handle_errors
def service_restart():
    """Restart the service."""
    _run_systemctl_verb("restart", "restarted")


@service.command("status")
@handle_errors
def service_status():
    """Show service status."""
    try:
        subprocess.run(["systemctl", "--user", "status", SERVICE_NAME])
    except FileNotFoundError:
        raise click.ClickException("systemctl not found")


@service.command("logs")
@click.argument("lines", required=False, default="50")
@handle_errors
def service_logs(lines: str):
    """Show service logs.

    Pass number of lines to show (default: 50).

    Examples:
        tunnelctl service logs      # Show last 50 lines
        tunnelctl service logs 100  # Show last 100 lines
    """
    try:
        num_lines = int(lines)
    except ValueError:
        raise click.ClickException(f"Invalid number of lines: {lines}")

    try:
        subprocess.run(["journalctl", "--user", "-u", SERVICE_NAME, "-n", str(num_lines)])
    except FileNotFoundError:
        raise click.ClickException("journalctl not found")


@service.command("follow")
@handle_errors
def service_follow():
    """Follow service logs in real-time (Ctrl+C to stop)."""
    try:
        subprocess.run(["journalctl", "--user", "-u", SERVICE_NAME, "-f"])
    except FileNotFoundError:
        raise click.ClickException("journalctl not found")


@service.command("serve")
@click.argument("socket_path", required=False)
@handle_errors
def service_serve(socket_path: str = None):
    """Run tunnelctld in foreground for debugging.

    Pass optional socket path as argument (default: from config).

    Examples:
        tunnelctl service serve                      # Use default socket
        tunnelctl service serve /tmp/custom.sock     # Custom socket path
    """
    from tunnelctl.tunnelctld import run_tunnelctld

    run_tunnelctld(socket_path)
