# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Settings commands (~/.config/tunnelctl/config.yml)."""

import click
import yaml
from pydantic import ValidationError
from rich.syntax import Syntax

from tunnelctl.cli import cli
from tunnelctl.cli.helpers import (
    DaemonNotRunningError,
    console,
    daemon_request,
    handle_errors,
)
from tunnelctl.settings import Settings


def _notify_daemon() -> None:
    """Ask a running daemon to pick up the new settings."""
    try:
        daemon_request("reload_settings")
    except DaemonNotRunningError:
        console.print("[dim]tunnelctld is not running; changes apply on next start[/dim]")
        return
    console.print("[blue]tunnelctld reloaded settings[/blue]")


@cli.group()
def config():
    """View and change settings."""
    pass


@config.command("show")
@handle_errors
def config_show():
    """Print the effective settings."""
    settings = Settings()
    text = yaml.safe_dump(
        settings.model.model_dump(exclude_none=True), default_flow_style=False, sort_keys=False
    )
    console.print(f"[blue]# {settings.config_path}[/blue]")
    console.print(Syntax(text, "yaml"))


@config.command("set")
@click.argument("key")
@click.argument("value")
@handle_errors
def config_set(key: str, value: str):
    """Set KEY (dotted, e.g. auto_reconnect.enabled) to VALUE.

    VALUE is parsed as YAML, so `true`, `5` and `2.5` become bool, int and float.

    Examples:
        tunnelctl config set auto_reconnect.enabled true
        tunnelctl config set auto_reconnect.max_attempts 0
        tunnelctl config set ssh.binary_path /opt/homebrew/bin/ssh
    """
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError:
        parsed = value

    settings = Settings()
    try:
        settings.set(key, parsed)
    except KeyError:
        raise click.ClickException(f"Unknown setting: {key}")
    except ValidationError as e:
        messages = "; ".join(err["msg"] for err in e.errors())
        raise click.ClickException(f"Invalid value for {key}: {messages}")

    console.print(f"[green]{key} = {parsed!r}[/green]")
    _notify_daemon()


@config.command("reset-ssh")
@handle_errors
def config_reset_ssh():
    """Reset the ssh binary to the default (/usr/bin/ssh)."""
    try:
        response = daemon_request("reset_ssh_binary")
        console.print(f"[green]SSH binary reset to {response['binary_path']}[/green]")
    except DaemonNotRunningError:
        settings = Settings()
        settings.reset_ssh_binary_path()
        console.print(f"[green]SSH binary reset to {settings.ssh_binary_path}[/green]")


@config.command("path")
@handle_errors
def config_path():
    """Show where settings and hosts are stored."""
    settings = Settings()
    console.print(f"Config: {settings.config_path}")
    console.print(f"Hosts: {settings.hosts_file}")
    console.print(f"Daemon socket: {settings.socket_path}")
