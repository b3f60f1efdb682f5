# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""tunnelctl CLI package."""

import click

from tunnelctl import __version__


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="tunnelctl")
@click.option("--debug", is_flag=True, help="Verbose output (same as TUNNELCTL_DEBUG=1).")
def cli(debug: bool):
    """tunnelctl - Persistent SSH tunnels over multiplexed master connections."""
    from tunnelctl.utils.logging import configure_logging

    configure_logging(debug=debug)
    ctx = click.get_current_context()
    if ctx.invoked_subcommand is None:
        click.echo("Usage: tunnelctl [OPTIONS] COMMAND [ARGS]...\n")

        def _print_table(title: str, rows: list[tuple[str, str]], width: int) -> None:
            click.echo(f"{title}:")
            for name, desc in rows:
                click.echo(f"  {name.ljust(width)}  {desc}")
            click.echo("")

        groups = [
            (
                "Overview",
                [
                    ("status", "Hosts, tunnels and connection state"),
                    ("logs", "Activity log (--errors/--clear)"),
                ],
            ),
            (
                "Command Groups",
                [
                    ("host", "Hosts (list/add/remove/rename/forwardings/connect/disconnect/inspect)"),
                    ("tunnel", "Tunnels (add/edit/duplicate/remove/toggle/start/stop/start-all/stop-all)"),
                    ("config", "Settings (show/set/reset-ssh/path)"),
                ],
            ),
            (
                "Service",
                [
                    ("service", "tunnelctld daemon (install/start/stop/status/logs/serve)"),
                ],
            ),
        ]

        width = max(len(name) for _, rows in groups for name, _ in rows)
        for title, rows in groups:
            _print_table(title, rows, width)
        click.echo("Use --help for full command details.")
        return


def main():
    """Main entry point."""
    cli()


from tunnelctl.cli.commands import config  # noqa: E402,F401
from tunnelctl.cli.commands import hosts  # noqa: E402,F401
from tunnelctl.cli.commands import logs  # noqa: E402,F401
from tunnelctl.cli.commands import service  # noqa: E402,F401
from tunnelctl.cli.commands import status  # noqa: E402,F401
from tunnelctl.cli.commands import tunnels  # noqa: E402,F401
