# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Utility functions for CLI helpers."""

import functools
import sys
from typing import Callable, Optional

import click
from rich.console import Console
from rich.panel import Panel

_console = Console()


class DaemonError(Exception):
    """Raised when tunnelctld rejects a request.

    This exception bubbles up to handle_errors which formats it nicely.
    """

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


class DaemonNotRunningError(DaemonError):
    """Raised when the tunnelctld socket is missing or refuses connections."""

    def __init__(self, socket_path: str):
        super().__init__(
            f"tunnelctld is not running (no socket at {socket_path})",
            hint="tunnelctl service start",
        )
        self.socket_path = socket_path


def show_error_panel(title: str, message: str, hint: Optional[str] = None) -> None:
    """Display a formatted error panel.

    Args:
        title: Panel title (shown in red)
        message: Main error message
        hint: Optional hint text (shown with blue "Try:" prefix)
    """
    content = message
    if hint:
        content += f"\n\n[blue]Try:[/blue]\n  {hint}"
    _console.print(Panel(content, title=f"[red]{title}[/red]", border_style="red"))


def handle_errors(func: Callable) -> Callable:
    """Decorator that wraps CLI commands with standard error handling.

    Catches exceptions, prints error with nice formatting, and exits with code 1.
    Special handling for:
    - DaemonNotRunningError: Shows "Daemon Not Running" panel with start hint
    - DaemonError: Shows "Request Failed" panel with hint if provided
    - ClickException: Passed through to Click
    - Other exceptions: Shows generic error panel

    Usage:
        @command.command()
        @handle_errors
        def my_command():
            ...
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SystemExit:
            raise
        except DaemonNotRunningError as exc:
            show_error_panel("Daemon Not Running", str(exc), exc.hint)
            sys.exit(1)
        except DaemonError as exc:
            show_error_panel("Request Failed", str(exc), exc.hint)
            sys.exit(1)
        except click.ClickException:
            # Click formats its own exceptions
            raise
        except Exception as exc:
            show_error_panel("Error", str(exc))
            sys.exit(1)

    return wrapper
