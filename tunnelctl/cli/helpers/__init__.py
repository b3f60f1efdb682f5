# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Shared helpers for the tunnelctl CLI.

- utils.py: Error types and the handle_errors decorator
- daemon_client.py: Request/response over the tunnelctld socket

All helpers are re-exported here for convenience.
"""

from tunnelctl.utils.logging import console

from tunnelctl.cli.helpers.daemon_client import (
    daemon_request,
    send_daemon_command,
)
from tunnelctl.cli.helpers.utils import (
    DaemonError,
    DaemonNotRunningError,
    handle_errors,
    show_error_panel,
)

__all__ = [
    "DaemonError",
    "DaemonNotRunningError",
    "console",
    "daemon_request",
    "handle_errors",
    "send_daemon_command",
    "show_error_panel",
]
