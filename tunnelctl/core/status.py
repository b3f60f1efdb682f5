# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Display indicators derived from host/tunnel state.

Tunnel priority: reconnecting > connected > error > warning > disconnected.
An in-progress reconnect always wins over a stale error flag.
"""

from enum import Enum
from typing import Callable, Iterable, Optional, Tuple

from tunnelctl.models.host_profile import TunnelSpec, TunnelType


class IndicatorState(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    WARNING = "warning"
    ERROR = "error"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def style(self) -> str:
        """Rich style for the indicator dot."""
        return _STYLES[self]


_LABELS = {
    IndicatorState.CONNECTED: "Connected",
    IndicatorState.DISCONNECTED: "Disconnected",
    IndicatorState.RECONNECTING: "Reconnecting",
    IndicatorState.WARNING: "Port in use",
    IndicatorState.ERROR: "Error",
}

_STYLES = {
    IndicatorState.CONNECTED: "green",
    IndicatorState.DISCONNECTED: "dim",
    IndicatorState.RECONNECTING: "blue",
    IndicatorState.WARNING: "yellow",
    IndicatorState.ERROR: "red",
}


def tunnel_indicator_state(
    tunnel: TunnelSpec,
    host_reconnecting: bool,
    has_error: bool,
    local_port_in_use: Callable[[int], bool],
) -> IndicatorState:
    """Indicator for one tunnel. The port is probed only when it can matter."""
    if host_reconnecting:
        return IndicatorState.RECONNECTING
    if tunnel.is_active:
        return IndicatorState.CONNECTED
    if has_error:
        return IndicatorState.ERROR
    if tunnel.type != TunnelType.REMOTE and local_port_in_use(tunnel.local_port):
        return IndicatorState.WARNING
    return IndicatorState.DISCONNECTED


def host_indicator_state(reconnecting: bool, master_running: bool) -> IndicatorState:
    if reconnecting:
        return IndicatorState.RECONNECTING
    if master_running:
        return IndicatorState.CONNECTED
    return IndicatorState.DISCONNECTED


def overall_indicator_state(hosts: Iterable[Tuple[bool, bool]]) -> Optional[IndicatorState]:
    """Aggregate over (reconnecting, master_running) pairs; None when all are idle."""
    hosts = list(hosts)
    if any(reconnecting for reconnecting, _ in hosts):
        return IndicatorState.RECONNECTING
    if any(running for _, running in hosts):
        return IndicatorState.CONNECTED
    return None


def host_status_label(master_running: bool) -> str:
    return "Connected" if master_running else "Disconnected"
