# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Master connection and per-tunnel forward sequencing.

Per host: no master -> master starting -> master up -> forwarding
tunnels -> master stopping -> no master. A master is only ever started
after `ssh -O check` reports none is running, which keeps one master per
control socket without any lock.
"""

from enum import Enum
from typing import Callable

from tunnelctl.core.activity import ActivityLog, failure_message
from tunnelctl.core.store import HostStore
from tunnelctl.executor import ExecResult
from tunnelctl.models.host_profile import HostProfile, TunnelSpec, TunnelType
from tunnelctl.ssh_control import SSHControl

PortProbe = Callable[[int], bool]


class StartOutcome(str, Enum):
    """How a tunnel start ended. A busy local port is a skip, not a failure."""

    STARTED = "started"
    PORT_IN_USE = "port_in_use"
    NO_MASTER = "no_master"
    FAILED = "failed"

    @property
    def ok(self) -> bool:
        return self is StartOutcome.STARTED


class ConnectionSessionManager:
    """Runs the control-master protocol for hosts and their tunnels."""

    def __init__(
        self,
        store: HostStore,
        ssh: SSHControl,
        activity: ActivityLog,
        is_port_free: PortProbe,
    ):
        self.store = store
        self.ssh = ssh
        self.activity = activity
        self.is_port_free = is_port_free

    async def check_master(self, host: HostProfile) -> ExecResult:
        state = self.store.runtime_state(host)
        return await self.ssh.check(state.control_socket_path, host.alias)

    async def ensure_master(self, host: HostProfile) -> bool:
        """Make sure a master is up, starting one only if check says none is."""
        check = await self.check_master(host)
        if check.success:
            self.store.set_master_running(host.id, True)
            return True

        self.activity.info(f"Starting master connection for {host.alias}")
        state = self.store.runtime_state(host)
        result = await self.ssh.start_master(
            host.alias, state.control_socket_path, host.respects_config_forwardings
        )
        self.store.set_master_running(host.id, result.success)
        if not result.success:
            self.activity.error(
                failure_message(f"Start master connection for {host.alias}", result)
            )
        else:
            self.activity.info(f"Master connection established for {host.alias}")
        return result.success

    async def start_tunnel(self, host: HostProfile, tunnel: TunnelSpec) -> StartOutcome:
        """Forward one tunnel and report how it went."""
        if not await self.ensure_master(host):
            return StartOutcome.NO_MASTER

        summary = tunnel.display_summary
        self.activity.info(f"Starting tunnel {summary} for {host.alias}")
        if tunnel.type != TunnelType.REMOTE:
            port = tunnel.local_port
            if not self.is_port_free(port):
                # Could be a stale forward of our own; cancel is harmless otherwise
                state = self.store.runtime_state(host)
                await self.ssh.cancel(state.control_socket_path, host.alias, tunnel)

            if not self.is_port_free(port):
                self.activity.info(f"Local port {port} is already in use. Skipping forward.")
                return StartOutcome.PORT_IN_USE

        state = self.store.runtime_state(host)
        result = await self.ssh.forward(state.control_socket_path, host.alias, tunnel)
        if result.success:
            self._mark_active(host, tunnel)
            self.activity.info(f"Started tunnel {summary} for {host.alias}")
            return StartOutcome.STARTED

        if tunnel.type != TunnelType.REMOTE and not self.is_port_free(tunnel.local_port):
            # The forward usually did take effect when its port is now bound
            self._mark_active(host, tunnel)
            self.activity.info(
                f"Tunnel {summary} appears active despite ssh error; "
                f"port {tunnel.local_port} is in use."
            )
            return StartOutcome.STARTED

        self.activity.error(failure_message(f"Start tunnel {summary}", result))
        self.store.mark_error(tunnel.id)
        return StartOutcome.FAILED

    async def stop_tunnel(self, host: HostProfile, tunnel: TunnelSpec) -> bool:
        """Cancel one tunnel; tears the master down once nothing is forwarded."""
        summary = tunnel.display_summary
        self.activity.info(f"Stopping tunnel {summary} for {host.alias}")
        state = self.store.runtime_state(host)
        result = await self.ssh.cancel(state.control_socket_path, host.alias, tunnel)
        if result.success:
            self.store.set_tunnel_active(host.id, tunnel.id, False)
            self.store.clear_error(tunnel.id)
            self.activity.info(f"Stopped tunnel {summary} for {host.alias}")
        else:
            self.activity.error(failure_message(f"Stop tunnel {summary}", result))
            self.store.mark_error(tunnel.id)

        if not self.store.has_active_tunnels(host.id):
            current = self.store.host(host.id)
            if current is not None:
                await self.disconnect_host(current)
        return result.success

    async def disconnect_host(self, host: HostProfile) -> bool:
        """Exit the master and reset every tunnel of the host, whatever ssh says."""
        socket_path = self.store.control_sockets.socket_path(host.alias)
        self.activity.info(f"Disconnecting host {host.alias}")
        result = await self.ssh.exit(socket_path, host.alias)
        if not result.success:
            self.activity.error(failure_message(f"Disconnect host {host.alias}", result))
        else:
            self.activity.info(f"Disconnected host {host.alias}")

        self.store.deactivate_tunnels(host.id)
        self.store.clear_errors(t.id for t in host.tunnels)
        self.store.clear_retry(host.id)
        self.store.set_master_running(host.id, False)
        return result.success

    def _mark_active(self, host: HostProfile, tunnel: TunnelSpec) -> None:
        self.store.set_tunnel_active(host.id, tunnel.id, True)
        self.store.clear_error(tunnel.id)
