# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""TunnelManager - the single owner of tunnelctl state.

Every user intent (host and tunnel edits, start/stop, connect/disconnect)
funnels through one TunnelManager running on one event loop. ssh calls are
awaited on worker threads, so state is only ever touched from the loop.

Work that outlives an intent (a teardown after a rename, a toggle) is
dispatched as a task tracked per host. Overlapping tasks on the same host
are allowed to interleave; host_tasks() and wait_host() make them
observable.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine, Dict, List, Optional, Set

from tunnelctl import port_utils
from tunnelctl.control_socket import ControlSocketManager
from tunnelctl.core.activity import ActivityLog, LogEntry
from tunnelctl.core.poller import HealthPoller
from tunnelctl.core.reconnect import AutoReconnectController, Sleep
from tunnelctl.core.session import ConnectionSessionManager, PortProbe, StartOutcome
from tunnelctl.core.status import (
    IndicatorState,
    host_indicator_state,
    host_status_label,
    overall_indicator_state,
    tunnel_indicator_state,
)
from tunnelctl.core.store import HostRepository, HostStore
from tunnelctl.executor import ExecResult, SubprocessExecutor
from tunnelctl.models.host_profile import HostProfile, TunnelSpec
from tunnelctl.models.settings import DEFAULT_SSH_PATH
from tunnelctl.settings import Settings, get_config
from tunnelctl.ssh_control import CommandExecutor, SSHControl
from tunnelctl.utils.logging import get_logger

logger = get_logger(__name__)


class TunnelManager:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        executor: Optional[CommandExecutor] = None,
        is_port_free: Optional[PortProbe] = None,
        repository: Optional[HostRepository] = None,
        control_sockets: Optional[ControlSocketManager] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.settings = settings or get_config()
        self.activity = ActivityLog()
        self.executor = executor or SubprocessExecutor(self.settings.command_timeout)
        self.control_sockets = control_sockets or ControlSocketManager(self.settings.control_dir)
        self.store = HostStore(
            repository or HostRepository(self.settings.hosts_file),
            self.control_sockets,
            self.activity,
        )
        self._is_port_free = is_port_free or port_utils.is_port_free
        self.ssh = SSHControl(self.executor, self.settings)
        self.sessions = ConnectionSessionManager(
            self.store, self.ssh, self.activity, self._is_port_free
        )
        self.reconnect = AutoReconnectController(
            self.store, self.sessions, self.activity, self.settings, sleep=sleep
        )
        self.poller = HealthPoller(
            self.store, self.sessions, self.reconnect, self.activity, self.settings, sleep=sleep
        )
        self._host_tasks: Dict[str, Set[asyncio.Task]] = {}

        self.store.load()

    # lifecycle

    def start(self) -> None:
        """Start health polling. Must be called from the event loop."""
        self.poller.start()

    async def shutdown_all(self) -> None:
        """Disconnect every host."""
        for host in self.store.hosts:
            await self.disconnect_host(host.id)

    async def shutdown(self) -> None:
        """Stop polling and retries, then tear down every master."""
        await self.poller.stop()
        await self.reconnect.cancel_all()
        pending = [t for tasks in self._host_tasks.values() for t in tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self.shutdown_all()

    # per-host dispatch

    def dispatch(self, host_id: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run coro as a background task tracked under host_id."""
        task = asyncio.create_task(coro)
        self._host_tasks.setdefault(host_id, set()).add(task)
        task.add_done_callback(lambda t: self._forget_task(host_id, t))
        return task

    def host_tasks(self, host_id: str) -> List[asyncio.Task]:
        return [t for t in self._host_tasks.get(host_id, ()) if not t.done()]

    async def wait_host(self, host_id: str) -> None:
        """Wait for every task dispatched for a host, including ones it spawns."""
        while True:
            tasks = self.host_tasks(host_id)
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    def _forget_task(self, host_id: str, task: asyncio.Task) -> None:
        tasks = self._host_tasks.get(host_id)
        if tasks is not None:
            tasks.discard(task)
            if not tasks:
                del self._host_tasks[host_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                f"Background task for host {host_id} failed",
                exc=task.exception(),
                console_output=False,
            )

    # hosts

    def add_host(self, alias: str) -> Optional[HostProfile]:
        trimmed = alias.strip()
        if not trimmed:
            return None
        host = HostProfile(alias=trimmed)
        self.store.add_host(host)
        self.activity.info(f"Added host {trimmed}")
        return host

    def update_host_alias(self, host_id: str, alias: str) -> bool:
        """Rename a host; its old master is torn down and runtime state reset."""
        trimmed = alias.strip()
        if not trimmed:
            return False
        host = self.store.host(host_id)
        if host is None or host.alias == trimmed:
            return False
        self.dispatch(host_id, self.sessions.disconnect_host(host.model_copy(deep=True)))

        def rename(h: HostProfile) -> None:
            h.alias = trimmed
            h.deactivate_tunnels()

        self.store.update_host(host_id, rename)
        self.store.invalidate_runtime(host_id)
        self.activity.info(f"Updated host alias to {trimmed}")
        return True

    def update_host_forwardings(self, host_id: str, respects_config_forwardings: bool) -> bool:
        """Change ClearAllForwardings handling; a running master is dropped to apply it."""
        host = self.store.host(host_id)
        if host is None:
            return False
        snapshot = host.model_copy(deep=True)

        def apply(h: HostProfile) -> None:
            h.respects_config_forwardings = respects_config_forwardings

        self.store.update_host(host_id, apply)
        if self.store.is_master_running(host_id):
            self.dispatch(host_id, self.sessions.disconnect_host(snapshot))
        state = "enabled" if respects_config_forwardings else "disabled"
        self.activity.info(f"Updated config forwardings for {host.alias}: {state}")
        return True

    def remove_host(self, host_id: str) -> Optional[HostProfile]:
        host = self.store.host(host_id)
        if host is None:
            return None
        self.dispatch(host_id, self.sessions.disconnect_host(host.model_copy(deep=True)))
        self.store.remove_host(host_id)
        self.activity.info(f"Removed host {host.alias}")
        return host

    async def connect_host(self, host_id: str) -> bool:
        host = self.store.host(host_id)
        if host is None:
            return False
        return await self.sessions.ensure_master(host)

    async def disconnect_host(self, host_id: str) -> bool:
        host = self.store.host(host_id)
        if host is None:
            return False
        return await self.sessions.disconnect_host(host)

    async def inspect_config(self, host_id: str) -> Optional[ExecResult]:
        """`ssh -G` output for a host's alias."""
        host = self.store.host(host_id)
        if host is None:
            return None
        return await self.ssh.inspect(host.alias)

    # tunnels

    def add_tunnel(self, host_id: str, spec: TunnelSpec) -> bool:
        added = self.store.update_host(host_id, lambda h: h.tunnels.append(spec))
        self.store.clear_error(spec.id)
        host = self.store.host(host_id)
        if host is not None:
            self.activity.info(f"Added tunnel {spec.display_summary} for {host.alias}")
        return added

    def update_tunnel(self, host_id: str, tunnel_id: str, updated: TunnelSpec) -> bool:
        """Replace a tunnel's forwarding fields; an active tunnel is stopped first."""
        host = self.store.host(host_id)
        existing = host.tunnel(tunnel_id) if host else None
        if host is None or existing is None:
            return False
        previous = existing.model_copy()
        if previous.is_active:
            self.dispatch(host_id, self.sessions.stop_tunnel(host.model_copy(deep=True), previous))

        def apply(h: HostProfile) -> None:
            tunnel = h.tunnel(tunnel_id)
            if tunnel is None:
                return
            tunnel.type = updated.type
            tunnel.local_port = updated.local_port
            tunnel.remote_host = updated.remote_host
            tunnel.remote_port = updated.remote_port
            tunnel.is_active = False

        self.store.update_host(host_id, apply)
        self.store.clear_error(tunnel_id)
        self.activity.info(f"Updated tunnel {previous.display_summary} for {host.alias}")
        return True

    def duplicate_tunnel(self, host_id: str, tunnel_id: str) -> Optional[TunnelSpec]:
        """Copy a tunnel with a fresh id, placed right after the original."""
        host = self.store.host(host_id)
        index = host.tunnel_index(tunnel_id) if host else None
        if host is None or index is None:
            return None
        existing = host.tunnels[index]
        duplicate = existing.duplicate()
        self.store.update_host(host_id, lambda h: h.tunnels.insert(index + 1, duplicate))
        self.store.clear_error(duplicate.id)
        self.activity.info(f"Duplicated tunnel {existing.display_summary} for {host.alias}")
        return duplicate

    def remove_tunnel(self, host_id: str, tunnel_id: str) -> bool:
        host = self.store.host(host_id)
        tunnel = host.tunnel(tunnel_id) if host else None
        if host is None or tunnel is None:
            return False
        if tunnel.is_active:
            self.dispatch(
                host_id, self.sessions.stop_tunnel(host.model_copy(deep=True), tunnel.model_copy())
            )

        def drop(h: HostProfile) -> None:
            h.tunnels = [t for t in h.tunnels if t.id != tunnel_id]

        self.store.update_host(host_id, drop)
        self.store.clear_error(tunnel_id)
        self.activity.info(f"Removed tunnel {tunnel.display_summary} for {host.alias}")
        return True

    def toggle_tunnel(self, host_id: str, tunnel_id: str) -> Optional[asyncio.Task]:
        """Stop the tunnel if active, else start it, as a dispatched task."""
        host = self.store.host(host_id)
        tunnel = host.tunnel(tunnel_id) if host else None
        if host is None or tunnel is None:
            return None
        if tunnel.is_active:
            return self.dispatch(host_id, self.sessions.stop_tunnel(host, tunnel))
        return self.dispatch(host_id, self.sessions.start_tunnel(host, tunnel))

    async def start_tunnel(self, host_id: str, tunnel_id: str) -> Optional[StartOutcome]:
        host = self.store.host(host_id)
        tunnel = host.tunnel(tunnel_id) if host else None
        if host is None or tunnel is None:
            return None
        return await self.sessions.start_tunnel(host, tunnel)

    async def stop_tunnel(self, host_id: str, tunnel_id: str) -> bool:
        host = self.store.host(host_id)
        tunnel = host.tunnel(tunnel_id) if host else None
        if host is None or tunnel is None:
            return False
        return await self.sessions.stop_tunnel(host, tunnel)

    async def start_all_tunnels(self, host_id: str) -> None:
        host = self.store.host(host_id)
        if host is None:
            return
        self.activity.info(f"Starting all tunnels for {host.alias}")
        for tunnel in list(host.tunnels):
            if not tunnel.is_active:
                await self.sessions.start_tunnel(host, tunnel)

    async def stop_all_tunnels(self, host_id: str) -> None:
        host = self.store.host(host_id)
        if host is None:
            return
        self.activity.info(f"Stopping all tunnels for {host.alias}")
        for tunnel in list(host.tunnels):
            if tunnel.is_active:
                await self.sessions.stop_tunnel(host, tunnel)

    # lookup

    def find_host(self, ref: str) -> Optional[HostProfile]:
        """Resolve a host by id, alias or unique id prefix."""
        hosts = self.store.hosts
        for host in hosts:
            if host.id == ref:
                return host
        for host in hosts:
            if host.alias == ref:
                return host
        matches = [h for h in hosts if h.id.startswith(ref)] if ref else []
        return matches[0] if len(matches) == 1 else None

    @staticmethod
    def find_tunnel(host: HostProfile, ref: str) -> Optional[TunnelSpec]:
        """Resolve a tunnel by id, 1-based position or unique id prefix."""
        tunnel = host.tunnel(ref)
        if tunnel is not None:
            return tunnel
        if ref.isdigit():
            position = int(ref)
            if 1 <= position <= len(host.tunnels):
                return host.tunnels[position - 1]
            return None
        matches = [t for t in host.tunnels if t.id.startswith(ref)] if ref else []
        return matches[0] if len(matches) == 1 else None

    # read side

    def local_port_in_use(self, port: int) -> bool:
        return not self._is_port_free(port)

    @property
    def control_socket_base_path(self) -> str:
        return self.control_sockets.base_path

    @property
    def last_error(self) -> Optional[str]:
        return self.activity.last_error

    @property
    def logs(self) -> List[LogEntry]:
        return self.activity.entries

    def clear_logs(self) -> None:
        self.activity.clear()

    def subscribe(self, callback: Callable[[LogEntry], None]) -> Callable[[], None]:
        return self.activity.subscribe(callback)

    def host_status_label(self, host_id: str) -> str:
        host = self.store.host(host_id)
        if host is None:
            return host_status_label(False)
        return host_status_label(self.store.runtime_snapshot(host).is_master_running)

    def host_indicator(self, host_id: str) -> IndicatorState:
        return host_indicator_state(
            self.store.is_reconnecting(host_id), self.store.is_master_running(host_id)
        )

    def tunnel_indicator(self, host_id: str, tunnel_id: str) -> Optional[IndicatorState]:
        tunnel = self.store.tunnel(host_id, tunnel_id)
        if tunnel is None:
            return None
        return tunnel_indicator_state(
            tunnel,
            host_reconnecting=self.store.is_reconnecting(host_id),
            has_error=self.store.has_error(tunnel_id),
            local_port_in_use=self.local_port_in_use,
        )

    def overall_indicator(self) -> Optional[IndicatorState]:
        return overall_indicator_state(
            (self.store.is_reconnecting(h.id), self.store.is_master_running(h.id))
            for h in self.store.hosts
        )

    def snapshot(self) -> Dict[str, Any]:
        """Plain-data view of all hosts, tunnels and indicators."""
        hosts = []
        for host in self.store.hosts:
            runtime = self.store.runtime_snapshot(host)
            tunnels = []
            for tunnel in host.tunnels:
                tunnels.append(
                    {
                        **tunnel.model_dump(mode="json"),
                        "is_active": tunnel.is_active,
                        "summary": tunnel.display_summary,
                        "has_error": self.store.has_error(tunnel.id),
                        "reconnecting": self.store.is_tunnel_reconnecting(host.id, tunnel.id),
                        "indicator": self.tunnel_indicator(host.id, tunnel.id).value,
                    }
                )
            hosts.append(
                {
                    "id": host.id,
                    "alias": host.alias,
                    "respects_config_forwardings": host.respects_config_forwardings,
                    "status": host_status_label(runtime.is_master_running),
                    "indicator": self.host_indicator(host.id).value,
                    "reconnecting": self.store.is_reconnecting(host.id),
                    **runtime.to_dict(),
                    "tunnels": tunnels,
                }
            )
        overall = self.overall_indicator()
        return {
            "hosts": hosts,
            "indicator": overall.value if overall else None,
            "last_error": self.activity.last_error,
            "control_socket_base": self.control_socket_base_path,
        }

    # settings

    def set_ssh_binary_path(self, path: str) -> None:
        self.settings.set("ssh.binary_path", path)

    def reset_ssh_binary_path(self) -> None:
        self.settings.reset_ssh_binary_path()
        self.activity.info(f"Reset SSH binary to {DEFAULT_SSH_PATH}")

    def set_auto_reconnect(
        self,
        enabled: Optional[bool] = None,
        max_attempts: Optional[int] = None,
        delay_seconds: Optional[float] = None,
    ) -> None:
        self.settings.update_auto_reconnect(enabled, max_attempts, delay_seconds)

    def reload_settings(self) -> None:
        """Re-read the settings file; takes effect on the next command or tick."""
        self.settings.reload()
        if isinstance(self.executor, SubprocessExecutor):
            self.executor.timeout = self.settings.command_timeout
