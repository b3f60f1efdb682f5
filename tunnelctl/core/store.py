# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Authoritative host/tunnel state.

HostStore owns the configured hosts, the per-host runtime state (control
socket path and whether a master is up), per-tunnel error flags and the
per-host retry sessions. Every mutation of the host list is written back
through HostRepository as a full atomic rewrite.
"""

from __future__ import annotations

import asyncio
import json
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set

from pydantic import TypeAdapter, ValidationError

from tunnelctl.control_socket import ControlSocketManager
from tunnelctl.core.activity import ActivityLog
from tunnelctl.models.host_profile import HostProfile, TunnelSpec

_HOST_LIST = TypeAdapter(List[HostProfile])


class PersistenceError(Exception):
    """Raised when the host list cannot be read or written."""


class HostRepository:
    """JSON file holding the full host list."""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> List[HostProfile]:
        """Read the host list; a missing file is an empty list.

        Raises:
            PersistenceError: If the file exists but cannot be read or parsed
        """
        if not self.path.exists():
            return []
        try:
            hosts = _HOST_LIST.validate_json(self.path.read_bytes())
        except (OSError, ValidationError) as e:
            raise PersistenceError(str(e)) from e
        for host in hosts:
            host.deactivate_tunnels()
        return hosts

    def save(self, hosts: List[HostProfile]) -> None:
        """Atomically replace the file with the given hosts."""
        payload = [
            host.model_dump(mode="json", by_alias=True, exclude_none=True) for host in hosts
        ]
        tmp = self.path.with_suffix(self.path.suffix + f".tmp_{int(time.time() * 1e6)}")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2))
            os.replace(tmp, self.path)
        except OSError as e:
            try:
                tmp.unlink()
            except OSError:
                pass
            raise PersistenceError(str(e)) from e


@dataclass
class HostRuntimeState:
    """Connection state of one host. Never persisted."""

    control_socket_path: str
    is_master_running: bool = False

    def to_dict(self) -> dict:
        return {
            "control_socket_path": self.control_socket_path,
            "is_master_running": self.is_master_running,
        }


@dataclass(eq=False)
class RetrySession:
    """An auto-reconnect loop in flight for one host."""

    host_id: str
    tunnel_ids: Set[str]
    attempt: int = 0
    task: Optional[asyncio.Task] = field(default=None, repr=False)


class HostStore:
    """In-memory model of hosts, tunnels and their runtime state."""

    def __init__(
        self,
        repository: HostRepository,
        control_sockets: ControlSocketManager,
        activity: ActivityLog,
    ):
        self.repository = repository
        self.control_sockets = control_sockets
        self.activity = activity
        self._hosts: List[HostProfile] = []
        self._runtime: Dict[str, HostRuntimeState] = {}
        self._tunnel_errors: Set[str] = set()
        self._retry_sessions: Dict[str, RetrySession] = {}

    # persistence

    def load(self) -> None:
        try:
            self._hosts = self.repository.load()
        except PersistenceError as e:
            self.activity.error(f"Failed to load config: {e}")
            self._hosts = []

    def persist(self) -> None:
        try:
            self.repository.save(self._hosts)
        except PersistenceError as e:
            self.activity.error(f"Failed to save config: {e}")

    # hosts and tunnels

    @property
    def hosts(self) -> List[HostProfile]:
        return list(self._hosts)

    def host(self, host_id: str) -> Optional[HostProfile]:
        for host in self._hosts:
            if host.id == host_id:
                return host
        return None

    def tunnel(self, host_id: str, tunnel_id: str) -> Optional[TunnelSpec]:
        host = self.host(host_id)
        return host.tunnel(tunnel_id) if host else None

    def add_host(self, host: HostProfile) -> None:
        self._hosts.append(host)
        self.persist()

    def remove_host(self, host_id: str) -> Optional[HostProfile]:
        host = self.host(host_id)
        if host is None:
            return None
        self._hosts = [h for h in self._hosts if h.id != host_id]
        self._runtime.pop(host_id, None)
        self.clear_errors(t.id for t in host.tunnels)
        self._retry_sessions.pop(host_id, None)
        self.persist()
        return host

    def update_host(self, host_id: str, mutation: Callable[[HostProfile], None]) -> bool:
        """Apply mutation to a host and persist; False if the host is gone."""
        host = self.host(host_id)
        if host is None:
            return False
        mutation(host)
        self.persist()
        return True

    def set_tunnel_active(self, host_id: str, tunnel_id: str, active: bool) -> None:
        def mutate(host: HostProfile) -> None:
            tunnel = host.tunnel(tunnel_id)
            if tunnel is not None:
                tunnel.is_active = active

        self.update_host(host_id, mutate)

    def deactivate_tunnels(self, host_id: str) -> None:
        self.update_host(host_id, lambda host: host.deactivate_tunnels())

    def has_active_tunnels(self, host_id: str) -> bool:
        host = self.host(host_id)
        return bool(host and host.active_tunnels())

    # runtime state

    def runtime_state(self, host: HostProfile) -> HostRuntimeState:
        """Runtime state for a host, created on first access."""
        state = self._runtime.get(host.id)
        if state is None:
            state = HostRuntimeState(self.control_sockets.socket_path(host.alias))
            self._runtime[host.id] = state
        return state

    def runtime_snapshot(self, host: HostProfile) -> HostRuntimeState:
        """Runtime state without creating it; never-run hosts read as disconnected."""
        state = self._runtime.get(host.id)
        if state is not None:
            return HostRuntimeState(state.control_socket_path, state.is_master_running)
        return HostRuntimeState(self.control_sockets.socket_path(host.alias))

    def has_runtime_state(self, host_id: str) -> bool:
        return host_id in self._runtime

    def invalidate_runtime(self, host_id: str) -> None:
        self._runtime.pop(host_id, None)

    def set_master_running(self, host_id: str, running: bool) -> None:
        state = self._runtime.get(host_id)
        if state is not None:
            state.is_master_running = running

    def is_master_running(self, host_id: str) -> bool:
        state = self._runtime.get(host_id)
        return bool(state and state.is_master_running)

    # tunnel error flags

    def mark_error(self, tunnel_id: str) -> None:
        self._tunnel_errors.add(tunnel_id)

    def clear_error(self, tunnel_id: str) -> None:
        self._tunnel_errors.discard(tunnel_id)

    def clear_errors(self, tunnel_ids: Iterable[str]) -> None:
        self._tunnel_errors.difference_update(tunnel_ids)

    def has_error(self, tunnel_id: str) -> bool:
        return tunnel_id in self._tunnel_errors

    # retry sessions

    def begin_retry(self, host_id: str, tunnel_ids: Iterable[str]) -> Optional[RetrySession]:
        """Open a retry session, or None if one is already running for the host."""
        if host_id in self._retry_sessions:
            return None
        session = RetrySession(host_id, set(tunnel_ids))
        self._retry_sessions[host_id] = session
        return session

    def end_retry(self, session: RetrySession) -> None:
        """Close a session if it is still the current one for its host."""
        if self._retry_sessions.get(session.host_id) is session:
            del self._retry_sessions[session.host_id]

    def clear_retry(self, host_id: str) -> None:
        self._retry_sessions.pop(host_id, None)

    def retry_session(self, host_id: str) -> Optional[RetrySession]:
        return self._retry_sessions.get(host_id)

    def retry_sessions(self) -> List[RetrySession]:
        return list(self._retry_sessions.values())

    def is_reconnecting(self, host_id: str) -> bool:
        return host_id in self._retry_sessions

    def is_tunnel_reconnecting(self, host_id: str, tunnel_id: str) -> bool:
        session = self._retry_sessions.get(host_id)
        return bool(session and tunnel_id in session.tunnel_ids)
