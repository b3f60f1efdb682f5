# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""ssh control-master verbs.

Builds the argument lists for the multiplexing verbs (check, forward,
cancel, exit), for starting a master, and for config inspection, then
runs them through an executor on a worker thread so the event loop is
never blocked on ssh.
"""

import asyncio
from typing import List, Protocol, Tuple

from tunnelctl.executor import ExecResult
from tunnelctl.models.host_profile import TunnelSpec, TunnelType
from tunnelctl.settings import Settings


class CommandExecutor(Protocol):
    def run(self, path: str, args: List[str]) -> ExecResult: ...


def tunnel_arguments(tunnel: TunnelSpec) -> List[str]:
    """Forwarding option for a tunnel, shared by forward and cancel."""
    host = tunnel.remote_host or ""
    remote_port = str(tunnel.remote_port) if tunnel.remote_port is not None else ""
    if tunnel.type == TunnelType.DYNAMIC:
        return ["-D", str(tunnel.local_port)]
    if tunnel.type == TunnelType.LOCAL:
        return ["-L", f"{tunnel.local_port}:{host}:{remote_port}"]
    return ["-R", f"{remote_port}:{host}:{tunnel.local_port}"]


def escape_option_value(value: str) -> str:
    """Escape spaces and backslashes for an ssh -o value."""
    return "".join("\\" + ch if ch in (" ", "\\") else ch for ch in value)


def check_arguments(socket_path: str, alias: str) -> List[str]:
    return ["-S", socket_path, "-O", "check", alias]


def control_arguments(verb: str, socket_path: str, alias: str, tunnel: TunnelSpec) -> List[str]:
    return ["-S", socket_path, "-O", verb, *tunnel_arguments(tunnel), alias]


def exit_arguments(socket_path: str, alias: str) -> List[str]:
    return ["-S", socket_path, "-O", "exit", alias]


def master_arguments(
    alias: str,
    socket_path: str,
    respects_config_forwardings: bool,
    control_persist: int = 600,
) -> List[str]:
    """Start a backgrounded master with no remote command.

    When config forwardings are not respected, every forward from
    ssh_config is cleared so only explicitly started tunnels exist.
    """
    args = [
        "-MNf",
        "-o",
        "ControlMaster=yes",
        "-o",
        f"ControlPersist={control_persist}",
    ]
    if not respects_config_forwardings:
        args += ["-o", "ClearAllForwardings=yes"]
    args += [
        "-o",
        f"ControlPath={escape_option_value(socket_path)}",
        "-o",
        "ExitOnForwardFailure=yes",
        alias,
    ]
    return args


def parse_config(output: str) -> List[Tuple[str, str]]:
    """Parse `ssh -G` output into (key, value) pairs."""
    pairs = []
    for line in output.split("\n"):
        parts = line.strip().split(None, 1)
        if len(parts) != 2:
            continue
        pairs.append((parts[0], parts[1].strip()))
    return pairs


class SSHControl:
    """Async facade over the control-master verbs."""

    def __init__(self, executor: CommandExecutor, settings: Settings):
        self.executor = executor
        self.settings = settings

    async def run(self, args: List[str]) -> ExecResult:
        loop = asyncio.get_running_loop()
        path = self.settings.resolved_ssh_path
        return await loop.run_in_executor(None, self.executor.run, path, list(args))

    async def check(self, socket_path: str, alias: str) -> ExecResult:
        return await self.run(check_arguments(socket_path, alias))

    async def start_master(
        self, alias: str, socket_path: str, respects_config_forwardings: bool
    ) -> ExecResult:
        return await self.run(
            master_arguments(
                alias,
                socket_path,
                respects_config_forwardings,
                self.settings.control_persist_seconds,
            )
        )

    async def forward(self, socket_path: str, alias: str, tunnel: TunnelSpec) -> ExecResult:
        return await self.run(control_arguments("forward", socket_path, alias, tunnel))

    async def cancel(self, socket_path: str, alias: str, tunnel: TunnelSpec) -> ExecResult:
        return await self.run(control_arguments("cancel", socket_path, alias, tunnel))

    async def exit(self, socket_path: str, alias: str) -> ExecResult:
        return await self.run(exit_arguments(socket_path, alias))

    async def inspect(self, alias: str) -> ExecResult:
        """Resolved ssh_config for an alias (`ssh -G`)."""
        return await self.run(["-G", alias])
