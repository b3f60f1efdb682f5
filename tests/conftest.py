# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pytest fixtures for tunnelctl unit tests.

Nothing here runs a real ssh: FakeSSH stands in for the executor and
simulates a single control master, and port probes are plain callables.
"""

import asyncio
import os
import tempfile
from typing import Dict, List, Tuple

# Keep test runs out of the user's log directory
os.environ.setdefault(
    "TUNNELCTL_LOG_FILE",
    os.path.join(tempfile.mkdtemp(prefix="tunnelctl-tests-"), "tunnelctl.log"),
)

import pytest  # noqa: E402

from tunnelctl.control_socket import ControlSocketManager  # noqa: E402
from tunnelctl.core.store import HostRepository  # noqa: E402
from tunnelctl.executor import ExecResult  # noqa: E402
from tunnelctl.manager import TunnelManager  # noqa: E402
from tunnelctl.models.host_profile import TunnelSpec, TunnelType  # noqa: E402
from tunnelctl.settings import Settings  # noqa: E402

OK = ExecResult(0)
NO_MASTER = ExecResult(255, stderr="Control socket connect(/tmp/ctl): No such file or directory")


def failure(stderr: str = "ssh: connect to host prod port 22: Connection refused") -> ExecResult:
    return ExecResult(255, stderr=stderr)


def verb_of(args: List[str]) -> str:
    """check/forward/cancel/exit for -O calls, master for -MNf, inspect for -G."""
    if "-O" in args:
        return args[args.index("-O") + 1]
    if args and args[0] == "-MNf":
        return "master"
    if args and args[0] == "-G":
        return "inspect"
    return "unknown"


class FakeSSH:
    """Executor that simulates one ssh control master.

    Queued results for a verb are returned first, in order, then the
    per-verb default, then the simulation: check succeeds while the
    master is up, everything else succeeds.
    """

    def __init__(self):
        self.calls: List[Tuple[str, List[str]]] = []
        self.master_up = False
        self.queued: Dict[str, List[ExecResult]] = {}
        self.defaults: Dict[str, ExecResult] = {}

    def queue(self, verb: str, *results: ExecResult) -> None:
        self.queued.setdefault(verb, []).extend(results)

    def verbs(self) -> List[str]:
        return [verb_of(args) for _, args in self.calls]

    def args_for(self, verb: str) -> List[List[str]]:
        return [args for _, args in self.calls if verb_of(args) == verb]

    def run(self, path: str, args: List[str]) -> ExecResult:
        self.calls.append((path, list(args)))
        verb = verb_of(args)
        if self.queued.get(verb):
            result = self.queued[verb].pop(0)
        elif verb in self.defaults:
            result = self.defaults[verb]
        elif verb == "check":
            result = OK if self.master_up else NO_MASTER
        else:
            result = OK

        if verb == "master" and result.success:
            self.master_up = True
        elif verb == "exit":
            self.master_up = False
        return result


class FakePorts:
    """Port probe; ports in busy read as taken."""

    def __init__(self):
        self.busy = set()
        self.probed: List[int] = []

    def __call__(self, port: int) -> bool:
        self.probed.append(port)
        return port not in self.busy


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and only yields."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


def local_tunnel(local_port: int = 8080, host: str = "127.0.0.1", remote_port: int = 80) -> TunnelSpec:
    return TunnelSpec(
        type=TunnelType.LOCAL, local_port=local_port, remote_host=host, remote_port=remote_port
    )


@pytest.fixture
def ssh():
    return FakeSSH()


@pytest.fixture
def ports():
    return FakePorts()


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def settings(tmp_path):
    return Settings(config_path=tmp_path / "config.yml")


@pytest.fixture
def control_sockets(tmp_path):
    return ControlSocketManager(tmp_path / "control", fallback_base=tmp_path / "fallback")


@pytest.fixture
def make_manager(tmp_path, settings, ssh, ports, sleeper, control_sockets):
    """Build TunnelManagers that share the same hosts file."""

    def factory():
        return TunnelManager(
            settings=settings,
            executor=ssh,
            is_port_free=ports,
            repository=HostRepository(tmp_path / "hosts.json"),
            control_sockets=control_sockets,
            sleep=sleeper,
        )

    return factory


@pytest.fixture
def manager(make_manager):
    return make_manager()
