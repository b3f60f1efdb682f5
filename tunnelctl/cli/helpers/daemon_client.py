# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Client side of the tunnelctld socket protocol."""

import json
import socket
from pathlib import Path
from typing import Any, Dict, Optional

from tunnelctl.cli.helpers.utils import DaemonError, DaemonNotRunningError

# Connecting a master can take a while (password prompts are not supported,
# but slow DNS and ProxyJump chains are common)
REQUEST_TIMEOUT = 120.0

_ERROR_HINTS = {
    "host_not_found": "tunnelctl host list",
    "tunnel_not_found": "tunnelctl status",
}


def _get_daemon_socket_path() -> Path:
    from tunnelctl.settings import get_config

    return get_config().socket_path


def send_daemon_command(command: dict, timeout: float = REQUEST_TIMEOUT) -> Dict[str, Any]:
    """Send a command to tunnelctld and return its response.

    Raises:
        DaemonNotRunningError: If the socket is missing or refuses connections
    """
    socket_path = _get_daemon_socket_path()
    if not socket_path.exists():
        raise DaemonNotRunningError(str(socket_path))

    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        try:
            sock.connect(str(socket_path))
        except (ConnectionRefusedError, FileNotFoundError):
            raise DaemonNotRunningError(str(socket_path))
        sock.settimeout(timeout)
        sock.sendall((json.dumps(command) + "\n").encode())

        data = b""
        while b"\n" not in data:
            chunk = sock.recv(4096)
            if not chunk:
                break
            data += chunk

        if data:
            return json.loads(data.decode().strip())
        return {"ok": False, "error": "No response from tunnelctld"}
    except (OSError, ValueError) as e:
        return {"ok": False, "error": str(e)}
    finally:
        sock.close()


def daemon_request(action: str, timeout: float = REQUEST_TIMEOUT, **params: Any) -> Dict[str, Any]:
    """Send an action and return the response, raising DaemonError unless ok."""
    command = {"action": action, **{k: v for k, v in params.items() if v is not None}}
    response = send_daemon_command(command, timeout=timeout)
    if not response.get("ok"):
        error: Optional[str] = response.get("error") or "unknown error"
        raise DaemonError(error, hint=_ERROR_HINTS.get(error))
    return response
