# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Local port availability checks."""

import socket

LOOPBACK = "127.0.0.1"


def is_port_free(port: int, host: str = LOOPBACK) -> bool:
    """Check if a local port can be bound.

    Args:
        port: Port number to check
        host: Address to bind (loopback by default)

    Returns:
        True if the bind succeeded, False if something already holds the port
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    except OSError:
        # Can't probe, assume free
        return True
    try:
        sock.bind((host, port))
        return True
    except OSError:
        return False
    finally:
        sock.close()


def is_port_in_use(port: int) -> bool:
    return not is_port_free(port)
