# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Centralized path definitions for tunnelctl.

This module provides a single source of truth for all paths used by the
CLI and the tunnelctld daemon:

- HostPaths: Per-user paths (XDG config, data and runtime directories)
- TempPaths: Shared temp locations used when per-user paths are too long

Usage:
    from tunnelctl.paths import HostPaths

    config_file = HostPaths.config_file()
    socket = HostPaths.daemon_socket()
"""

import os
import platform
from pathlib import Path


class HostPaths:
    """Paths on the machine where tunnelctl runs."""

    # XDG config directory
    @staticmethod
    def config_dir() -> Path:
        """~/.config/tunnelctl/"""
        xdg = os.getenv("XDG_CONFIG_HOME")
        if xdg:
            return Path(xdg) / "tunnelctl"
        return Path.home() / ".config" / "tunnelctl"

    @staticmethod
    def config_file() -> Path:
        """~/.config/tunnelctl/config.yml"""
        return HostPaths.config_dir() / "config.yml"

    # XDG data directory
    @staticmethod
    def data_dir() -> Path:
        """~/.local/share/tunnelctl/"""
        xdg = os.getenv("XDG_DATA_HOME")
        if xdg:
            return Path(xdg) / "tunnelctl"
        return Path.home() / ".local" / "share" / "tunnelctl"

    @staticmethod
    def hosts_file() -> Path:
        """~/.local/share/tunnelctl/hosts.json - Persisted host list."""
        return HostPaths.data_dir() / "hosts.json"

    @staticmethod
    def control_dir() -> Path:
        """~/.local/share/tunnelctl/control/ - SSH control sockets."""
        return HostPaths.data_dir() / "control"

    @staticmethod
    def log_dir() -> Path:
        """~/.local/share/tunnelctl/logs/"""
        return HostPaths.data_dir() / "logs"

    # XDG runtime directory
    @staticmethod
    def runtime_dir() -> Path:
        """XDG runtime dir (platform-aware: macOS vs Linux)."""
        xdg = os.getenv("XDG_RUNTIME_DIR")
        if xdg:
            return Path(xdg)
        if platform.system() == "Darwin":
            # macOS has no /run/user
            return Path(os.getenv("TMPDIR", "/tmp").rstrip("/"))
        return Path(f"/run/user/{os.getuid()}")

    @staticmethod
    def daemon_dir() -> Path:
        """Runtime directory for the tunnelctld daemon."""
        return HostPaths.runtime_dir() / "tunnelctld"

    @staticmethod
    def daemon_socket() -> Path:
        """Main tunnelctld daemon socket."""
        return HostPaths.daemon_dir() / "tunnelctld.sock"

    @staticmethod
    def systemd_unit() -> Path:
        """~/.config/systemd/user/tunnelctld.service"""
        return Path.home() / ".config" / "systemd" / "user" / "tunnelctld.service"


class TempPaths:
    """Shared temp locations."""

    # Short enough for any control socket name
    CONTROL_DIR = Path("/tmp/tunnels-control")
