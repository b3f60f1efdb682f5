# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pydantic models for tunnelctl settings (~/.config/tunnelctl/config.yml)."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_SSH_PATH = "/usr/bin/ssh"


class SSHSettings(BaseModel):
    """How the ssh binary is invoked."""

    binary_path: str = DEFAULT_SSH_PATH
    control_persist_seconds: int = Field(default=600, ge=0)
    command_timeout_seconds: float = Field(default=60.0, gt=0)


class AutoReconnectSettings(BaseModel):
    """Recovery after a master connection drops unexpectedly.

    max_attempts: 0 means retry until the master is back.
    delay_seconds: Pause between attempts, never less than one second in use.
    """

    enabled: bool = False
    max_attempts: int = Field(default=5, ge=0)
    delay_seconds: float = Field(default=6.0, ge=0)


class PollingSettings(BaseModel):
    """Health poll timing."""

    interval_seconds: float = Field(default=10.0, gt=0)


class PathSettings(BaseModel):
    """Optional overrides for on-disk locations."""

    hosts_file: Optional[str] = None
    control_dir: Optional[str] = None


class DaemonSettings(BaseModel):
    """tunnelctld socket location."""

    socket_path: Optional[str] = None


class SettingsModel(BaseModel):
    """Root settings model."""

    model_config = ConfigDict(extra="allow")  # Allow extra fields for forward compatibility

    ssh: SSHSettings = Field(default_factory=SSHSettings)
    auto_reconnect: AutoReconnectSettings = Field(default_factory=AutoReconnectSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    paths: PathSettings = Field(default_factory=PathSettings)
    daemon: DaemonSettings = Field(default_factory=DaemonSettings)
