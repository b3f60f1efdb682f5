# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pydantic models for the persisted host list (hosts.json).

Field names are snake_case in Python and camelCase on disk, so files
written by older releases keep loading.
"""

import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _new_id() -> str:
    return str(uuid.uuid4())


class TunnelType(str, Enum):
    """Kind of port forward."""

    LOCAL = "local"
    REMOTE = "remote"
    DYNAMIC = "dynamic"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class TunnelSpec(BaseModel):
    """A single port forward carried over a host's master connection.

    is_active is runtime-only: it is excluded from serialization and is
    always False after loading.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_id)
    type: TunnelType
    local_port: int = Field(alias="localPort", ge=1, le=65535)
    remote_host: Optional[str] = Field(default=None, alias="remoteHost")
    remote_port: Optional[int] = Field(default=None, alias="remotePort", ge=1, le=65535)
    is_active: bool = Field(default=False, exclude=True)

    @model_validator(mode="after")
    def check_remote_endpoint(self) -> "TunnelSpec":
        """Dynamic tunnels carry no remote endpoint; the others need both parts."""
        if self.type == TunnelType.DYNAMIC:
            if self.remote_host is not None or self.remote_port is not None:
                self.remote_host = None
                self.remote_port = None
        else:
            if self.remote_host is not None:
                self.remote_host = self.remote_host.strip()
            if not self.remote_host or self.remote_port is None:
                raise ValueError(
                    f"{self.type.value} tunnels require remoteHost and remotePort"
                )
        return self

    @property
    def display_summary(self) -> str:
        host = self.remote_host if self.remote_host is not None else "?"
        remote_port = str(self.remote_port) if self.remote_port is not None else "?"
        if self.type == TunnelType.DYNAMIC:
            return f"D {self.local_port}"
        if self.type == TunnelType.LOCAL:
            return f"L {self.local_port} -> {host}:{remote_port}"
        return f"R {remote_port} -> {host}:{self.local_port}"

    def duplicate(self) -> "TunnelSpec":
        """Copy with a fresh id, inactive."""
        return self.model_copy(update={"id": _new_id(), "is_active": False})


class HostProfile(BaseModel):
    """A remote host (an ssh config alias) and its tunnels."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_id)
    alias: str
    tunnels: List[TunnelSpec] = Field(default_factory=list)
    respects_config_forwardings: bool = Field(default=False, alias="respectsConfigForwardings")

    def tunnel(self, tunnel_id: str) -> Optional[TunnelSpec]:
        for tunnel in self.tunnels:
            if tunnel.id == tunnel_id:
                return tunnel
        return None

    def tunnel_index(self, tunnel_id: str) -> Optional[int]:
        for index, tunnel in enumerate(self.tunnels):
            if tunnel.id == tunnel_id:
                return index
        return None

    def active_tunnels(self) -> List[TunnelSpec]:
        return [t for t in self.tunnels if t.is_active]

    def deactivate_tunnels(self) -> None:
        for tunnel in self.tunnels:
            tunnel.is_active = False
