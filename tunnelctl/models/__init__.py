# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pydantic models for tunnelctl."""

from tunnelctl.models.host_profile import HostProfile, TunnelSpec, TunnelType
from tunnelctl.models.settings import SettingsModel

__all__ = ["HostProfile", "SettingsModel", "TunnelSpec", "TunnelType"]
