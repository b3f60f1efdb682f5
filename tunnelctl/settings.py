# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Centralized settings for tunnelctl."""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from tunnelctl.models.settings import DEFAULT_SSH_PATH, SettingsModel
from tunnelctl.paths import HostPaths

logger = logging.getLogger(__name__)


class Settings:
    """Manages settings from ~/.config/tunnelctl/config.yml."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or HostPaths.config_file()
        self._model = self._load()

    def _load(self) -> SettingsModel:
        """Load settings from file."""
        if not self.config_path.exists():
            return SettingsModel()

        try:
            with open(self.config_path) as f:
                raw_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {self.config_path}: {e}")
            return SettingsModel()

        if not isinstance(raw_config, dict):
            logger.warning(f"Ignoring {self.config_path}: expected a mapping")
            return SettingsModel()

        try:
            return SettingsModel.model_validate(raw_config)
        except ValidationError as e:
            logger.warning(f"Config validation errors: {e}")

        # Keep every section that validates on its own, defaults for the rest
        model = SettingsModel()
        for key, value in raw_config.items():
            try:
                model = SettingsModel.model_validate({**model.model_dump(), key: value})
            except ValidationError:
                logger.warning(f"Ignoring invalid '{key}' section in {self.config_path}")
        return model

    def reload(self) -> None:
        """Re-read the settings file."""
        self._model = self._load()

    def save(self) -> None:
        """Write the current settings back to the YAML file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w") as f:
            yaml.safe_dump(
                self._model.model_dump(exclude_none=True),
                f,
                default_flow_style=False,
                sort_keys=False,
            )

    @property
    def model(self) -> SettingsModel:
        return self._model

    def get(self, *keys, default=None) -> Any:
        """Get nested settings value.

        Example: settings.get("auto_reconnect", "max_attempts")
        """
        value: Any = self._model
        for key in keys:
            if hasattr(value, key):
                value = getattr(value, key)
            elif isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        # Convert Pydantic models to their values
        if hasattr(value, "model_dump"):
            return value.model_dump()
        return value

    def set(self, dotted_key: str, value: Any) -> None:
        """Validate and persist a single value, e.g. set("polling.interval_seconds", 5).

        Raises:
            KeyError: If the key does not name a known setting
            ValidationError: If the value is rejected by the model
        """
        keys = dotted_key.split(".")
        data = self._model.model_dump()
        target = data
        for key in keys[:-1]:
            if not isinstance(target.get(key), dict):
                raise KeyError(dotted_key)
            target = target[key]
        if keys[-1] not in target:
            raise KeyError(dotted_key)
        target[keys[-1]] = value

        self._model = SettingsModel.model_validate(data)
        self.save()

    # ssh

    @property
    def ssh_binary_path(self) -> str:
        return self._model.ssh.binary_path

    @property
    def resolved_ssh_path(self) -> str:
        """Configured ssh binary, or the default when blank."""
        trimmed = self._model.ssh.binary_path.strip()
        return trimmed or DEFAULT_SSH_PATH

    def reset_ssh_binary_path(self) -> None:
        self._model.ssh.binary_path = DEFAULT_SSH_PATH
        self.save()

    @property
    def control_persist_seconds(self) -> int:
        return self._model.ssh.control_persist_seconds

    @property
    def command_timeout(self) -> float:
        return self._model.ssh.command_timeout_seconds

    # auto-reconnect

    @property
    def auto_reconnect_enabled(self) -> bool:
        return self._model.auto_reconnect.enabled

    @property
    def auto_reconnect_max_attempts(self) -> int:
        return self._model.auto_reconnect.max_attempts

    @property
    def auto_reconnect_delay_seconds(self) -> float:
        return self._model.auto_reconnect.delay_seconds

    def update_auto_reconnect(
        self,
        enabled: Optional[bool] = None,
        max_attempts: Optional[int] = None,
        delay_seconds: Optional[float] = None,
    ) -> None:
        section = self._model.auto_reconnect.model_dump()
        if enabled is not None:
            section["enabled"] = enabled
        if max_attempts is not None:
            section["max_attempts"] = max_attempts
        if delay_seconds is not None:
            section["delay_seconds"] = delay_seconds
        self._model = SettingsModel.model_validate(
            {**self._model.model_dump(), "auto_reconnect": section}
        )
        self.save()

    # polling

    @property
    def poll_interval(self) -> float:
        return self._model.polling.interval_seconds

    # paths

    @property
    def hosts_file(self) -> Path:
        if self._model.paths.hosts_file:
            return Path(self._model.paths.hosts_file).expanduser()
        return HostPaths.hosts_file()

    @property
    def control_dir(self) -> Optional[Path]:
        """Preferred control socket directory, None for the default."""
        if self._model.paths.control_dir:
            return Path(self._model.paths.control_dir).expanduser()
        return None

    @property
    def socket_path(self) -> Path:
        """Get tunnelctld socket path."""
        if self._model.daemon.socket_path:
            return Path(self._model.daemon.socket_path).expanduser()
        return HostPaths.daemon_socket()


# Singleton instance
_config: Optional[Settings] = None


def get_config() -> Settings:
    """Get the global settings."""
    global _config
    if _config is None:
        _config = Settings()
    return _config
