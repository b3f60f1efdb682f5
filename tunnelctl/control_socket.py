# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Control socket addressing for ssh connection multiplexing.

Every host alias maps to a short, deterministic socket name under one base
directory. ssh appends a random suffix while binding the master socket and
unix socket paths have a hard length ceiling, so the base directory is
checked against a worst-case sample path before anything is created.
"""

import hashlib
import logging
from pathlib import Path
from typing import Optional

from tunnelctl.paths import HostPaths, TempPaths

logger = logging.getLogger(__name__)

HASH_LENGTH = 16
MAX_SOCKET_PATH_LENGTH = 100
# ssh binds to "<ControlPath>.<random>" before renaming into place
RANDOM_SUFFIX = ".XXXXXXXXXXXXXXX"
SOCKET_PREFIX = "ctl-"


def fits_socket_path_limit(base: Path) -> bool:
    """Check whether the longest socket path under base stays within the limit."""
    sample = base / f"{SOCKET_PREFIX}{'a' * HASH_LENGTH}"
    return len(str(sample) + RANDOM_SUFFIX) <= MAX_SOCKET_PATH_LENGTH


class ControlSocketManager:
    """Chooses the control socket directory and derives per-alias paths."""

    def __init__(self, preferred_base: Optional[Path] = None, fallback_base: Optional[Path] = None):
        preferred = preferred_base or HostPaths.control_dir()
        fallback = fallback_base or TempPaths.CONTROL_DIR

        if fits_socket_path_limit(preferred):
            self.base = preferred
        else:
            logger.debug(f"Control dir {preferred} too long for sockets, using {fallback}")
            self.base = fallback

        try:
            self.base.mkdir(parents=True, exist_ok=True, mode=0o700)
        except OSError as e:
            logger.error(f"Failed to create control socket directory: {e}")

    @property
    def base_path(self) -> str:
        return str(self.base)

    def socket_path(self, alias: str) -> str:
        """Deterministic control socket path for an ssh alias."""
        digest = hashlib.sha1(alias.encode("utf-8")).hexdigest()
        return str(self.base / f"{SOCKET_PREFIX}{digest[:HASH_LENGTH]}")
