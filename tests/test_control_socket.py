# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for tunnelctl/control_socket.py"""

import hashlib
from pathlib import Path

from tunnelctl.control_socket import (
    MAX_SOCKET_PATH_LENGTH,
    RANDOM_SUFFIX,
    ControlSocketManager,
    fits_socket_path_limit,
)


class TestSocketPath:
    """Per-alias socket naming"""

    def test_deterministic(self, tmp_path):
        manager = ControlSocketManager(tmp_path / "c", fallback_base=tmp_path / "f")
        assert manager.socket_path("prod") == manager.socket_path("prod")

    def test_distinct_aliases_get_distinct_paths(self, tmp_path):
        manager = ControlSocketManager(tmp_path / "c", fallback_base=tmp_path / "f")
        assert manager.socket_path("prod") != manager.socket_path("staging")

    def test_name_is_prefixed_truncated_sha1(self, tmp_path):
        manager = ControlSocketManager(tmp_path / "c", fallback_base=tmp_path / "f")
        digest = hashlib.sha1(b"prod").hexdigest()[:16]
        assert Path(manager.socket_path("prod")).name == f"ctl-{digest}"
        assert Path(manager.socket_path("prod")).parent == manager.base


class TestBaseSelection:
    """Choice between preferred and fallback directory"""

    def test_short_preferred_base_is_used_and_created(self, tmp_path):
        preferred = tmp_path / "c"
        manager = ControlSocketManager(preferred, fallback_base=tmp_path / "f")

        assert manager.base == preferred
        assert manager.base_path == str(preferred)
        assert preferred.is_dir()
        assert preferred.stat().st_mode & 0o777 == 0o700

    def test_long_preferred_base_falls_back(self, tmp_path):
        preferred = tmp_path / ("x" * MAX_SOCKET_PATH_LENGTH)
        fallback = tmp_path / "f"
        manager = ControlSocketManager(preferred, fallback_base=fallback)

        assert manager.base == fallback
        assert not preferred.exists()

    def test_limit_accounts_for_ssh_random_suffix(self):
        # "/" + "ctl-" + 16 hex chars + suffix
        overhead = 1 + 4 + 16 + len(RANDOM_SUFFIX)
        fits = Path("/" + "a" * (MAX_SOCKET_PATH_LENGTH - overhead - 1))
        too_long = Path("/" + "a" * (MAX_SOCKET_PATH_LENGTH - overhead))

        assert fits_socket_path_limit(fits)
        assert not fits_socket_path_limit(too_long)

    def test_mkdir_failure_is_logged_not_raised(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        manager = ControlSocketManager(blocker / "c", fallback_base=tmp_path / "f")
        assert manager.base == blocker / "c"
