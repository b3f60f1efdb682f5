# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for tunnelctl/core/store.py"""

import json

import pytest

from tunnelctl.core.activity import ActivityLog
from tunnelctl.core.store import HostRepository, HostStore, PersistenceError
from tunnelctl.models.host_profile import HostProfile, TunnelSpec
from tests.conftest import local_tunnel


@pytest.fixture
def store(tmp_path, control_sockets):
    return HostStore(HostRepository(tmp_path / "hosts.json"), control_sockets, ActivityLog())


class TestHostRepository:
    """JSON persistence of the host list"""

    def test_missing_file_is_empty(self, tmp_path):
        assert HostRepository(tmp_path / "hosts.json").load() == []

    def test_save_writes_camel_case_without_runtime_flags(self, tmp_path):
        path = tmp_path / "hosts.json"
        tunnel = local_tunnel()
        tunnel.is_active = True
        host = HostProfile(alias="prod", tunnels=[tunnel, TunnelSpec(type="dynamic", local_port=1080)])

        HostRepository(path).save([host])
        data = json.loads(path.read_text())

        assert data == [
            {
                "id": host.id,
                "alias": "prod",
                "tunnels": [
                    {
                        "id": tunnel.id,
                        "type": "local",
                        "localPort": 8080,
                        "remoteHost": "127.0.0.1",
                        "remotePort": 80,
                    },
                    {"id": host.tunnels[1].id, "type": "dynamic", "localPort": 1080},
                ],
                "respectsConfigForwardings": False,
            }
        ]

    def test_save_leaves_no_temp_files(self, tmp_path):
        HostRepository(tmp_path / "hosts.json").save([HostProfile(alias="prod")])
        assert [p.name for p in tmp_path.iterdir()] == ["hosts.json"]

    def test_load_resets_active_flags(self, tmp_path):
        path = tmp_path / "hosts.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "id": "h1",
                        "alias": "prod",
                        "tunnels": [
                            {"id": "t1", "type": "dynamic", "localPort": 1080, "isActive": True}
                        ],
                    }
                ]
            )
        )
        hosts = HostRepository(path).load()

        assert hosts[0].tunnels[0].is_active is False
        assert hosts[0].respects_config_forwardings is False

    def test_malformed_file_raises(self, tmp_path):
        path = tmp_path / "hosts.json"
        path.write_text("{not json")
        with pytest.raises(PersistenceError):
            HostRepository(path).load()

    def test_forward_without_endpoint_is_rejected(self, tmp_path):
        path = tmp_path / "hosts.json"
        path.write_text(
            json.dumps([{"id": "h1", "alias": "prod", "tunnels": [{"type": "local", "localPort": 1}]}])
        )
        with pytest.raises(PersistenceError):
            HostRepository(path).load()

    def test_unwritable_location_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(PersistenceError):
            HostRepository(blocker / "hosts.json").save([])


class TestHostStorePersistence:
    """Failures degrade to activity log entries"""

    def test_load_failure_gives_empty_list_and_logs(self, tmp_path, control_sockets):
        path = tmp_path / "hosts.json"
        path.write_text("[{")
        activity = ActivityLog()
        store = HostStore(HostRepository(path), control_sockets, activity)

        store.load()

        assert store.hosts == []
        assert activity.last_error.startswith("Failed to load config:")

    def test_save_failure_is_logged(self, tmp_path, control_sockets):
        blocker = tmp_path / "file"
        blocker.write_text("")
        activity = ActivityLog()
        store = HostStore(HostRepository(blocker / "hosts.json"), control_sockets, activity)

        store.add_host(HostProfile(alias="prod"))

        assert len(store.hosts) == 1
        assert activity.last_error.startswith("Failed to save config:")

    def test_mutations_are_persisted(self, tmp_path, store):
        host = HostProfile(alias="prod")
        store.add_host(host)
        store.update_host(host.id, lambda h: h.tunnels.append(local_tunnel()))

        reloaded = HostRepository(tmp_path / "hosts.json").load()
        assert [h.alias for h in reloaded] == ["prod"]
        assert reloaded[0].tunnels[0].local_port == 8080

    def test_update_unknown_host_is_noop(self, store):
        assert store.update_host("missing", lambda h: None) is False


class TestRuntimeState:
    """Lazily created per-host connection state"""

    def test_created_on_first_access(self, store, control_sockets):
        host = HostProfile(alias="prod")
        store.add_host(host)

        assert not store.has_runtime_state(host.id)
        state = store.runtime_state(host)
        assert store.has_runtime_state(host.id)
        assert state.control_socket_path == control_sockets.socket_path("prod")
        assert state.is_master_running is False

    def test_snapshot_does_not_create_state(self, store):
        host = HostProfile(alias="prod")
        store.add_host(host)

        snapshot = store.runtime_snapshot(host)

        assert snapshot.is_master_running is False
        assert not store.has_runtime_state(host.id)

    def test_set_master_running_needs_existing_state(self, store):
        host = HostProfile(alias="prod")
        store.add_host(host)

        store.set_master_running(host.id, True)
        assert store.is_master_running(host.id) is False

        store.runtime_state(host)
        store.set_master_running(host.id, True)
        assert store.is_master_running(host.id) is True

    def test_invalidate_picks_up_new_alias(self, store, control_sockets):
        host = HostProfile(alias="prod")
        store.add_host(host)
        store.runtime_state(host)

        store.update_host(host.id, lambda h: setattr(h, "alias", "prod-2"))
        store.invalidate_runtime(host.id)

        assert store.runtime_state(host).control_socket_path == control_sockets.socket_path("prod-2")

    def test_remove_host_clears_everything(self, store):
        tunnel = local_tunnel()
        host = HostProfile(alias="prod", tunnels=[tunnel])
        store.add_host(host)
        store.runtime_state(host)
        store.mark_error(tunnel.id)
        store.begin_retry(host.id, [tunnel.id])

        assert store.remove_host(host.id) is host
        assert store.host(host.id) is None
        assert not store.has_runtime_state(host.id)
        assert not store.has_error(tunnel.id)
        assert not store.is_reconnecting(host.id)
        assert store.remove_host(host.id) is None


class TestRetrySessions:
    """At most one retry session per host"""

    def test_second_session_is_refused(self, store):
        first = store.begin_retry("h1", ["t1"])
        assert first is not None
        assert store.begin_retry("h1", ["t1"]) is None
        assert store.begin_retry("h2", []) is not None

    def test_end_retry_ignores_stale_session(self, store):
        stale = store.begin_retry("h1", [])
        store.clear_retry("h1")
        current = store.begin_retry("h1", [])

        store.end_retry(stale)

        assert store.retry_session("h1") is current

    def test_tunnel_reconnecting(self, store):
        store.begin_retry("h1", ["t1"])
        assert store.is_tunnel_reconnecting("h1", "t1")
        assert not store.is_tunnel_reconnecting("h1", "t2")
        assert not store.is_tunnel_reconnecting("h2", "t1")
