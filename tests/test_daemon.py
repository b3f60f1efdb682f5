# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for tunnelctl/tunnelctld.py"""

import asyncio
import json
import shutil
import tempfile
from pathlib import Path

import pytest

from tunnelctl.executor import ExecResult
from tunnelctl.tunnelctld import tunnelctld
from tests.conftest import failure


@pytest.fixture
def daemon(tmp_path, manager):
    return tunnelctld(tmp_path / "d.sock", manager=manager)


def request(daemon, action=None, **params):
    payload = dict(params)
    if action is not None:
        payload["action"] = action
    return asyncio.run(daemon._handle_request(json.dumps(payload).encode()))


class TestProtocol:
    """Malformed and unknown requests"""

    def test_invalid_json(self, daemon):
        assert asyncio.run(daemon._handle_request(b"{nope")) == {"ok": False, "error": "invalid_json"}

    def test_non_object_payload(self, daemon):
        assert asyncio.run(daemon._handle_request(b"[1, 2]")) == {
            "ok": False,
            "error": "invalid_payload",
        }

    def test_missing_action(self, daemon):
        assert request(daemon, host="prod") == {"ok": False, "error": "missing_action"}

    def test_unknown_action(self, daemon):
        assert request(daemon, "launch") == {"ok": False, "error": "unknown_action"}

    def test_ping(self, daemon):
        response = request(daemon, "ping")
        assert response["ok"] is True
        assert "pid" in response

    def test_handler_exception_becomes_error(self, daemon, monkeypatch):
        def explode():
            raise RuntimeError("kaboom")

        monkeypatch.setattr(daemon.manager, "snapshot", explode)
        assert request(daemon, "snapshot") == {"ok": False, "error": "kaboom"}


class TestHostActions:
    """Host management over the socket"""

    def test_add_and_snapshot(self, daemon):
        added = request(daemon, "add_host", alias="prod")
        snapshot = request(daemon, "snapshot")

        assert added["ok"] is True
        assert added["host"]["alias"] == "prod"
        assert [h["alias"] for h in snapshot["hosts"]] == ["prod"]

    def test_blank_alias(self, daemon):
        assert request(daemon, "add_host", alias="  ") == {"ok": False, "error": "invalid_alias"}

    def test_unknown_host(self, daemon):
        assert request(daemon, "connect_host", host="nope") == {
            "ok": False,
            "error": "host_not_found",
        }

    def test_connect_failure_reports_ssh_error(self, daemon, ssh):
        request(daemon, "add_host", alias="prod")
        ssh.defaults["master"] = ExecResult(255, stderr="Permission denied (publickey).")

        response = request(daemon, "connect_host", host="prod")

        assert response == {
            "ok": False,
            "error": "Start master connection for prod failed: Permission denied (publickey).",
        }

    def test_rename(self, daemon):
        request(daemon, "add_host", alias="prod")
        response = request(daemon, "rename_host", host="prod", alias="prod-eu")

        assert response["changed"] is True
        assert response["host"]["alias"] == "prod-eu"

    def test_inspect_config(self, daemon, ssh):
        request(daemon, "add_host", alias="prod")
        ssh.queue("inspect", ExecResult(0, stdout="user jane\nhostname 10.0.0.5\n"))

        response = request(daemon, "inspect_config", host="prod")

        assert response["alias"] == "prod"
        assert response["options"] == [("user", "jane"), ("hostname", "10.0.0.5")]


class TestTunnelActions:
    """Tunnel management over the socket"""

    def test_add_and_toggle(self, daemon):
        request(daemon, "add_host", alias="prod")
        added = request(
            daemon,
            "add_tunnel",
            host="prod",
            type="local",
            local_port=8080,
            remote_host="127.0.0.1",
            remote_port=80,
        )

        toggled = request(daemon, "toggle_tunnel", host="prod", tunnel="1")

        assert added["tunnel"]["summary"] == "L 8080 -> 127.0.0.1:80"
        assert toggled["ok"] is True
        assert toggled["tunnel"]["is_active"] is True

    def test_busy_port_is_reported_as_skip(self, daemon, ssh, ports):
        request(daemon, "add_host", alias="staging")
        ssh.queue("master", failure("staging unreachable"))
        assert request(daemon, "connect_host", host="staging") == {
            "ok": False,
            "error": "Start master connection for staging failed: staging unreachable",
        }
        request(daemon, "add_host", alias="prod")
        request(
            daemon,
            "add_tunnel",
            host="prod",
            type="local",
            local_port=8080,
            remote_host="127.0.0.1",
            remote_port=80,
        )
        ports.busy.add(8080)

        started = request(daemon, "start_tunnel", host="prod", tunnel="1")
        toggled = request(daemon, "toggle_tunnel", host="prod", tunnel="1")

        for response in (started, toggled):
            assert response["ok"] is True
            assert response["skipped"] == "port_in_use"
            assert response["tunnel"]["is_active"] is False
            assert "error" not in response

    def test_failed_start_reports_its_own_error(self, daemon, ssh):
        request(daemon, "add_host", alias="staging")
        ssh.queue("master", failure("staging unreachable"))
        request(daemon, "connect_host", host="staging")
        request(daemon, "add_host", alias="prod")
        request(daemon, "add_tunnel", host="prod", type="dynamic", local_port=1080)
        ssh.defaults["forward"] = failure("mux_client_forward: forwarding request failed")

        response = request(daemon, "start_tunnel", host="prod", tunnel="1")

        assert response["ok"] is False
        assert response["error"] == (
            "Start tunnel D 1080 failed: mux_client_forward: forwarding request failed"
        )

    def test_invalid_tunnel_is_rejected(self, daemon):
        request(daemon, "add_host", alias="prod")
        response = request(daemon, "add_tunnel", host="prod", type="local", local_port=8080)

        assert response["ok"] is False
        assert "remoteHost and remotePort" in response["error"]

    def test_update_merges_fields(self, daemon):
        request(daemon, "add_host", alias="prod")
        request(
            daemon,
            "add_tunnel",
            host="prod",
            type="local",
            local_port=8080,
            remote_host="127.0.0.1",
            remote_port=80,
        )

        response = request(daemon, "update_tunnel", host="prod", tunnel="1", local_port=9090)

        assert response["tunnel"]["summary"] == "L 9090 -> 127.0.0.1:80"

    def test_unknown_tunnel(self, daemon):
        request(daemon, "add_host", alias="prod")
        assert request(daemon, "stop_tunnel", host="prod", tunnel="7") == {
            "ok": False,
            "error": "tunnel_not_found",
        }

    def test_duplicate_and_remove(self, daemon):
        request(daemon, "add_host", alias="prod")
        request(daemon, "add_tunnel", host="prod", type="dynamic", local_port=1080)

        duplicated = request(daemon, "duplicate_tunnel", host="prod", tunnel="1")
        removed = request(daemon, "remove_tunnel", host="prod", tunnel="1")
        snapshot = request(daemon, "snapshot")

        assert duplicated["tunnel"]["summary"] == "D 1080"
        assert removed["ok"] is True
        assert [t["id"] for t in snapshot["hosts"][0]["tunnels"]] == [duplicated["tunnel"]["id"]]


class TestLogsAndSettings:
    """Activity log and settings actions"""

    def test_logs_filters(self, daemon, ssh):
        request(daemon, "add_host", alias="prod")
        request(daemon, "add_host", alias="stage")
        ssh.defaults["master"] = ExecResult(255)
        request(daemon, "connect_host", host="prod")

        errors = request(daemon, "logs", errors_only=True)
        last = request(daemon, "logs", limit=1)

        assert [e["message"] for e in errors["entries"]] == [
            "Start master connection for prod failed with exit code 255"
        ]
        assert len(last["entries"]) == 1
        assert "[ERROR]" in last["entries"][0]["line"]

    def test_clear_logs(self, daemon):
        request(daemon, "add_host", alias="prod")
        request(daemon, "clear_logs")
        assert request(daemon, "logs")["entries"] == []

    def test_reset_ssh_binary(self, daemon, settings):
        settings.set("ssh.binary_path", "/opt/ssh")
        response = request(daemon, "reset_ssh_binary")
        assert response == {"ok": True, "binary_path": "/usr/bin/ssh"}

    def test_reload_settings(self, daemon, settings):
        settings.config_path.write_text("polling:\n  interval_seconds: 2\n")
        assert request(daemon, "reload_settings") == {"ok": True}
        assert settings.poll_interval == 2.0


class TestServe:
    """Unix socket transport"""

    def test_round_trip_and_stop(self, manager):
        # AF_UNIX paths are short; pytest's tmp_path may not be
        base = Path(tempfile.mkdtemp(prefix="tcd-", dir="/tmp"))
        try:
            daemon = tunnelctld(base / "d.sock", manager=manager)

            async def scenario():
                server = asyncio.create_task(daemon.serve())
                for _ in range(100):
                    if daemon.socket_path.exists():
                        break
                    await asyncio.sleep(0.01)
                reader, writer = await asyncio.open_unix_connection(str(daemon.socket_path))
                writer.write(b'{"action": "ping"}\n\n{"action": "add_host", "alias": "prod"}\n')
                await writer.drain()
                first = json.loads(await reader.readline())
                second = json.loads(await reader.readline())
                writer.close()
                daemon.request_stop()
                await server
                return first, second

            first, second = asyncio.run(scenario())

            assert first["ok"] is True
            assert second["host"]["alias"] == "prod"
            assert not (base / "d.sock").exists()
        finally:
            shutil.rmtree(base, ignore_errors=True)
