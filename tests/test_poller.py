# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for tunnelctl/core/poller.py"""

import asyncio

from tunnelctl.executor import ExecResult
from tests.conftest import local_tunnel


def _connected_host(manager, *tunnels):
    host = manager.add_host("prod")
    for tunnel in tunnels:
        manager.add_tunnel(host.id, tunnel)
    return host


class TestRefresh:
    """Unexpected disconnect detection"""

    def test_running_to_stopped_is_an_event(self, manager, ssh):
        tunnel = local_tunnel()
        host = _connected_host(manager, tunnel)

        async def scenario():
            await manager.start_tunnel(host.id, tunnel.id)
            ssh.master_up = False
            await manager.poller.refresh()

        asyncio.run(scenario())

        assert not tunnel.is_active
        assert not manager.store.is_master_running(host.id)
        assert manager.last_error == (
            "SSH master for prod disconnected unexpectedly: "
            "Control socket connect(/tmp/ctl): No such file or directory"
        )
        assert not manager.store.is_reconnecting(host.id)

    def test_event_without_output(self, manager, ssh):
        host = _connected_host(manager)

        async def scenario():
            await manager.connect_host(host.id)
            ssh.queue("check", ExecResult(255))
            await manager.poller.refresh()

        asyncio.run(scenario())

        assert manager.last_error == "SSH master for prod disconnected unexpectedly."

    def test_stopped_to_stopped_is_quiet(self, manager, ssh):
        _connected_host(manager)

        asyncio.run(manager.poller.refresh())

        assert ssh.verbs() == ["check"]
        assert manager.activity.messages() == ["Added host prod"]

    def test_poller_can_mark_master_running(self, manager, ssh):
        host = _connected_host(manager)
        ssh.master_up = True

        asyncio.run(manager.poller.refresh())

        assert manager.store.is_master_running(host.id)
        assert manager.activity.messages() == ["Added host prod"]

    def test_hands_active_tunnels_to_reconnect(self, manager, ssh, settings):
        settings.update_auto_reconnect(enabled=True)
        active = local_tunnel(8080)
        idle = local_tunnel(8081)
        host = _connected_host(manager, active, idle)

        async def scenario():
            await manager.start_tunnel(host.id, active.id)
            ssh.master_up = False
            ssh.defaults["master"] = ExecResult(255, stderr="down")
            await manager.poller.refresh()
            session = manager.store.retry_session(host.id)
            assert session is not None
            assert session.tunnel_ids == {active.id}
            await manager.reconnect.cancel_all()

        asyncio.run(scenario())


class TestRunLoop:
    """Background task lifecycle"""

    def test_start_and_stop(self, manager, sleeper):
        async def scenario():
            manager.poller.start()
            assert manager.poller.running
            for _ in range(3):
                await asyncio.sleep(0)
            await manager.poller.stop()
            assert not manager.poller.running

        asyncio.run(scenario())

        assert sleeper.delays
        assert set(sleeper.delays) == {10.0}

    def test_tick_failure_keeps_polling(self, manager, sleeper, monkeypatch):
        calls = []

        async def broken_refresh():
            calls.append(1)
            raise RuntimeError("boom")

        monkeypatch.setattr(manager.poller, "refresh", broken_refresh)

        async def scenario():
            manager.poller.start()
            for _ in range(5):
                await asyncio.sleep(0)
            await manager.poller.stop()

        asyncio.run(scenario())

        assert len(calls) >= 2
