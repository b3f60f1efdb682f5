# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Periodic master health checks."""

import asyncio
from typing import Optional

from tunnelctl.core.activity import ActivityLog
from tunnelctl.core.reconnect import AutoReconnectController, Sleep
from tunnelctl.core.session import ConnectionSessionManager
from tunnelctl.core.store import HostStore
from tunnelctl.settings import Settings
from tunnelctl.utils.logging import get_logger

logger = get_logger(__name__)


class HealthPoller:
    """Checks every host's master once per interval.

    Only a running -> not running transition is an event: the host's
    tunnels are marked inactive and, with auto-reconnect enabled, the
    tunnels that were active are handed to the reconnect controller.
    Reconnection runs as its own task so a tick never waits on it.
    """

    def __init__(
        self,
        store: HostStore,
        sessions: ConnectionSessionManager,
        reconnect: AutoReconnectController,
        activity: ActivityLog,
        settings: Settings,
        sleep: Sleep = asyncio.sleep,
    ):
        self.store = store
        self.sessions = sessions
        self.reconnect = reconnect
        self.activity = activity
        self.settings = settings
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    async def refresh(self) -> None:
        """One poll tick over all hosts, one check at a time."""
        for host in self.store.hosts:
            if self.store.host(host.id) is None:
                continue
            was_running = self.store.runtime_state(host).is_master_running
            result = await self.sessions.check_master(host)

            current = self.store.host(host.id)
            if current is None:
                continue
            is_running = result.success
            self.store.set_master_running(host.id, is_running)
            if not (was_running and not is_running):
                continue

            previously_active = [t.model_copy() for t in current.active_tunnels()]
            detail = result.combined_output.strip()
            if detail:
                message = f"SSH master for {current.alias} disconnected unexpectedly: {detail}"
            else:
                message = f"SSH master for {current.alias} disconnected unexpectedly."
            self.activity.error(message)
            self.store.deactivate_tunnels(host.id)
            if self.settings.auto_reconnect_enabled:
                self.reconnect.schedule(host.id, previously_active)

    async def run(self) -> None:
        """Poll until cancelled."""
        while True:
            try:
                await self.refresh()
            except Exception as e:
                logger.error("Health poll failed", exc=e, console_output=False)
            await self._sleep(self.settings.poll_interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="tunnelctl-poller")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
