# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Auto-reconnect after an unexpected master disconnect.

At most one retry session runs per host. Each attempt re-checks that the
feature is still enabled, that the session was not cleared by a manual
disconnect and that the host still exists. On success the tunnels that
were active at disconnect time are started again, looked up by id since
they may have been edited or removed in the meantime.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from tunnelctl.core.activity import ActivityLog
from tunnelctl.core.session import ConnectionSessionManager
from tunnelctl.core.store import HostStore, RetrySession
from tunnelctl.models.host_profile import TunnelSpec
from tunnelctl.settings import Settings

MIN_DELAY_SECONDS = 1.0

Sleep = Callable[[float], Awaitable[None]]


class AutoReconnectController:
    def __init__(
        self,
        store: HostStore,
        sessions: ConnectionSessionManager,
        activity: ActivityLog,
        settings: Settings,
        sleep: Sleep = asyncio.sleep,
    ):
        self.store = store
        self.sessions = sessions
        self.activity = activity
        self.settings = settings
        self._sleep = sleep

    def schedule(self, host_id: str, previously_active: List[TunnelSpec]) -> Optional[asyncio.Task]:
        """Start a retry loop in the background.

        Returns None when auto-reconnect is off or a session is already
        running for the host.
        """
        if not self.settings.auto_reconnect_enabled:
            return None
        session = self.store.begin_retry(host_id, [t.id for t in previously_active])
        if session is None:
            return None
        session.task = asyncio.create_task(
            self._run(session, list(previously_active)),
            name=f"tunnelctl-reconnect-{host_id}",
        )
        return session.task

    async def reconnect(self, host_id: str, previously_active: List[TunnelSpec]) -> bool:
        """Run a retry loop to completion; True if the master came back."""
        if not self.settings.auto_reconnect_enabled:
            return False
        session = self.store.begin_retry(host_id, [t.id for t in previously_active])
        if session is None:
            return False
        return await self._run(session, list(previously_active))

    def is_reconnecting(self, host_id: str) -> bool:
        return self.store.is_reconnecting(host_id)

    async def cancel_all(self) -> None:
        """Cancel every pending retry loop and wait for it to unwind."""
        tasks = [s.task for s in self.store.retry_sessions() if s.task and not s.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, session: RetrySession, previously_active: List[TunnelSpec]) -> bool:
        host_id = session.host_id
        max_attempts = self.settings.auto_reconnect_max_attempts
        delay = max(MIN_DELAY_SECONDS, self.settings.auto_reconnect_delay_seconds)
        unlimited = max_attempts == 0

        try:
            while True:
                session.attempt += 1
                attempt = session.attempt
                if not self.settings.auto_reconnect_enabled:
                    return False
                if self.store.retry_session(host_id) is not session:
                    return False
                host = self.store.host(host_id)
                if host is None:
                    return False
                if self.store.is_master_running(host_id):
                    return True

                label = str(attempt) if unlimited else f"{attempt} of {max_attempts}"
                self.activity.info(f"Auto-reconnect attempt {label} for {host.alias}")
                if await self.sessions.ensure_master(host):
                    self.activity.info(f"Auto-reconnect succeeded for {host.alias}")
                    await self._restore_tunnels(host_id, previously_active)
                    return True

                if not unlimited and attempt >= max_attempts:
                    break
                await self._sleep(delay)
        finally:
            self.store.end_retry(session)

        host = self.store.host(host_id)
        if host is not None:
            self.activity.info(
                f"Auto-reconnect failed after {max_attempts} attempts for {host.alias}"
            )
        return False

    async def _restore_tunnels(self, host_id: str, previously_active: List[TunnelSpec]) -> None:
        for tunnel in previously_active:
            host = self.store.host(host_id)
            if host is None:
                return
            current = host.tunnel(tunnel.id)
            if current is not None:
                await self.sessions.start_tunnel(host, current)
