# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""tunnelctl host daemon (tunnelctld).

Owns the TunnelManager for the user session and provides:
- Health polling and auto-reconnect of ssh masters
- Host and tunnel management over a Unix socket (one JSON object per line)
- Clean teardown of every master on SIGTERM/SIGINT
"""

from __future__ import annotations

import asyncio
import json
import os
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from tunnelctl import __version__
from tunnelctl.core.activity import LogEntry, LogLevel
from tunnelctl.core.session import StartOutcome
from tunnelctl.manager import TunnelManager
from tunnelctl.models.host_profile import HostProfile, TunnelSpec
from tunnelctl.settings import get_config
from tunnelctl.ssh_control import parse_config
from tunnelctl.utils.logging import configure_logging, get_daemon_logger

# Configure logging for daemon mode
configure_logging(daemon=True)
logger = get_daemon_logger("tunnelctld")

# Guard against runaway clients
MAX_MESSAGE_SIZE = 1024 * 1024

Handler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]

_TUNNEL_FIELDS = ("type", "local_port", "remote_host", "remote_port")


def _validation_message(exc: ValidationError) -> str:
    return "; ".join(err["msg"] for err in exc.errors())


def _host_summary(host: HostProfile) -> Dict[str, Any]:
    return {"id": host.id, "alias": host.alias}


def _tunnel_summary(tunnel: TunnelSpec) -> Dict[str, Any]:
    return {"id": tunnel.id, "summary": tunnel.display_summary, "is_active": tunnel.is_active}


class tunnelctld:
    def __init__(self, socket_path: Path, manager: Optional[TunnelManager] = None) -> None:
        self.socket_path = socket_path
        self.manager = manager or TunnelManager()
        self._stop_event: Optional[asyncio.Event] = None
        self.handlers: Dict[str, Handler] = {
            "ping": self._handle_ping,
            "snapshot": self._handle_snapshot,
            "logs": self._handle_logs,
            "clear_logs": self._handle_clear_logs,
            "add_host": self._handle_add_host,
            "remove_host": self._handle_remove_host,
            "rename_host": self._handle_rename_host,
            "set_forwardings": self._handle_set_forwardings,
            "connect_host": self._handle_connect_host,
            "disconnect_host": self._handle_disconnect_host,
            "inspect_config": self._handle_inspect_config,
            "add_tunnel": self._handle_add_tunnel,
            "update_tunnel": self._handle_update_tunnel,
            "duplicate_tunnel": self._handle_duplicate_tunnel,
            "remove_tunnel": self._handle_remove_tunnel,
            "toggle_tunnel": self._handle_toggle_tunnel,
            "start_tunnel": self._handle_start_tunnel,
            "stop_tunnel": self._handle_stop_tunnel,
            "start_all": self._handle_start_all,
            "stop_all": self._handle_stop_all,
            "reload_settings": self._handle_reload_settings,
            "reset_ssh_binary": self._handle_reset_ssh_binary,
        }

    # lookup helpers

    def _resolve_host(
        self, payload: Dict[str, Any]
    ) -> Tuple[Optional[HostProfile], Optional[Dict[str, Any]]]:
        ref = str(payload.get("host") or "")
        host = self.manager.find_host(ref) if ref else None
        if host is None:
            return None, {"ok": False, "error": "host_not_found"}
        return host, None

    def _resolve_tunnel(
        self, payload: Dict[str, Any]
    ) -> Tuple[Optional[HostProfile], Optional[TunnelSpec], Optional[Dict[str, Any]]]:
        host, error = self._resolve_host(payload)
        if error:
            return None, None, error
        ref = str(payload.get("tunnel") or "")
        tunnel = self.manager.find_tunnel(host, ref) if ref else None
        if tunnel is None:
            return host, None, {"ok": False, "error": "tunnel_not_found"}
        return host, tunnel, None

    @contextmanager
    def _request_errors(self) -> Iterator[List[str]]:
        """Collect error entries logged while one request runs."""
        errors: List[str] = []

        def collect(entry: LogEntry) -> None:
            if entry.level == LogLevel.ERROR:
                errors.append(entry.message)

        unsubscribe = self.manager.subscribe(collect)
        try:
            yield errors
        finally:
            unsubscribe()

    def _result(self, ok: bool, errors: List[str], **extra: Any) -> Dict[str, Any]:
        response = {"ok": ok, **extra}
        if not ok and "error" not in response:
            response["error"] = errors[-1] if errors else "operation_failed"
        return response

    def _start_result(
        self, outcome: Optional[StartOutcome], errors: List[str], tunnel: TunnelSpec
    ) -> Dict[str, Any]:
        if outcome is StartOutcome.PORT_IN_USE:
            return {"ok": True, "skipped": outcome.value, "tunnel": _tunnel_summary(tunnel)}
        return self._result(bool(outcome and outcome.ok), errors, tunnel=_tunnel_summary(tunnel))

    # handlers

    async def _handle_ping(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {"ok": True, "pid": os.getpid(), "version": __version__}

    async def _handle_snapshot(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {"ok": True, **self.manager.snapshot()}

    async def _handle_logs(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        entries = self.manager.logs
        if payload.get("errors_only"):
            entries = [e for e in entries if e.level.value == "error"]
        limit = payload.get("limit")
        if isinstance(limit, int) and limit > 0:
            entries = entries[-limit:]
        return {
            "ok": True,
            "entries": [{**e.to_dict(), "line": e.formatted_line} for e in entries],
            "last_error": self.manager.last_error,
        }

    async def _handle_clear_logs(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.manager.clear_logs()
        return {"ok": True}

    async def _handle_add_host(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host = self.manager.add_host(str(payload.get("alias") or ""))
        if host is None:
            return {"ok": False, "error": "invalid_alias"}
        return {"ok": True, "host": _host_summary(host)}

    async def _handle_remove_host(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, error = self._resolve_host(payload)
        if error:
            return error
        self.manager.remove_host(host.id)
        await self.manager.wait_host(host.id)
        return {"ok": True, "host": _host_summary(host)}

    async def _handle_rename_host(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, error = self._resolve_host(payload)
        if error:
            return error
        alias = str(payload.get("alias") or "").strip()
        if not alias:
            return {"ok": False, "error": "invalid_alias"}
        changed = self.manager.update_host_alias(host.id, alias)
        await self.manager.wait_host(host.id)
        return {"ok": True, "changed": changed, "host": _host_summary(host)}

    async def _handle_set_forwardings(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, error = self._resolve_host(payload)
        if error:
            return error
        self.manager.update_host_forwardings(host.id, bool(payload.get("enabled")))
        await self.manager.wait_host(host.id)
        return {"ok": True, "host": _host_summary(host)}

    async def _handle_connect_host(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, error = self._resolve_host(payload)
        if error:
            return error
        with self._request_errors() as errors:
            ok = await self.manager.connect_host(host.id)
        return self._result(ok, errors)

    async def _handle_disconnect_host(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, error = self._resolve_host(payload)
        if error:
            return error
        await self.manager.disconnect_host(host.id)
        # Local state is reset even when ssh reports an error
        return {"ok": True}

    async def _handle_inspect_config(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, error = self._resolve_host(payload)
        if error:
            return error
        result = await self.manager.inspect_config(host.id)
        if result is None:
            return {"ok": False, "error": "host_not_found"}
        if not result.success:
            return {
                "ok": False,
                "error": result.combined_output or f"ssh exited with code {result.exit_code}",
            }
        return {"ok": True, "alias": host.alias, "options": parse_config(result.stdout)}

    async def _handle_add_tunnel(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, error = self._resolve_host(payload)
        if error:
            return error
        try:
            spec = TunnelSpec(**{k: payload[k] for k in _TUNNEL_FIELDS if payload.get(k) is not None})
        except ValidationError as e:
            return {"ok": False, "error": _validation_message(e)}
        self.manager.add_tunnel(host.id, spec)
        return {"ok": True, "tunnel": _tunnel_summary(spec)}

    async def _handle_update_tunnel(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, tunnel, error = self._resolve_tunnel(payload)
        if error:
            return error
        fields = {
            "type": tunnel.type,
            "local_port": tunnel.local_port,
            "remote_host": tunnel.remote_host,
            "remote_port": tunnel.remote_port,
        }
        fields.update({k: payload[k] for k in _TUNNEL_FIELDS if payload.get(k) is not None})
        try:
            updated = TunnelSpec(**fields)
        except ValidationError as e:
            return {"ok": False, "error": _validation_message(e)}
        self.manager.update_tunnel(host.id, tunnel.id, updated)
        await self.manager.wait_host(host.id)
        return {"ok": True, "tunnel": _tunnel_summary(self.manager.store.tunnel(host.id, tunnel.id))}

    async def _handle_duplicate_tunnel(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, tunnel, error = self._resolve_tunnel(payload)
        if error:
            return error
        duplicate = self.manager.duplicate_tunnel(host.id, tunnel.id)
        return {"ok": True, "tunnel": _tunnel_summary(duplicate)}

    async def _handle_remove_tunnel(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, tunnel, error = self._resolve_tunnel(payload)
        if error:
            return error
        self.manager.remove_tunnel(host.id, tunnel.id)
        await self.manager.wait_host(host.id)
        return {"ok": True, "tunnel": _tunnel_summary(tunnel)}

    async def _handle_toggle_tunnel(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, tunnel, error = self._resolve_tunnel(payload)
        if error:
            return error
        with self._request_errors() as errors:
            task = self.manager.toggle_tunnel(host.id, tunnel.id)
            result = await task if task else None
        current = self.manager.store.tunnel(host.id, tunnel.id) or tunnel
        if isinstance(result, StartOutcome):
            return self._start_result(result, errors, current)
        return self._result(bool(result), errors, tunnel=_tunnel_summary(current))

    async def _handle_start_tunnel(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, tunnel, error = self._resolve_tunnel(payload)
        if error:
            return error
        with self._request_errors() as errors:
            outcome = await self.manager.start_tunnel(host.id, tunnel.id)
        current = self.manager.store.tunnel(host.id, tunnel.id) or tunnel
        return self._start_result(outcome, errors, current)

    async def _handle_stop_tunnel(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, tunnel, error = self._resolve_tunnel(payload)
        if error:
            return error
        with self._request_errors() as errors:
            ok = await self.manager.stop_tunnel(host.id, tunnel.id)
        return self._result(ok, errors, tunnel=_tunnel_summary(tunnel))

    async def _handle_start_all(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, error = self._resolve_host(payload)
        if error:
            return error
        await self.manager.start_all_tunnels(host.id)
        return {"ok": True}

    async def _handle_stop_all(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        host, error = self._resolve_host(payload)
        if error:
            return error
        await self.manager.stop_all_tunnels(host.id)
        return {"ok": True}

    async def _handle_reload_settings(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.manager.reload_settings()
        logger.info("Settings reloaded")
        return {"ok": True}

    async def _handle_reset_ssh_binary(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.manager.reset_ssh_binary_path()
        return {"ok": True, "binary_path": self.manager.settings.ssh_binary_path}

    # transport

    async def _handle_request(self, raw: bytes) -> Dict[str, Any]:
        """Handle one action-based request line."""
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"JSON parse error: {e}")
            return {"ok": False, "error": "invalid_json"}

        if not isinstance(payload, dict):
            return {"ok": False, "error": "invalid_payload"}

        action = payload.get("action")
        if not action:
            logger.warning(f"Message without action: {list(payload.keys())}")
            return {"ok": False, "error": "missing_action"}
        logger.debug(f"Action={action}")
        handler = self.handlers.get(action)
        if handler is None:
            return {"ok": False, "error": "unknown_action"}
        try:
            return await handler(payload)
        except Exception as e:
            logger.error(f"Request handler error ({action})", exc=e)
            return {"ok": False, "error": str(e)}

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            while True:
                try:
                    line = await reader.readline()
                except (asyncio.LimitOverrunError, ValueError):
                    logger.warning("Request exceeded size limit")
                    break
                if not line:
                    break
                if not line.strip():
                    continue
                response = await self._handle_request(line)
                writer.write((json.dumps(response) + "\n").encode("utf-8"))
                await writer.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.warning(f"Send failed: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (BrokenPipeError, ConnectionResetError):
                pass

    def request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def serve(self) -> None:
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)
        if self.socket_path.exists():
            self.socket_path.unlink()

        self._stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(signum, self.request_stop)
            except (NotImplementedError, RuntimeError):
                # Not on the main thread
                pass

        server = await asyncio.start_unix_server(
            self._handle_client, path=str(self.socket_path), limit=MAX_MESSAGE_SIZE
        )
        os.chmod(self.socket_path, 0o600)
        logger.info(f"Listening on {self.socket_path}")
        self.manager.start()

        try:
            await self._stop_event.wait()
        finally:
            logger.info("Shutting down...")
            server.close()
            await self.manager.shutdown()
            if self.socket_path.exists():
                self.socket_path.unlink()
            logger.info("All hosts disconnected")


def run_tunnelctld(socket_path: Optional[str] = None) -> None:
    path = Path(socket_path) if socket_path else get_config().socket_path
    daemon = tunnelctld(path)
    asyncio.run(daemon.serve())
