"""Logging for the tunnelctl CLI and the tunnelctld daemon.

Everything logs under the "tunnelctl" logger namespace:

- a rotating file at <data dir>/logs/tunnelctl.log always gets DEBUG and up
- the daemon adds a stderr stream for journald, one line per record
- CLI code can echo a record to the shared Rich console

The activity log mirrors each of its entries into "tunnelctl.activity",
so the journal and the log file carry the same lines `tunnelctl logs` shows.

Environment:
    TUNNELCTL_DEBUG=1          Debug level, debug records echoed on the CLI
    TUNNELCTL_LOG_LEVEL=LEVEL  DEBUG, INFO, WARNING or ERROR
    TUNNELCTL_LOG_FILE=/path   Log file location
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console

from tunnelctl.paths import HostPaths

ROOT_LOGGER = "tunnelctl"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

_configured = False
_debug_mode = False
_daemon_mode = False

# Shared Rich console for CLI output
console = Console()


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


def _debug_enabled() -> bool:
    return _debug_mode or _env_flag("TUNNELCTL_DEBUG")


def _log_file_path(override: Optional[Path]) -> Path:
    if override:
        return override
    env_path = os.environ.get("TUNNELCTL_LOG_FILE")
    if env_path:
        return Path(env_path)
    return HostPaths.log_dir() / "tunnelctl.log"


class DaemonFormatter(logging.Formatter):
    """One journald line per record: "<component>: <LEVEL>: <message>".

    The "tunnelctl." prefix is dropped, so activity entries read
    "activity: ERROR: Start tunnel D 1080 failed: ...". journald adds
    its own timestamps.
    """

    def format(self, record: logging.LogRecord) -> str:
        component = record.name
        if component.startswith(ROOT_LOGGER + "."):
            component = component[len(ROOT_LOGGER) + 1 :]
        line = f"{component}: {record.levelname}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(
    debug: bool = False,
    daemon: bool = False,
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
) -> None:
    """Set up the tunnelctl handlers. Only the first call has an effect."""
    global _configured, _debug_mode, _daemon_mode

    if _configured:
        return

    _debug_mode = debug or _env_flag("TUNNELCTL_DEBUG")
    _daemon_mode = daemon

    default_level = "DEBUG" if _debug_mode else "INFO"
    level_name = (log_level or os.environ.get("TUNNELCTL_LOG_LEVEL", default_level)).upper()
    level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    path = _log_file_path(log_file)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
    except OSError:
        # No log file; stderr and the console still work
        path = None
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root_logger.addHandler(file_handler)

    if _daemon_mode:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(level)
        stderr_handler.setFormatter(DaemonFormatter())
        root_logger.addHandler(stderr_handler)

    _configured = True
    root_logger.debug(
        f"Logging configured: level={level_name}, daemon={_daemon_mode}, file={path}"
    )


class TunnelLogger:
    """A tunnelctl logger that can also echo to the Rich console.

    Echo is skipped in daemon mode, where stderr already carries the record.
    Callers on the daemon side pass console_output=False anyway.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

    def _echo(self, markup: str) -> None:
        if not _daemon_mode:
            console.print(markup)

    def debug(self, message: str, console_output: bool = False) -> None:
        self.logger.debug(message)
        if console_output or _debug_enabled():
            self._echo(f"[dim][DEBUG] {message}[/dim]")

    def info(self, message: str, console_output: bool = True) -> None:
        self.logger.info(message)
        if console_output:
            self._echo(f"[blue]{message}[/blue]")

    def warning(self, message: str, console_output: bool = True) -> None:
        self.logger.warning(message)
        if console_output:
            self._echo(f"[yellow]⚠ {message}[/yellow]")

    def error(
        self,
        message: str,
        exc: Optional[BaseException] = None,
        console_output: bool = True,
    ) -> None:
        """Log an error; with exc, the traceback goes to the handlers too."""
        if exc is not None:
            message = f"{message}: {exc}"
            self.logger.error(message, exc_info=exc)
        else:
            self.logger.error(message)
        if console_output:
            self._echo(f"[red]✗ {message}[/red]")


def get_logger(name: str) -> TunnelLogger:
    """Logger for a module, placed under the tunnelctl namespace."""
    if not _configured:
        configure_logging()
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return TunnelLogger(name)


def get_daemon_logger(name: str) -> TunnelLogger:
    """Logger for tunnelctld; sets up daemon-mode handlers if nothing has yet."""
    configure_logging(daemon=True)
    return get_logger(name)
