# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""User-facing activity log.

An append-only list of info/error entries plus a "last error" summary.
Every entry is also written to the tunnelctl logger so it lands in the
log file and, under systemd, the journal.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from tunnelctl.utils.logging import get_logger

logger = get_logger("tunnelctl.activity")


class LogLevel(str, Enum):
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class LogEntry:
    level: LogLevel
    message: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def formatted_line(self) -> str:
        return f"{self.timestamp:%Y-%m-%d %H:%M:%S} [{self.level.value.upper()}] {self.message}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
            "level": self.level.value,
            "message": self.message,
        }


Subscriber = Callable[[LogEntry], None]


class ActivityLog:
    """Ordered log entries, unbounded until cleared."""

    def __init__(self) -> None:
        self._entries: List[LogEntry] = []
        self._subscribers: List[Subscriber] = []
        self.last_error: Optional[str] = None

    @property
    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def info(self, message: str) -> LogEntry:
        logger.info(message, console_output=False)
        return self._append(LogEntry(LogLevel.INFO, message))

    def error(self, message: str) -> LogEntry:
        logger.error(message, console_output=False)
        self.last_error = message
        return self._append(LogEntry(LogLevel.ERROR, message))

    def clear(self) -> None:
        self._entries.clear()

    def messages(self) -> List[str]:
        return [entry.message for entry in self._entries]

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for new entries; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _append(self, entry: LogEntry) -> LogEntry:
        self._entries.append(entry)
        for callback in list(self._subscribers):
            try:
                callback(entry)
            except Exception as e:
                logger.error("Log subscriber error", exc=e, console_output=False)
        return entry


def failure_message(action: str, result) -> str:
    """'<action> failed: <output>' or, without output, the exit code."""
    output = result.combined_output
    if not output:
        return f"{action} failed with exit code {result.exit_code}"
    return f"{action} failed: {output}"
