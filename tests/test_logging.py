# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for tunnelctl/utils/logging.py"""

import logging

from tunnelctl.utils.logging import DaemonFormatter, get_logger


def _record(name, level, message, exc_info=None):
    return logging.LogRecord(name, level, __file__, 1, message, None, exc_info)


class TestDaemonFormatter:
    """Journald line format"""

    def test_activity_entry(self):
        record = _record("tunnelctl.activity", logging.ERROR, "Start tunnel D 1080 failed: refused")

        assert DaemonFormatter().format(record) == (
            "activity: ERROR: Start tunnel D 1080 failed: refused"
        )

    def test_foreign_logger_keeps_its_name(self):
        record = _record("asyncio", logging.WARNING, "slow callback")

        assert DaemonFormatter().format(record) == "asyncio: WARNING: slow callback"

    def test_traceback_is_appended(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            exc_info = (type(e), e, e.__traceback__)
        record = _record("tunnelctl.poller", logging.ERROR, "Health poll failed", exc_info)

        lines = DaemonFormatter().format(record).splitlines()

        assert lines[0] == "poller: ERROR: Health poll failed"
        assert lines[-1] == "RuntimeError: boom"


class TestGetLogger:
    """Namespacing under tunnelctl"""

    def test_module_names_are_kept(self):
        assert get_logger("tunnelctl.executor").name == "tunnelctl.executor"

    def test_other_names_are_prefixed(self):
        assert get_logger("tunnelctld").name == "tunnelctl.tunnelctld"
        assert get_logger("tests").name == "tunnelctl.tests"

    def test_error_includes_exception(self):
        logger = get_logger("tunnelctl.test")
        records = []
        handler = logging.Handler()
        handler.emit = records.append
        logger.logger.addHandler(handler)
        try:
            logger.error("Health poll failed", exc=ValueError("bad"), console_output=False)
        finally:
            logger.logger.removeHandler(handler)

        assert [r.getMessage() for r in records] == ["Health poll failed: bad"]
        assert records[0].exc_info[0] is ValueError
