# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Runs the ssh binary and captures its result.

The executor never raises: anything that prevents the command from
completing is reported as a synthetic exit code of -1 with a diagnostic
in stderr.
"""

import subprocess
from dataclasses import dataclass
from typing import List, Optional

from tunnelctl.utils.logging import get_logger

logger = get_logger(__name__)

SPAWN_FAILURE_EXIT_CODE = -1


@dataclass(frozen=True)
class ExecResult:
    """Exit code and captured output of one command."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def combined_output(self) -> str:
        """stdout and stderr joined by a newline, skipping empty streams."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def to_dict(self) -> dict:
        return {"exit_code": self.exit_code, "stdout": self.stdout, "stderr": self.stderr}


class SubprocessExecutor:
    """Blocking executor backed by subprocess.run.

    Callers on the event loop dispatch it to a worker thread.
    """

    def __init__(self, timeout: Optional[float] = 60.0):
        self.timeout = timeout

    def run(self, path: str, args: List[str]) -> ExecResult:
        logger.debug(f"exec: {path} {' '.join(args)}")
        try:
            result = subprocess.run(
                [path, *args],
                capture_output=True,
                text=True,
                errors="replace",
                stdin=subprocess.DEVNULL,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return ExecResult(
                SPAWN_FAILURE_EXIT_CODE,
                stderr=f"Failed to run ssh: timed out after {self.timeout}s",
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            return ExecResult(SPAWN_FAILURE_EXIT_CODE, stderr=f"Failed to run ssh: {e}")
        return ExecResult(result.returncode, result.stdout or "", result.stderr or "")
