"""Thin subprocess wrapper shared by every host collaborator."""

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass

from vpnguard.errors import CommandError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner:
    """Runs argv lists without a shell and returns structured results."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def run(self, cmd: list[str], timeout: float | None = None) -> CommandResult:
        """Run a command; timeouts and missing binaries become exit code -1."""
        limit = timeout if timeout is not None else self.timeout
        t0 = time.perf_counter()
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=limit,
                encoding="utf-8",
                errors="replace",
            )
            duration_ms = int((time.perf_counter() - t0) * 1000)
            logger.debug("%s -> %d (%dms)", " ".join(cmd), result.returncode, duration_ms)
            return CommandResult(
                exit_code=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
                duration_ms=duration_ms,
            )
        except subprocess.TimeoutExpired:
            duration_ms = int((time.perf_counter() - t0) * 1000)
            return CommandResult(
                exit_code=-1,
                stdout="",
                stderr=f"Command timed out after {limit:g}s",
                duration_ms=duration_ms,
            )
        except FileNotFoundError as e:
            duration_ms = int((time.perf_counter() - t0) * 1000)
            return CommandResult(
                exit_code=-1,
                stdout="",
                stderr=f"Command not found: {e}",
                duration_ms=duration_ms,
            )

    def check(self, cmd: list[str], timeout: float | None = None) -> CommandResult:
        """Like run(), but raise CommandError on a non-zero exit."""
        result = self.run(cmd, timeout=timeout)
        if not result.ok:
            raise CommandError(cmd, result.exit_code, result.stderr)
        return result
