"""Service control via systemd."""

from __future__ import annotations

import logging
import time

from vpnguard.errors import CommandError, ServiceControlError
from vpnguard.system.commands import CommandRunner

logger = logging.getLogger(__name__)


class SystemdServiceControl:
    """is_active / restart / active-since for a single systemd unit."""

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self.runner = runner or CommandRunner()

    def is_active(self, service: str) -> bool:
        return self.runner.run(["systemctl", "is-active", "--quiet", service]).ok

    def restart(self, service: str) -> None:
        logger.info("Restarting %s", service)
        try:
            self.runner.check(["systemctl", "restart", service])
        except CommandError as e:
            raise ServiceControlError(f"restart of {service} failed: {e}") from e

    def active_seconds(self, service: str) -> float | None:
        """Seconds since the unit last entered the active state, if known."""
        result = self.runner.run(
            ["systemctl", "show", "-p", "ActiveEnterTimestampMonotonic", "--value", service],
        )
        if not result.ok:
            return None
        try:
            entered_us = int(result.stdout.strip())
        except ValueError:
            return None
        if entered_us <= 0:
            return None
        # systemd reports CLOCK_MONOTONIC microseconds, same clock as time.monotonic()
        return max(0.0, time.monotonic() - entered_us / 1_000_000)
