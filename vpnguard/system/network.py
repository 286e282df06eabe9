"""Network interface and reachability queries via iproute2 / ping."""

from __future__ import annotations

import re

from vpnguard.system.commands import CommandRunner

_FLAGS = re.compile(r"<([^>]*)>")


class InterfaceQuery:
    def __init__(self, runner: CommandRunner | None = None) -> None:
        self.runner = runner or CommandRunner()

    def exists_and_up(self, interface_name: str) -> bool:
        result = self.runner.run(["ip", "-o", "link", "show", interface_name])
        if not result.ok:
            return False
        # tun devices report "state UNKNOWN", so the administrative UP flag decides
        match = _FLAGS.search(result.stdout)
        return bool(match) and "UP" in match.group(1).split(",")


class PingReachability:
    """Readiness probe: one ICMP echo to a well-known host."""

    def __init__(self, host: str, runner: CommandRunner | None = None, wait_seconds: int = 2) -> None:
        self.host = host
        self.wait_seconds = wait_seconds
        self.runner = runner or CommandRunner()

    def __call__(self) -> bool:
        cmd = ["ping", "-c", "1", "-W", str(self.wait_seconds), self.host]
        return self.runner.run(cmd, timeout=self.wait_seconds + 3).ok
