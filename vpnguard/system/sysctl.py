"""Kernel IPv4 forwarding flag."""

from __future__ import annotations

import logging
from pathlib import Path

from vpnguard.errors import CommandError, PersistenceError, RepairApplyError
from vpnguard.system.commands import CommandRunner

logger = logging.getLogger(__name__)

FORWARDING_KEY = "net.ipv4.ip_forward"


class ForwardingFlag:
    """Reads the live flag from /proc and persists it through a sysctl drop-in."""

    def __init__(
        self,
        flag_path: Path | str = "/proc/sys/net/ipv4/ip_forward",
        dropin_path: Path | str = "/etc/sysctl.d/99-vpnguard.conf",
        runner: CommandRunner | None = None,
    ) -> None:
        self.flag_path = Path(flag_path)
        self.dropin_path = Path(dropin_path)
        self.runner = runner or CommandRunner()

    def get_forwarding_flag(self) -> bool:
        return self.flag_path.read_text(encoding="utf-8").strip() == "1"

    def set_forwarding_flag(self, enabled: bool) -> None:
        value = "1" if enabled else "0"
        try:
            self.runner.check(["sysctl", "-w", f"{FORWARDING_KEY}={value}"])
        except CommandError as e:
            raise RepairApplyError(f"could not set {FORWARDING_KEY}: {e}") from e

    def persist_forwarding_flag(self, enabled: bool) -> None:
        # Rewriting a dedicated drop-in keeps repeated repairs from growing sysctl.conf
        line = f"{FORWARDING_KEY} = {1 if enabled else 0}\n"
        try:
            if self.dropin_path.exists() and self.dropin_path.read_text(encoding="utf-8") == line:
                return
            self.dropin_path.parent.mkdir(parents=True, exist_ok=True)
            self.dropin_path.write_text(line, encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"writing {self.dropin_path} failed: {e}") from e
        logger.info("Persisted %s in %s", line.strip(), self.dropin_path)

    def set_and_persist_forwarding_flag(self, enabled: bool) -> None:
        self.set_forwarding_flag(enabled)
        self.persist_forwarding_flag(enabled)
