"""Registers continuous monitoring as a systemd service."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from vpnguard.system.commands import CommandRunner

logger = logging.getLogger(__name__)

UNIT_TEMPLATE = """\
[Unit]
Description=VPN Gateway Health Monitor
After=network-online.target {service}.service
Wants=network-online.target

[Service]
Type=simple
ExecStart={exec_start}
Restart=always
RestartSec=30
User=root

[Install]
WantedBy=multi-user.target
"""


def render_unit(service: str, python: str | None = None) -> str:
    exec_start = f"{python or sys.executable} -m vpnguard monitor --boot"
    return UNIT_TEMPLATE.format(service=service, exec_start=exec_start)


def install_as_service(
    unit_dir: Path | str,
    unit_name: str,
    service: str,
    runner: CommandRunner | None = None,
    python: str | None = None,
) -> Path:
    """Write the unit file, then reload, enable and start it."""
    runner = runner or CommandRunner()
    path = Path(unit_dir) / unit_name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_unit(service, python), encoding="utf-8")
    logger.info("Wrote %s", path)

    runner.check(["systemctl", "daemon-reload"])
    runner.check(["systemctl", "enable", unit_name])
    runner.check(["systemctl", "start", unit_name])
    logger.info("Health monitoring service %s installed and started", unit_name)
    return path
