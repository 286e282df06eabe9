"""Connected-client count from the OpenVPN status file.

Understands status-version 1 (``OpenVPN CLIENT LIST`` section) and
status-version 2/3 (``CLIENT_LIST`` rows, comma or tab separated).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_SPLIT = re.compile(r"[,\t]")


@dataclass(frozen=True)
class ConnectedClient:
    common_name: str
    real_address: str
    connected_since: str = ""


def parse_status(text: str) -> list[ConnectedClient]:
    clients: list[ConnectedClient] = []
    in_v1_list = False
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        fields = _SPLIT.split(line)

        if fields[0] == "CLIENT_LIST":
            if len(fields) >= 3:
                since = fields[7] if len(fields) > 7 else ""
                clients.append(ConnectedClient(fields[1], fields[2], since))
            continue

        if line == "OpenVPN CLIENT LIST":
            in_v1_list = True
            continue
        if line == "ROUTING TABLE":
            in_v1_list = False
            continue
        if in_v1_list:
            if fields[0] in ("Updated", "Common Name") or len(fields) < 2:
                continue
            since = fields[4] if len(fields) > 4 else ""
            clients.append(ConnectedClient(fields[0], fields[1], since))
    return clients


class OpenVPNStatusSource:
    def __init__(self, status_path: Path | str = "/var/log/openvpn/status.log") -> None:
        self.status_path = Path(status_path)

    def clients(self) -> list[ConnectedClient] | None:
        try:
            text = self.status_path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Cannot read %s: %s", self.status_path, e)
            return None
        return parse_status(text)

    def active_connection_count(self) -> int | None:
        clients = self.clients()
        return None if clients is None else len(clients)
