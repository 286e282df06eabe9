"""Alert sink — append-only operator record of warnings and failures.

Every record is appended to the alert log as a timestamped text line,
mirrored to the console, and optionally forwarded to a webhook notifier.
Records are never rewritten or removed; rotation is left to logrotate.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape

from vpnguard.health.engine import utcnow

logger = logging.getLogger(__name__)

LINE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_RECENT = 1000


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ALERT = "alert"


_STYLE = {
    Severity.INFO: "green",
    Severity.WARNING: "yellow",
    Severity.ALERT: "bold red",
}


@dataclass(frozen=True)
class AlertRecord:
    severity: Severity
    message: str
    timestamp: datetime

    def to_line(self) -> str:
        return f"[{self.timestamp.strftime(LINE_TIME_FORMAT)}] {self.severity.value.upper()}: {self.message}"


class AlertSink:
    """Append-only alert log with a console mirror."""

    def __init__(
        self,
        log_path: Path | str | None = None,
        console: Console | None = None,
        notifier: Any | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.log_path = Path(log_path) if log_path else None
        self.console = console
        self.notifier = notifier
        self._clock = clock
        self._last: datetime | None = None
        self._recent: deque[AlertRecord] = deque(maxlen=MAX_RECENT)
        if self.log_path:
            try:
                self.log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                # Records still reach the console and notifier; _append logs each lost line
                logger.error("Cannot create alert log directory %s: %s", self.log_path.parent, e)

    @property
    def records(self) -> list[AlertRecord]:
        """Records emitted by this process, oldest first (bounded)."""
        return list(self._recent)

    def count(self, severity: Severity) -> int:
        return sum(1 for r in self._recent if r.severity == severity)

    def record(self, severity: Severity, message: str) -> AlertRecord:
        now = self._clock()
        # Keep timestamps strictly increasing even if the wall clock steps back
        if self._last is not None and now <= self._last:
            now = self._last + timedelta(microseconds=1)
        self._last = now

        rec = AlertRecord(severity=severity, message=message, timestamp=now)
        self._recent.append(rec)
        self._append(rec)

        if self.console is not None:
            self.console.print(f"[{_STYLE[severity]}][{severity.value.upper()}] {escape(message)}[/]")

        if self.notifier is not None and severity != Severity.INFO:
            try:
                self.notifier.send(rec)
            except Exception:
                logger.exception("Alert notifier error")
        return rec

    def info(self, message: str) -> AlertRecord:
        return self.record(Severity.INFO, message)

    def warning(self, message: str) -> AlertRecord:
        return self.record(Severity.WARNING, message)

    def alert(self, message: str) -> AlertRecord:
        return self.record(Severity.ALERT, message)

    def _append(self, rec: AlertRecord) -> None:
        if self.log_path is None:
            return
        try:
            with self.log_path.open("a", encoding="utf-8") as fh:
                fh.write(rec.to_line() + "\n")
        except OSError as e:
            logger.error("Cannot append to alert log %s: %s (%s)", self.log_path, e, rec.to_line())
