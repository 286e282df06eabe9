"""Resource utilisation via psutil."""

from __future__ import annotations

import psutil


class ResourceMetrics:
    def disk_usage_percent(self, path: str = "/") -> int:
        return round(psutil.disk_usage(path).percent)

    def memory_usage_percent(self) -> int:
        return round(psutil.virtual_memory().percent)
