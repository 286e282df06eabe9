"""Check engine — runs every registered probe and aggregates a RunSummary.

Probes run in declaration order. A probe that times out or raises is
downgraded to a Warn result so one broken probe never aborts the cycle.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from vpnguard.errors import ProbeError, ProbeInternalError, ProbeTimeout

if TYPE_CHECKING:
    from vpnguard.health.repair import RepairOutcome

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 5.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Models ───────────────────────────────────────────────────────────────────


class Status(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"


class CyclePhase(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    REPAIRING = "repairing"
    REVERIFYING = "reverifying"


@dataclass(frozen=True)
class CheckResult:
    """Verdict of one probe against the live system."""

    probe_name: str
    status: Status
    message: str = ""
    observed_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Probe:
    """A named, stateless test of one precondition."""

    name: str
    run: Callable[[], CheckResult]


@dataclass(frozen=True)
class RunSummary:
    """Ordered results of one pass over every probe."""

    results: tuple[CheckResult, ...]
    started_at: datetime
    finished_at: datetime
    repairs: tuple[RepairOutcome, ...] = ()

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return self._count(Status.PASS)

    @property
    def failed(self) -> int:
        return self._count(Status.FAIL)

    @property
    def warned(self) -> int:
        return self._count(Status.WARN)

    def _count(self, status: Status) -> int:
        return sum(1 for r in self.results if r.status == status)

    def get(self, probe_name: str) -> CheckResult | None:
        for r in self.results:
            if r.probe_name == probe_name:
                return r
        return None

    def failures(self) -> list[CheckResult]:
        return [r for r in self.results if r.status == Status.FAIL]

    def with_result(self, result: CheckResult) -> RunSummary:
        """Copy of this summary with one probe's result replaced in place."""
        results = tuple(result if r.probe_name == result.probe_name else r for r in self.results)
        return replace(self, results=results, finished_at=utcnow())


# ── Engine ───────────────────────────────────────────────────────────────────


class CheckEngine:
    """Runs a fixed, ordered probe set with a per-probe time budget."""

    def __init__(
        self,
        probes: Sequence[Probe],
        timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> None:
        names = [p.name for p in probes]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate probe names: {', '.join(duplicates)}")
        self.probes: tuple[Probe, ...] = tuple(probes)
        self.timeout = timeout
        # Spare workers so a hung probe thread doesn't starve the ones after it
        self._executor = ThreadPoolExecutor(
            max_workers=max(4, len(self.probes)), thread_name_prefix="probe",
        )

    @property
    def probe_names(self) -> list[str]:
        return [p.name for p in self.probes]

    def get(self, name: str) -> Probe | None:
        for p in self.probes:
            if p.name == name:
                return p
        return None

    def run_probe(self, probe: Probe) -> CheckResult:
        """Run one probe; timeouts and errors come back as Warn."""
        future = self._executor.submit(probe.run)
        try:
            result = future.result(timeout=self.timeout)
        except FuturesTimeout:
            return self._downgrade(probe, ProbeTimeout(probe.name, self.timeout))
        except Exception as e:
            return self._downgrade(
                probe, ProbeInternalError(probe.name, f"{type(e).__name__}: {e}"),
            )

        if result.probe_name != probe.name:
            result = replace(result, probe_name=probe.name)
        return result

    def run_all(self) -> RunSummary:
        started = utcnow()
        results = tuple(self.run_probe(p) for p in self.probes)
        summary = RunSummary(results=results, started_at=started, finished_at=utcnow())
        logger.info(
            "Check run: %d/%d passed, %d failed, %d warned",
            summary.passed, summary.total, summary.failed, summary.warned,
        )
        return summary

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def _downgrade(probe: Probe, error: ProbeError) -> CheckResult:
        logger.warning("Probe %s", error)
        return CheckResult(probe.name, Status.WARN, f"probe error: {error.detail}")
