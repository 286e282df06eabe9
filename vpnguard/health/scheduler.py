"""Health scheduler — one-shot and continuous reconciliation cycles.

Cycle: Idle → Checking → (Repairing → Reverifying) → Idle. Cycles are
independent; the only state carried between them is the alert log.
A stop request is honoured between cycles, never in the middle of one.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from vpnguard.health.alerts import AlertSink
from vpnguard.health.engine import CheckEngine, CyclePhase, RunSummary, Status
from vpnguard.health.probes import is_transitional
from vpnguard.health.repair import RepairEngine, RepairOutcome
from vpnguard.health.retry import ReadinessWaitConfig, wait_until

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 300.0


class CycleStatus(str, Enum):
    HEALTHY = "healthy"
    REPAIRED = "repaired"
    ALERT = "alert"


@dataclass(frozen=True)
class CycleReport:
    initial: RunSummary
    final: RunSummary
    status: CycleStatus

    @property
    def repairs(self) -> tuple[RepairOutcome, ...]:
        return self.final.repairs

    @property
    def exit_code(self) -> int:
        return 1 if self.status == CycleStatus.ALERT else 0


class HealthScheduler:
    """Drives CheckEngine + RepairEngine once or on a fixed interval."""

    def __init__(
        self,
        check_engine: CheckEngine,
        repair_engine: RepairEngine,
        alerts: AlertSink,
        interval: float = DEFAULT_INTERVAL,
        on_cycle: Callable[[CycleReport], Any] | None = None,
    ) -> None:
        self.check_engine = check_engine
        self.repair_engine = repair_engine
        self.alerts = alerts
        self.interval = interval
        self.on_cycle = on_cycle
        self.phase = CyclePhase.IDLE
        self._stop = threading.Event()
        if repair_engine.on_phase is None:
            repair_engine.on_phase = self.set_phase

    # -- one cycle -------------------------------------------------------------

    def set_phase(self, phase: CyclePhase) -> None:
        if phase != self.phase:
            logger.debug("Cycle phase: %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    def run_cycle(self) -> CycleReport:
        self.set_phase(CyclePhase.CHECKING)
        try:
            initial = self.check_engine.run_all()
            if initial.failed == 0:
                final = initial
                status = CycleStatus.HEALTHY
            else:
                self.set_phase(CyclePhase.REPAIRING)
                final = self.repair_engine.reconcile(initial)
                unresolved = final.failed > 0 or any(not o.converged for o in final.repairs)
                status = CycleStatus.ALERT if unresolved else CycleStatus.REPAIRED

            # Warns left after repairs; a transitional interface is only a symptom of the service
            for result in final.results:
                if result.status == Status.WARN and not is_transitional(result):
                    self.alerts.warning(f"{result.probe_name}: {result.message}")

            if status == CycleStatus.HEALTHY:
                self.alerts.info(
                    f"Health check completed: {final.passed}/{final.total} checks passed, "
                    f"{final.warned} warnings"
                )
        finally:
            self.set_phase(CyclePhase.IDLE)

        report = CycleReport(initial=initial, final=final, status=status)
        logger.info(
            "Cycle finished: %s (%d/%d passed after repairs)",
            status.value, final.passed, final.total,
        )
        if self.on_cycle:
            try:
                self.on_cycle(report)
            except Exception:
                logger.exception("Cycle callback error")
        return report

    # -- boot readiness --------------------------------------------------------

    def wait_for_readiness(self, config: ReadinessWaitConfig) -> bool:
        """Poll the readiness probe; on exhaustion warn and carry on."""
        logger.info(
            "Waiting for readiness (every %gs, up to %d attempts)",
            config.interval, config.max_attempts,
        )
        attempt = wait_until(
            config.probe,
            interval=config.interval,
            max_attempts=config.max_attempts,
            sleep=self._stop.wait,
            cancelled=self._stop.is_set,
        )
        if attempt is not None:
            logger.info("Ready after %d attempt(s)", attempt)
            return True
        if not self._stop.is_set():
            self.alerts.warning(
                f"Network not ready after {config.max_attempts} attempts; proceeding anyway"
            )
        return False

    # -- continuous mode -------------------------------------------------------

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        """Ask the loop to exit after the current cycle. Safe from signal handlers."""
        if not self._stop.is_set():
            logger.info("Stop requested; finishing current cycle")
        self._stop.set()

    async def run_forever(self, readiness: ReadinessWaitConfig | None = None) -> int:
        """Run cycles every ``interval`` seconds until stopped. Returns cycles run."""
        loop = asyncio.get_running_loop()
        cycles = 0

        if readiness is not None:
            await loop.run_in_executor(None, self.wait_for_readiness, readiness)

        logger.info("Continuous monitoring started (interval=%gs)", self.interval)
        while not self._stop.is_set():
            try:
                await loop.run_in_executor(None, self.run_cycle)
            except Exception:
                logger.exception("Health cycle error")
            cycles += 1
            if self._stop.is_set():
                break
            logger.debug("Waiting %gs until next check", self.interval)
            # Event.wait returns as soon as request_stop() is called
            await loop.run_in_executor(None, self._stop.wait, self.interval)

        logger.info("Continuous monitoring stopped after %d cycle(s)", cycles)
        return cycles
