"""Repair engine — applies bound corrective actions to failing probes.

For each Fail with a bound action, in priority order:
apply → (grace period) → re-run that probe → fold the result back.
One attempt per probe per cycle; a repair that does not converge raises
an Alert and waits for a human. Persistence is a best-effort follow-up
that only downgrades to a Warning.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace

from vpnguard.errors import PersistenceError, RepairApplyError, RepairError, RepairVerifyFailed
from vpnguard.gateway import GatewayConfig, Host
from vpnguard.health.alerts import AlertSink
from vpnguard.health.engine import CheckEngine, CheckResult, CyclePhase, RunSummary, Status
from vpnguard.health.probes import (
    FIREWALL_RULES_PRESENT,
    INTERFACE_UP,
    IP_FORWARDING_ENABLED,
    SERVICE_RUNNING,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepairAction:
    """Idempotent corrective procedure bound to exactly one probe.

    ``apply`` raises RepairError on failure. ``persist`` returns False when
    no persistence mechanism exists and raises PersistenceError on failure.
    ``refresh`` names probes to re-run once this repair converges.
    """

    target_probe_name: str
    apply: Callable[[], object]
    priority: int = 100
    persist: Callable[[], object] | None = None
    grace_seconds: float = 0.0
    refresh: tuple[str, ...] = ()
    idempotent: bool = True


@dataclass(frozen=True)
class RepairOutcome:
    probe_name: str
    applied: bool
    converged: bool
    persisted: bool | None = None
    error: str = ""


class RepairEngine:
    def __init__(
        self,
        check_engine: CheckEngine,
        actions: Sequence[RepairAction],
        alerts: AlertSink,
        sleep: Callable[[float], object] = time.sleep,
        on_phase: Callable[[CyclePhase], object] | None = None,
    ) -> None:
        self.check_engine = check_engine
        self.alerts = alerts
        self._sleep = sleep
        self.on_phase = on_phase
        self._actions: dict[str, RepairAction] = {}
        for action in actions:
            if action.target_probe_name in self._actions:
                raise ValueError(f"More than one repair bound to {action.target_probe_name}")
            if check_engine.get(action.target_probe_name) is None:
                raise ValueError(f"Repair bound to unknown probe {action.target_probe_name}")
            self._actions[action.target_probe_name] = action

    def bound(self, probe_name: str) -> RepairAction | None:
        return self._actions.get(probe_name)

    def plan(self, summary: RunSummary) -> list[RepairAction]:
        """Actions to run for this summary, highest priority first."""
        order = {name: i for i, name in enumerate(self.check_engine.probe_names)}
        actions = [self._actions[r.probe_name] for r in summary.failures() if r.probe_name in self._actions]
        return sorted(actions, key=lambda a: (a.priority, order[a.target_probe_name]))

    def reconcile(self, summary: RunSummary) -> RunSummary:
        outcomes: list[RepairOutcome] = []
        for action in self.plan(summary):
            current = summary.get(action.target_probe_name)
            # An earlier repair's refresh may already have cleared this one
            if current is None or current.status != Status.FAIL:
                continue
            summary, outcome = self._repair(summary, action, current)
            outcomes.append(outcome)

        for result in summary.failures():
            if result.probe_name not in self._actions:
                self.alerts.alert(f"{result.probe_name}: {result.message} (no automatic repair)")

        return replace(summary, repairs=tuple(outcomes))

    # -- single repair ---------------------------------------------------------

    def _repair(
        self, summary: RunSummary, action: RepairAction, failing: CheckResult,
    ) -> tuple[RunSummary, RepairOutcome]:
        name = action.target_probe_name
        self.alerts.warning(f"{name}: {failing.message}; attempting repair")
        self._phase(CyclePhase.REPAIRING)

        try:
            action.apply()
        except RepairError as e:
            return self._apply_failed(summary, failing, e)
        except Exception as e:
            logger.exception("Repair for %s raised", name)
            return self._apply_failed(summary, failing, RepairApplyError(f"{type(e).__name__}: {e}"))

        if action.grace_seconds > 0:
            self._sleep(action.grace_seconds)

        self._phase(CyclePhase.REVERIFYING)
        probe = self.check_engine.get(name)
        recheck = self.check_engine.run_probe(probe)
        summary = summary.with_result(recheck)

        if recheck.status == Status.FAIL:
            error = RepairVerifyFailed(name, recheck.message)
            self.alerts.alert(str(error))
            return summary, RepairOutcome(name, applied=True, converged=False, error=str(error))

        logger.info("Repair of %s converged: %s", name, recheck.message)
        persisted = self._persist(action)

        for dependent in action.refresh:
            dep_probe = self.check_engine.get(dependent)
            if dep_probe is not None:
                summary = summary.with_result(self.check_engine.run_probe(dep_probe))

        return summary, RepairOutcome(name, applied=True, converged=True, persisted=persisted)

    def _apply_failed(
        self, summary: RunSummary, failing: CheckResult, error: RepairError,
    ) -> tuple[RunSummary, RepairOutcome]:
        name = failing.probe_name
        self.alerts.alert(f"{name}: repair failed: {error}")
        updated = replace(failing, message=f"{failing.message}; repair failed: {error}")
        return (
            summary.with_result(updated),
            RepairOutcome(name, applied=False, converged=False, error=str(error)),
        )

    def _persist(self, action: RepairAction) -> bool | None:
        if action.persist is None:
            return None
        try:
            return action.persist() is not False
        except PersistenceError as e:
            self.alerts.warning(f"{action.target_probe_name}: {e}")
            return False
        except Exception as e:
            logger.exception("Persisting %s raised", action.target_probe_name)
            self.alerts.warning(f"{action.target_probe_name}: persistence failed: {type(e).__name__}: {e}")
            return False

    def _phase(self, phase: CyclePhase) -> None:
        if self.on_phase is not None:
            self.on_phase(phase)


def build_repairs(host: Host, cfg: GatewayConfig, restart_grace_seconds: float = 5.0) -> list[RepairAction]:
    """Repairs for the three hard preconditions, service first."""
    rules = cfg.rule_set()
    return [
        RepairAction(
            SERVICE_RUNNING,
            apply=lambda: host.service.restart(cfg.service_name),
            priority=0,
            grace_seconds=restart_grace_seconds,
            refresh=(INTERFACE_UP,),
        ),
        RepairAction(
            FIREWALL_RULES_PRESENT,
            apply=lambda: host.firewall.install_rule_set(rules),
            priority=1,
            persist=host.firewall.persist_rules,
        ),
        RepairAction(
            IP_FORWARDING_ENABLED,
            apply=lambda: host.forwarding.set_forwarding_flag(True),
            priority=2,
            persist=lambda: host.forwarding.persist_forwarding_flag(True),
        ),
    ]
