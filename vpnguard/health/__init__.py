"""Health subsystem — probes, check engine, repair engine, alert sink, scheduler."""

from .alerts import AlertRecord, AlertSink, Severity
from .engine import CheckEngine, CheckResult, CyclePhase, Probe, RunSummary, Status
from .probes import PROBE_ORDER, build_probes
from .repair import RepairAction, RepairEngine, RepairOutcome, build_repairs
from .retry import ReadinessWaitConfig, wait_until
from .scheduler import CycleReport, CycleStatus, HealthScheduler
