"""Shared test fixtures — fake host collaborators and engine factories."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from vpnguard.gateway import GatewayConfig, Host
from vpnguard.health import (
    AlertSink,
    CheckEngine,
    HealthScheduler,
    RepairEngine,
    build_probes,
    build_repairs,
)
from vpnguard.system.commands import CommandResult, CommandRunner


# ── Fake collaborators ───────────────────────────────────────────────────────


class FakeService:
    def __init__(self, active: bool = True, active_for: float | None = 3600.0, calls: list | None = None) -> None:
        self.active = active
        self.active_for = active_for
        self.restart_fixes = True
        self.restart_error: Exception | None = None
        self.restarts = 0
        self.calls = calls if calls is not None else []

    def is_active(self, service: str) -> bool:
        return self.active

    def restart(self, service: str) -> None:
        self.restarts += 1
        self.calls.append("service")
        if self.restart_error is not None:
            raise self.restart_error
        if self.restart_fixes:
            self.active = True
            self.active_for = 0.0

    def active_seconds(self, service: str) -> float | None:
        return self.active_for if self.active else None


class FakeInterfaces:
    def __init__(self, up: bool = True) -> None:
        self.up = up

    def exists_and_up(self, interface_name: str) -> bool:
        return self.up


class FakeFirewall:
    def __init__(self, rules: int = 5, calls: list | None = None) -> None:
        self.rules = rules
        self.install_fixes = True
        self.install_error: Exception | None = None
        self.persist_error: Exception | None = None
        self.has_persistence = True
        self.installs = 0
        self.persists = 0
        self.calls = calls if calls is not None else []

    def count_matching_rules(self, patterns) -> int:
        return self.rules

    def missing_rules(self, rules) -> list:
        return list(rules[self.rules:])

    def install_rule_set(self, rules) -> int:
        self.installs += 1
        self.calls.append("firewall")
        if self.install_error is not None:
            raise self.install_error
        if not self.install_fixes:
            return 0
        added = max(0, len(rules) - self.rules)
        self.rules = max(self.rules, len(rules))
        return added

    def persist_rules(self) -> bool:
        self.persists += 1
        if self.persist_error is not None:
            raise self.persist_error
        return self.has_persistence


class FakeForwarding:
    def __init__(self, enabled: bool = True, calls: list | None = None) -> None:
        self.enabled = enabled
        self.set_fixes = True
        self.persisted: bool | None = None
        self.persist_error: Exception | None = None
        self.set_calls = 0
        self.calls = calls if calls is not None else []

    def get_forwarding_flag(self) -> bool:
        return self.enabled

    def set_forwarding_flag(self, enabled: bool) -> None:
        self.set_calls += 1
        self.calls.append("forwarding")
        if self.set_fixes:
            self.enabled = enabled

    def persist_forwarding_flag(self, enabled: bool) -> None:
        if self.persist_error is not None:
            raise self.persist_error
        self.persisted = enabled

    def set_and_persist_forwarding_flag(self, enabled: bool) -> None:
        self.set_forwarding_flag(enabled)
        self.persist_forwarding_flag(enabled)


class FakeMetrics:
    def __init__(self, disk: int = 40, memory: int = 50) -> None:
        self.disk = disk
        self.memory = memory

    def disk_usage_percent(self, path: str = "/") -> int:
        return self.disk

    def memory_usage_percent(self) -> int:
        return self.memory


class FakeConnections:
    def __init__(self, count: int | None = 3) -> None:
        self.count = count

    def active_connection_count(self) -> int | None:
        return self.count

    def clients(self):
        return None


class ScriptedRunner(CommandRunner):
    """CommandRunner that answers from a table instead of spawning processes."""

    def __init__(self, responses: dict[tuple[str, ...], CommandResult] | None = None) -> None:
        super().__init__(timeout=1.0)
        self.responses = responses or {}
        self.calls: list[list[str]] = []

    def run(self, cmd: list[str], timeout: float | None = None) -> CommandResult:
        self.calls.append(list(cmd))
        return self.responses.get(tuple(cmd), CommandResult(1, "", "unexpected command", 0))


class IptablesSim(CommandRunner):
    """In-memory iptables: understands -S, -C, -A and netfilter-persistent."""

    def __init__(self) -> None:
        super().__init__(timeout=1.0)
        self.tables: dict[str, list[tuple[str, tuple[str, ...]]]] = {"filter": [], "nat": []}
        self.fail_chains: set[str] = set()
        self.saved = 0
        self.calls: list[list[str]] = []

    def run(self, cmd: list[str], timeout: float | None = None) -> CommandResult:
        self.calls.append(list(cmd))
        if cmd == ["netfilter-persistent", "save"]:
            self.saved += 1
            return CommandResult(0, "", "", 0)
        if cmd[:2] != ["iptables", "-t"]:
            return CommandResult(1, "", "unexpected command", 0)

        table, action = cmd[2], cmd[3]
        rules = self.tables[table]
        if action == "-S":
            lines = [f"-A {chain} {' '.join(args)}" for chain, args in rules]
            return CommandResult(0, "\n".join(["-P INPUT ACCEPT", *lines]) + "\n", "", 0)

        entry = (cmd[4], tuple(cmd[5:]))
        if action == "-C":
            found = entry in rules
            return CommandResult(0 if found else 1, "", "" if found else "Bad rule", 0)
        if action == "-A":
            if entry[0] in self.fail_chains:
                return CommandResult(4, "", "iptables: Resource temporarily unavailable.", 0)
            rules.append(entry)
            return CommandResult(0, "", "", 0)
        return CommandResult(2, "", "unsupported", 0)

    def snapshot(self) -> dict[str, list[tuple[str, tuple[str, ...]]]]:
        return {t: list(r) for t, r in self.tables.items()}


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def calls() -> list[str]:
    """Shared log of repair invocations, in order."""
    return []


@pytest.fixture
def host(calls: list[str]) -> Host:
    """A fully healthy gateway."""
    return Host(
        service=FakeService(calls=calls),
        interfaces=FakeInterfaces(),
        firewall=FakeFirewall(calls=calls),
        forwarding=FakeForwarding(calls=calls),
        metrics=FakeMetrics(),
        connections=FakeConnections(),
    )


@pytest.fixture
def cfg() -> GatewayConfig:
    return GatewayConfig()


@pytest.fixture
def alerts(tmp_path: Path) -> AlertSink:
    return AlertSink(tmp_path / "logs" / "health_alerts.log")


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_scheduler(
    host: Host, cfg: GatewayConfig, alerts: AlertSink, sleeps: list[float],
) -> Callable[..., HealthScheduler]:
    """Factory: scheduler wired to the fake host, with a recording sleep."""

    def _make(interval: float = 300.0, grace: float = 5.0) -> HealthScheduler:
        engine = CheckEngine(build_probes(host, cfg), timeout=2.0)
        repair = RepairEngine(engine, build_repairs(host, cfg, grace), alerts, sleep=sleeps.append)
        return HealthScheduler(engine, repair, alerts, interval=interval)

    return _make


@pytest.fixture
def iptables() -> IptablesSim:
    return IptablesSim()


@pytest.fixture
def scripted() -> type[ScriptedRunner]:
    """The ScriptedRunner class, for tests that build their own response table."""
    return ScriptedRunner
