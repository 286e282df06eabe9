"""The monitored preconditions, in report order.

Each probe only reads host state. Hard preconditions Fail; resource
pressure and missing diagnostics Warn, which never triggers a repair.
"""

from __future__ import annotations

from functools import partial

from vpnguard.gateway import GatewayConfig, Host
from vpnguard.health.engine import CheckResult, Probe, Status

SERVICE_RUNNING = "service_running"
INTERFACE_UP = "interface_up"
FIREWALL_RULES_PRESENT = "firewall_rules_present"
IP_FORWARDING_ENABLED = "ip_forwarding_enabled"
DISK_USAGE = "disk_usage"
MEMORY_USAGE = "memory_usage"
ACTIVE_CONNECTION_COUNT = "active_connection_count"

PROBE_ORDER = (
    SERVICE_RUNNING,
    INTERFACE_UP,
    FIREWALL_RULES_PRESENT,
    IP_FORWARDING_ENABLED,
    DISK_USAGE,
    MEMORY_USAGE,
    ACTIVE_CONNECTION_COUNT,
)

# Prefix of interface_up Warns that only echo a service that is down or still starting
TRANSITIONAL = "transitional"


def is_transitional(result: CheckResult) -> bool:
    return (
        result.probe_name == INTERFACE_UP
        and result.status == Status.WARN
        and result.message.startswith(TRANSITIONAL)
    )


def check_service_running(host: Host, cfg: GatewayConfig) -> CheckResult:
    if host.service.is_active(cfg.service_name):
        return CheckResult(SERVICE_RUNNING, Status.PASS, f"{cfg.service_name} is running")
    return CheckResult(SERVICE_RUNNING, Status.FAIL, f"{cfg.service_name} is down")


def check_interface_up(host: Host, cfg: GatewayConfig) -> CheckResult:
    """Interface absence is only a hard failure once the service has settled."""
    iface = cfg.tunnel_interface
    if host.interfaces.exists_and_up(iface):
        return CheckResult(INTERFACE_UP, Status.PASS, f"VPN interface ({iface}) is active")

    if not host.service.is_active(cfg.service_name):
        return CheckResult(
            INTERFACE_UP, Status.WARN,
            f"{TRANSITIONAL}: {iface} is missing while {cfg.service_name} is not active",
        )

    active_for = host.service.active_seconds(cfg.service_name)
    if active_for is not None and active_for < cfg.interface_settle_seconds:
        return CheckResult(
            INTERFACE_UP, Status.WARN,
            f"{TRANSITIONAL}: {iface} is missing, {cfg.service_name} started {active_for:.0f}s ago",
        )

    return CheckResult(
        INTERFACE_UP, Status.FAIL,
        f"VPN interface ({iface}) is missing while {cfg.service_name} is active",
    )


def check_firewall_rules(host: Host, cfg: GatewayConfig) -> CheckResult:
    """Pass only when every expected rule is present; the count is diagnostic."""
    rules = cfg.rule_set()
    expected = len(rules)
    count = host.firewall.count_matching_rules(cfg.rule_patterns())
    missing = host.firewall.missing_rules(rules)
    if count == 0 or len(missing) == expected:
        return CheckResult(
            FIREWALL_RULES_PRESENT, Status.FAIL,
            f"Firewall rules are missing ({count} rules found, expected {expected})",
        )
    if missing:
        return CheckResult(
            FIREWALL_RULES_PRESENT, Status.WARN,
            f"Firewall rule set incomplete ({count} rules found, "
            f"{len(missing)} of {expected} missing: {'; '.join(str(r) for r in missing)})",
        )
    return CheckResult(
        FIREWALL_RULES_PRESENT, Status.PASS, f"Firewall rules are configured ({count} rules found)",
    )


def check_ip_forwarding(host: Host, cfg: GatewayConfig) -> CheckResult:
    if host.forwarding.get_forwarding_flag():
        return CheckResult(IP_FORWARDING_ENABLED, Status.PASS, "IP forwarding is enabled")
    return CheckResult(IP_FORWARDING_ENABLED, Status.FAIL, "IP forwarding is disabled")


def check_disk_usage(host: Host, cfg: GatewayConfig) -> CheckResult:
    pct = host.metrics.disk_usage_percent(cfg.disk_path)
    if pct > cfg.disk_warn_percent:
        return CheckResult(
            DISK_USAGE, Status.WARN,
            f"Disk usage is high: {pct}% (threshold {cfg.disk_warn_percent}%)",
        )
    return CheckResult(DISK_USAGE, Status.PASS, f"Disk usage is normal: {pct}%")


def check_memory_usage(host: Host, cfg: GatewayConfig) -> CheckResult:
    pct = host.metrics.memory_usage_percent()
    if pct > cfg.memory_warn_percent:
        return CheckResult(
            MEMORY_USAGE, Status.WARN,
            f"Memory usage is high: {pct}% (threshold {cfg.memory_warn_percent}%)",
        )
    return CheckResult(MEMORY_USAGE, Status.PASS, f"Memory usage is normal: {pct}%")


def check_active_connections(host: Host, cfg: GatewayConfig) -> CheckResult:
    count = host.connections.active_connection_count()
    if count is None:
        return CheckResult(ACTIVE_CONNECTION_COUNT, Status.WARN, "OpenVPN status log not found")
    return CheckResult(ACTIVE_CONNECTION_COUNT, Status.PASS, f"Active VPN connections: {count}")


_CHECKS = {
    SERVICE_RUNNING: check_service_running,
    INTERFACE_UP: check_interface_up,
    FIREWALL_RULES_PRESENT: check_firewall_rules,
    IP_FORWARDING_ENABLED: check_ip_forwarding,
    DISK_USAGE: check_disk_usage,
    MEMORY_USAGE: check_memory_usage,
    ACTIVE_CONNECTION_COUNT: check_active_connections,
}


def build_probes(host: Host, cfg: GatewayConfig) -> list[Probe]:
    """Bind every check to the host, in fixed declaration order."""
    return [Probe(name, partial(_CHECKS[name], host, cfg)) for name in PROBE_ORDER]
