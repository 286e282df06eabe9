"""Gateway topology and the host collaborators the engines are built on."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from vpnguard.config import Settings
from vpnguard.system import (
    CommandRunner,
    ConnectedClient,
    FirewallRule,
    ForwardingFlag,
    InterfaceQuery,
    IptablesFirewall,
    OpenVPNStatusSource,
    ResourceMetrics,
    SystemdServiceControl,
    build_rule_set,
    match_patterns,
)


@dataclass(frozen=True)
class GatewayConfig:
    """What the gateway is supposed to look like."""

    service_name: str = "openvpn@server"
    tunnel_interface: str = "tun0"
    tunnel_subnet: str = "10.8.0.0/24"
    service_port: int = 1194
    service_protocol: str = "udp"
    egress_interface: str = "eth0"
    disk_path: str = "/"
    disk_warn_percent: int = 90
    memory_warn_percent: int = 90
    interface_settle_seconds: float = 30.0

    @classmethod
    def from_settings(cls, s: Settings) -> GatewayConfig:
        return cls(
            service_name=s.service_name,
            tunnel_interface=s.tunnel_interface,
            tunnel_subnet=s.tunnel_subnet,
            service_port=s.service_port,
            service_protocol=s.service_protocol,
            egress_interface=s.egress_interface,
            disk_path=s.disk_path,
            disk_warn_percent=s.disk_warn_percent,
            memory_warn_percent=s.memory_warn_percent,
            interface_settle_seconds=s.interface_settle_seconds,
        )

    def rule_set(self) -> tuple[FirewallRule, ...]:
        return build_rule_set(
            self.tunnel_subnet,
            self.tunnel_interface,
            self.service_port,
            self.service_protocol,
            self.egress_interface,
        )

    def rule_patterns(self) -> tuple[str, ...]:
        return match_patterns(self.tunnel_subnet, self.tunnel_interface, self.service_port)


# ── Collaborator contracts ───────────────────────────────────────────────────


@runtime_checkable
class ServiceControl(Protocol):
    def is_active(self, service: str) -> bool: ...

    def restart(self, service: str) -> None: ...

    def active_seconds(self, service: str) -> float | None: ...


@runtime_checkable
class InterfaceStatus(Protocol):
    def exists_and_up(self, interface_name: str) -> bool: ...


@runtime_checkable
class Firewall(Protocol):
    def count_matching_rules(self, patterns: Sequence[str]) -> int: ...

    def missing_rules(self, rules: Sequence[FirewallRule]) -> list[FirewallRule]: ...

    def install_rule_set(self, rules: Sequence[FirewallRule]) -> int:
        """Raises RepairApplyError when any rule is left uninstalled."""
        ...

    def persist_rules(self) -> bool:
        """False when no persistence mechanism exists; raises PersistenceError on failure."""
        ...


@runtime_checkable
class ForwardingControl(Protocol):
    def get_forwarding_flag(self) -> bool: ...

    def set_forwarding_flag(self, enabled: bool) -> None: ...

    def persist_forwarding_flag(self, enabled: bool) -> None: ...

    def set_and_persist_forwarding_flag(self, enabled: bool) -> None: ...


@runtime_checkable
class Metrics(Protocol):
    def disk_usage_percent(self, path: str = "/") -> int: ...

    def memory_usage_percent(self) -> int: ...


@runtime_checkable
class ConnectionStatus(Protocol):
    def active_connection_count(self) -> int | None: ...

    def clients(self) -> list[ConnectedClient] | None: ...


@dataclass
class Host:
    """Injected collaborators. Tests swap any of these for fakes."""

    service: ServiceControl = field(default_factory=SystemdServiceControl)
    interfaces: InterfaceStatus = field(default_factory=InterfaceQuery)
    firewall: Firewall = field(default_factory=IptablesFirewall)
    forwarding: ForwardingControl = field(default_factory=ForwardingFlag)
    metrics: Metrics = field(default_factory=ResourceMetrics)
    connections: ConnectionStatus = field(default_factory=OpenVPNStatusSource)

    @classmethod
    def from_settings(cls, s: Settings) -> Host:
        runner = CommandRunner(timeout=s.command_timeout)
        return cls(
            service=SystemdServiceControl(runner),
            interfaces=InterfaceQuery(runner),
            firewall=IptablesFirewall(runner),
            forwarding=ForwardingFlag(s.forwarding_flag_path, s.sysctl_dropin_path, runner),
            metrics=ResourceMetrics(),
            connections=OpenVPNStatusSource(s.status_log_path),
        )
