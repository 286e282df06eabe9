"""Host collaborators — service manager, interfaces, firewall, sysctl, metrics."""

from .commands import CommandResult, CommandRunner
from .connections import ConnectedClient, OpenVPNStatusSource
from .firewall import FirewallRule, IptablesFirewall, build_rule_set, match_patterns
from .metrics import ResourceMetrics
from .network import InterfaceQuery, PingReachability
from .service import SystemdServiceControl
from .sysctl import ForwardingFlag
