"""iptables rule installer for the tunnel's NAT / forward / accept rules.

Installation is idempotent: each rule is probed with ``-C`` and only appended
when missing, so a repeated repair never duplicates rules. A partial install
leaves the missing rules absent, which the next cycle detects.
"""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from vpnguard.errors import CommandError, FirewallError, PersistenceError
from vpnguard.system.commands import CommandRunner

logger = logging.getLogger(__name__)

TABLES = ("filter", "nat")


@dataclass(frozen=True)
class FirewallRule:
    """One iptables rule, as the arguments that follow ``-A <chain>``."""

    table: str
    chain: str
    args: tuple[str, ...]

    def argv(self, action: str) -> list[str]:
        return ["iptables", "-t", self.table, action, self.chain, *self.args]

    def __str__(self) -> str:
        return f"{self.table}/{self.chain} {' '.join(self.args)}"


def build_rule_set(
    subnet: str,
    interface: str,
    port: int,
    protocol: str = "udp",
    egress_interface: str = "eth0",
) -> tuple[FirewallRule, ...]:
    """The full rule set the gateway needs, in installation order."""
    return (
        FirewallRule("nat", "POSTROUTING", ("-s", subnet, "-o", egress_interface, "-j", "MASQUERADE")),
        FirewallRule("filter", "INPUT", ("-p", protocol, "--dport", str(port), "-j", "ACCEPT")),
        FirewallRule("filter", "INPUT", ("-i", interface, "-j", "ACCEPT")),
        FirewallRule("filter", "FORWARD", ("-i", interface, "-j", "ACCEPT")),
        FirewallRule("filter", "FORWARD", ("-o", interface, "-j", "ACCEPT")),
    )


def match_patterns(subnet: str, interface: str, port: int) -> tuple[str, ...]:
    """Regexes identifying tunnel rules in ``iptables -S`` output."""
    return (
        rf"--dport {port}\b",
        rf"-[io] {re.escape(interface)}\b",
        rf"-s {re.escape(subnet)}(\s|$)",
    )


class IptablesFirewall:
    def __init__(
        self,
        runner: CommandRunner | None = None,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.runner = runner or CommandRunner()
        self._which = which

    def list_rules(self) -> list[str]:
        rules: list[str] = []
        for table in TABLES:
            result = self.runner.check(["iptables", "-t", table, "-S"])
            rules.extend(line for line in result.stdout.splitlines() if line.startswith("-A "))
        return rules

    def count_matching_rules(self, patterns: Sequence[str]) -> int:
        compiled = [re.compile(p) for p in patterns]
        return sum(1 for rule in self.list_rules() if any(c.search(rule) for c in compiled))

    def has_rule(self, rule: FirewallRule) -> bool:
        return self.runner.run(rule.argv("-C")).ok

    def missing_rules(self, rules: Sequence[FirewallRule]) -> list[FirewallRule]:
        """Expected rules that `iptables -C` does not find, in the given order."""
        return [rule for rule in rules if not self.has_rule(rule)]

    def install_rule_set(self, rules: Sequence[FirewallRule]) -> int:
        """Append every missing rule. Returns how many were added."""
        added = 0
        failed: list[str] = []
        for rule in rules:
            if self.has_rule(rule):
                continue
            try:
                self.runner.check(rule.argv("-A"))
                added += 1
                logger.info("Installed firewall rule %s", rule)
            except CommandError as e:
                logger.error("Failed to install firewall rule %s: %s", rule, e)
                failed.append(str(rule))
        if failed:
            raise FirewallError(
                f"{len(failed)} of {len(rules)} rules not installed: {'; '.join(failed)}"
            )
        return added

    def persist_rules(self) -> bool:
        """Save the live table across reboots. False if no mechanism is installed."""
        if not self._which("netfilter-persistent"):
            logger.info("netfilter-persistent not installed; rules not persisted")
            return False
        try:
            self.runner.check(["netfilter-persistent", "save"])
        except CommandError as e:
            raise PersistenceError(f"saving firewall rules failed: {e}") from e
        return True
