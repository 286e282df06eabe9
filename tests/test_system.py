"""Tests for host collaborators — commands, systemd, iproute2, iptables, sysctl."""

from __future__ import annotations

import subprocess
import time
from collections import namedtuple
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from vpnguard.errors import (
    CommandError,
    FirewallError,
    PersistenceError,
    RepairApplyError,
    ServiceControlError,
)
from vpnguard.gateway import GatewayConfig
from vpnguard.system import (
    CommandResult,
    CommandRunner,
    ForwardingFlag,
    InterfaceQuery,
    IptablesFirewall,
    OpenVPNStatusSource,
    PingReachability,
    ResourceMetrics,
    SystemdServiceControl,
)
from vpnguard.system.connections import parse_status

OK = CommandResult(0, "", "", 0)
FAIL = CommandResult(1, "", "failed", 0)


# ── CommandRunner ────────────────────────────────────────────────────────────


class TestCommandRunner:
    @patch("vpnguard.system.commands.subprocess.run")
    def test_success(self, mock_run: MagicMock) -> None:
        mock_run.return_value = MagicMock(returncode=0, stdout="active\n", stderr="")
        result = CommandRunner().run(["systemctl", "is-active", "x"])
        assert result.ok
        assert result.stdout == "active\n"
        assert mock_run.call_args.args[0] == ["systemctl", "is-active", "x"]
        assert "shell" not in mock_run.call_args.kwargs

    @patch("vpnguard.system.commands.subprocess.run")
    def test_timeout(self, mock_run: MagicMock) -> None:
        mock_run.side_effect = subprocess.TimeoutExpired(cmd=["iptables"], timeout=3)
        result = CommandRunner(timeout=3).run(["iptables", "-S"])
        assert result.exit_code == -1
        assert "timed out" in result.stderr

    @patch("vpnguard.system.commands.subprocess.run")
    def test_missing_binary(self, mock_run: MagicMock) -> None:
        mock_run.side_effect = FileNotFoundError("netfilter-persistent")
        result = CommandRunner().run(["netfilter-persistent", "save"])
        assert result.exit_code == -1
        assert "not found" in result.stderr

    @patch("vpnguard.system.commands.subprocess.run")
    def test_check_raises(self, mock_run: MagicMock) -> None:
        mock_run.return_value = MagicMock(returncode=5, stdout="", stderr="Job failed.\n")
        with pytest.raises(CommandError) as exc:
            CommandRunner().check(["systemctl", "restart", "x"])
        assert exc.value.exit_code == 5
        assert "Job failed." in str(exc.value)


# ── systemd ──────────────────────────────────────────────────────────────────


class TestSystemdServiceControl:
    def test_is_active(self, scripted) -> None:
        runner = scripted({("systemctl", "is-active", "--quiet", "openvpn@server"): OK})
        svc = SystemdServiceControl(runner)
        assert svc.is_active("openvpn@server")
        assert not svc.is_active("other")

    def test_restart_failure(self, scripted) -> None:
        svc = SystemdServiceControl(scripted())
        with pytest.raises(ServiceControlError, match="restart of openvpn@server failed"):
            svc.restart("openvpn@server")

    def test_restart_ok(self, scripted) -> None:
        runner = scripted({("systemctl", "restart", "openvpn@server"): OK})
        SystemdServiceControl(runner).restart("openvpn@server")
        assert runner.calls == [["systemctl", "restart", "openvpn@server"]]

    def test_active_seconds(self, scripted) -> None:
        entered_us = int((time.monotonic() - 42) * 1_000_000)
        cmd = ("systemctl", "show", "-p", "ActiveEnterTimestampMonotonic", "--value", "svc")
        runner = scripted({cmd: CommandResult(0, f"{entered_us}\n", "", 0)})
        age = SystemdServiceControl(runner).active_seconds("svc")
        assert age is not None
        assert 41 <= age <= 50

    def test_active_seconds_unknown(self, scripted) -> None:
        cmd = ("systemctl", "show", "-p", "ActiveEnterTimestampMonotonic", "--value", "svc")
        runner = scripted({cmd: CommandResult(0, "0\n", "", 0)})
        assert SystemdServiceControl(runner).active_seconds("svc") is None


# ── iproute2 / ping ──────────────────────────────────────────────────────────


class TestInterfaceQuery:
    CMD = ("ip", "-o", "link", "show", "tun0")

    def test_up(self, scripted) -> None:
        out = "7: tun0: <POINTOPOINT,MULTICAST,NOARP,UP,LOWER_UP> mtu 1500 qdisc fq_codel state UNKNOWN\n"
        runner = scripted({self.CMD: CommandResult(0, out, "", 0)})
        assert InterfaceQuery(runner).exists_and_up("tun0")

    def test_down(self, scripted) -> None:
        out = "7: tun0: <POINTOPOINT,MULTICAST,NOARP> mtu 1500 qdisc noop state DOWN\n"
        runner = scripted({self.CMD: CommandResult(0, out, "", 0)})
        assert not InterfaceQuery(runner).exists_and_up("tun0")

    def test_missing(self, scripted) -> None:
        runner = scripted({self.CMD: CommandResult(1, "", 'Device "tun0" does not exist.', 0)})
        assert not InterfaceQuery(runner).exists_and_up("tun0")


class TestPingReachability:
    def test_reachable(self, scripted) -> None:
        runner = scripted({("ping", "-c", "1", "-W", "2", "8.8.8.8"): OK})
        assert PingReachability("8.8.8.8", runner)()

    def test_unreachable(self, scripted) -> None:
        assert not PingReachability("8.8.8.8", scripted())()


# ── iptables ─────────────────────────────────────────────────────────────────


class TestIptablesFirewall:
    def test_empty_table_counts_zero(self, iptables, cfg: GatewayConfig) -> None:
        fw = IptablesFirewall(iptables, which=lambda name: None)
        assert fw.count_matching_rules(cfg.rule_patterns()) == 0

    def test_install_full_set(self, iptables, cfg: GatewayConfig) -> None:
        fw = IptablesFirewall(iptables, which=lambda name: None)
        added = fw.install_rule_set(cfg.rule_set())
        assert added == 5
        assert fw.count_matching_rules(cfg.rule_patterns()) == 5
        assert ("POSTROUTING", ("-s", "10.8.0.0/24", "-o", "eth0", "-j", "MASQUERADE")) in iptables.tables["nat"]

    def test_install_is_idempotent(self, iptables, cfg: GatewayConfig) -> None:
        fw = IptablesFirewall(iptables, which=lambda name: None)
        fw.install_rule_set(cfg.rule_set())
        before = iptables.snapshot()
        assert fw.install_rule_set(cfg.rule_set()) == 0
        assert iptables.snapshot() == before

    def test_unrelated_rules_not_counted(self, iptables, cfg: GatewayConfig) -> None:
        iptables.tables["filter"].append(("INPUT", ("-p", "tcp", "--dport", "22", "-j", "ACCEPT")))
        fw = IptablesFirewall(iptables, which=lambda name: None)
        assert fw.count_matching_rules(cfg.rule_patterns()) == 0

    def test_partial_install_is_detectable(self, iptables, cfg: GatewayConfig) -> None:
        iptables.fail_chains = {"FORWARD"}
        fw = IptablesFirewall(iptables, which=lambda name: None)
        with pytest.raises(FirewallError, match="2 of 5"):
            fw.install_rule_set(cfg.rule_set())
        assert fw.count_matching_rules(cfg.rule_patterns()) == 3

        iptables.fail_chains = set()
        assert fw.install_rule_set(cfg.rule_set()) == 2
        assert fw.count_matching_rules(cfg.rule_patterns()) == 5

    def test_missing_rules_checks_each_rule(self, iptables, cfg: GatewayConfig) -> None:
        fw = IptablesFirewall(iptables, which=lambda name: None)
        rules = cfg.rule_set()
        assert fw.missing_rules(rules) == list(rules)

        fw.install_rule_set(rules[1:])
        iptables.tables["filter"].append(("FORWARD", ("-i", "tun0", "-j", "ACCEPT")))
        assert fw.count_matching_rules(cfg.rule_patterns()) == 5
        assert fw.missing_rules(rules) == [rules[0]]
        assert all(c[3] == "-C" for c in iptables.calls[-5:])

    def test_persist_without_mechanism(self, iptables) -> None:
        fw = IptablesFirewall(iptables, which=lambda name: None)
        assert fw.persist_rules() is False
        assert iptables.saved == 0

    def test_persist(self, iptables) -> None:
        fw = IptablesFirewall(iptables, which=lambda name: "/usr/sbin/netfilter-persistent")
        assert fw.persist_rules() is True
        assert iptables.saved == 1

    def test_persist_failure(self, scripted) -> None:
        fw = IptablesFirewall(scripted(), which=lambda name: "/usr/sbin/netfilter-persistent")
        with pytest.raises(PersistenceError):
            fw.persist_rules()

    def test_listing_failure_raises(self, scripted, cfg: GatewayConfig) -> None:
        fw = IptablesFirewall(scripted(), which=lambda name: None)
        with pytest.raises(CommandError):
            fw.count_matching_rules(cfg.rule_patterns())


# ── sysctl ───────────────────────────────────────────────────────────────────


class SysctlSim(CommandRunner):
    def __init__(self, flag_path: Path, fail: bool = False) -> None:
        super().__init__()
        self.flag_path = flag_path
        self.fail = fail

    def run(self, cmd: list[str], timeout: float | None = None) -> CommandResult:
        if self.fail:
            return CommandResult(255, "", "sysctl: permission denied", 0)
        key, value = cmd[2].split("=")
        self.flag_path.write_text(value + "\n", encoding="utf-8")
        return CommandResult(0, f"{key} = {value}\n", "", 0)


class TestForwardingFlag:
    def _flag(self, tmp_path: Path, value: str = "0") -> Path:
        flag = tmp_path / "ip_forward"
        flag.write_text(value + "\n", encoding="utf-8")
        return flag

    def test_read(self, tmp_path: Path) -> None:
        assert not ForwardingFlag(self._flag(tmp_path, "0"), tmp_path / "d.conf").get_forwarding_flag()
        assert ForwardingFlag(self._flag(tmp_path, "1"), tmp_path / "d.conf").get_forwarding_flag()

    def test_set_and_persist(self, tmp_path: Path) -> None:
        flag = self._flag(tmp_path)
        dropin = tmp_path / "sysctl.d" / "99-vpnguard.conf"
        fwd = ForwardingFlag(flag, dropin, SysctlSim(flag))
        fwd.set_and_persist_forwarding_flag(True)
        assert fwd.get_forwarding_flag()
        assert dropin.read_text(encoding="utf-8") == "net.ipv4.ip_forward = 1\n"

    def test_persist_twice_keeps_single_line(self, tmp_path: Path) -> None:
        flag = self._flag(tmp_path)
        dropin = tmp_path / "99-vpnguard.conf"
        fwd = ForwardingFlag(flag, dropin, SysctlSim(flag))
        fwd.persist_forwarding_flag(True)
        fwd.persist_forwarding_flag(True)
        assert dropin.read_text(encoding="utf-8").splitlines() == ["net.ipv4.ip_forward = 1"]

    def test_set_failure(self, tmp_path: Path) -> None:
        flag = self._flag(tmp_path)
        fwd = ForwardingFlag(flag, tmp_path / "d.conf", SysctlSim(flag, fail=True))
        with pytest.raises(RepairApplyError):
            fwd.set_forwarding_flag(True)

    def test_persist_failure(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        fwd = ForwardingFlag(self._flag(tmp_path), blocker / "99-vpnguard.conf")
        with pytest.raises(PersistenceError):
            fwd.persist_forwarding_flag(True)


# ── Metrics / status file ────────────────────────────────────────────────────


class TestResourceMetrics:
    def test_rounds_percentages(self) -> None:
        Disk = namedtuple("Disk", "total used free percent")
        Mem = namedtuple("Mem", "total available percent")
        with patch("vpnguard.system.metrics.psutil") as ps:
            ps.disk_usage.return_value = Disk(100, 91, 9, 91.4)
            ps.virtual_memory.return_value = Mem(100, 40, 60.6)
            m = ResourceMetrics()
            assert m.disk_usage_percent("/") == 91
            assert m.memory_usage_percent() == 61
            ps.disk_usage.assert_called_once_with("/")


STATUS_V1 = """\
OpenVPN CLIENT LIST
Updated,Mon Jan  5 12:00:00 2026
Common Name,Real Address,Bytes Received,Bytes Sent,Connected Since
router-office,203.0.113.10:51820,12345,67890,Mon Jan  5 11:00:00 2026
router-branch,198.51.100.7:40001,100,200,Mon Jan  5 11:30:00 2026
ROUTING TABLE
Virtual Address,Common Name,Real Address,Last Ref
10.8.0.6,router-office,203.0.113.10:51820,Mon Jan  5 11:59:00 2026
GLOBAL STATS
Max bcast/mcast queue length,0
END
"""

STATUS_V2 = """\
TITLE,OpenVPN 2.6.3 x86_64-pc-linux-gnu
TIME,Mon Jan  5 12:00:00 2026,1767614400
HEADER,CLIENT_LIST,Common Name,Real Address,Virtual Address,Virtual IPv6 Address,Bytes Received,Bytes Sent,Connected Since
CLIENT_LIST,router-office,203.0.113.10:51820,10.8.0.6,,12345,67890,Mon Jan  5 11:00:00 2026
HEADER,ROUTING_TABLE,Virtual Address,Common Name,Real Address,Last Ref
ROUTING_TABLE,10.8.0.6,router-office,203.0.113.10:51820,Mon Jan  5 11:59:00 2026
END
"""


class TestOpenVPNStatus:
    def test_parse_v1(self) -> None:
        clients = parse_status(STATUS_V1)
        assert [c.common_name for c in clients] == ["router-office", "router-branch"]
        assert clients[0].real_address == "203.0.113.10:51820"
        assert clients[1].connected_since == "Mon Jan  5 11:30:00 2026"

    def test_parse_v2(self) -> None:
        clients = parse_status(STATUS_V2)
        assert len(clients) == 1
        assert clients[0].common_name == "router-office"
        assert clients[0].connected_since == "Mon Jan  5 11:00:00 2026"

    def test_parse_v3_tabs(self) -> None:
        text = STATUS_V2.replace(",", "\t")
        assert len(parse_status(text)) == 1

    def test_count_from_file(self, tmp_path: Path) -> None:
        status = tmp_path / "status.log"
        status.write_text(STATUS_V1, encoding="utf-8")
        assert OpenVPNStatusSource(status).active_connection_count() == 2

    def test_missing_file(self, tmp_path: Path) -> None:
        assert OpenVPNStatusSource(tmp_path / "nope.log").active_connection_count() is None
