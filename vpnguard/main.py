"""Entry point for vpnguard — `vpnguard` console script."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import socket
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from vpnguard.config import Settings, settings
from vpnguard.errors import VpnGuardError
from vpnguard.gateway import GatewayConfig, Host
from vpnguard.health import (
    AlertSink,
    CheckEngine,
    HealthScheduler,
    ReadinessWaitConfig,
    RepairEngine,
    build_probes,
    build_repairs,
)
from vpnguard.notifications import WebhookNotifier
from vpnguard.report import clients_table, print_report, print_startup_summary, summary_table
from vpnguard.service_unit import install_as_service
from vpnguard.system import CommandRunner, PingReachability

console = Console()
logger = logging.getLogger(__name__)

ALERT_LOG = "health_alerts.log"
ROUTINE_LOG = "health.log"


def configure_logging(s: Settings) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    logs_dir = Path(s.logs_dir)
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(logs_dir / ROUTINE_LOG, encoding="utf-8"))
    except OSError as e:
        console.print(f"[yellow]Cannot write {logs_dir / ROUTINE_LOG}: {e}[/yellow]")
    logging.basicConfig(
        level=getattr(logging, s.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=handlers,
    )


def build_alert_sink(s: Settings) -> AlertSink:
    notifier = WebhookNotifier(
        slack_webhook=s.slack_webhook_url,
        telegram_token=s.telegram_bot_token,
        telegram_chat_id=s.telegram_chat_id,
        hostname=socket.gethostname(),
    )
    return AlertSink(Path(s.logs_dir) / ALERT_LOG, console=console, notifier=notifier)


def build_scheduler(s: Settings, host: Host | None = None, alerts: AlertSink | None = None) -> HealthScheduler:
    host = host or Host.from_settings(s)
    cfg = GatewayConfig.from_settings(s)
    alerts = alerts or build_alert_sink(s)
    check_engine = CheckEngine(build_probes(host, cfg), timeout=s.probe_timeout)
    repair_engine = RepairEngine(
        check_engine, build_repairs(host, cfg, s.restart_grace_seconds), alerts,
    )
    return HealthScheduler(check_engine, repair_engine, alerts, interval=s.monitor_interval)


def readiness_config(s: Settings) -> ReadinessWaitConfig:
    return ReadinessWaitConfig(
        probe=PingReachability(s.readiness_host, CommandRunner(timeout=s.command_timeout)),
        interval=s.readiness_interval,
        max_attempts=s.readiness_max_attempts,
    )


# ── Commands ─────────────────────────────────────────────────────────────────


def cmd_check(s: Settings) -> int:
    """One-shot cycle; non-zero exit if anything is left unresolved."""
    scheduler = build_scheduler(s)
    try:
        with console.status("[bold green]Running health checks..."):
            report = scheduler.run_cycle()
    finally:
        scheduler.check_engine.close()
    print_report(console, report)
    return report.exit_code


async def _monitor(scheduler: HealthScheduler, readiness: ReadinessWaitConfig | None) -> int:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, scheduler.request_stop)
    return await scheduler.run_forever(readiness=readiness)


def cmd_monitor(s: Settings, boot: bool = False) -> int:
    console.print(
        Panel.fit(
            f"[bold]VPN Gateway Health Monitor[/bold]\n"
            f"Service:   {s.service_name}\n"
            f"Interface: {s.tunnel_interface}\n"
            f"Interval:  {s.monitor_interval:g}s",
            title="vpnguard monitor",
            border_style="green",
        )
    )
    scheduler = build_scheduler(s)
    readiness = readiness_config(s) if boot else None
    try:
        asyncio.run(_monitor(scheduler, readiness))
    finally:
        scheduler.check_engine.close()
    return 0


def cmd_startup(s: Settings) -> int:
    """Boot-time flow: wait for the network, reconcile once, summarise."""
    scheduler = build_scheduler(s)
    try:
        scheduler.wait_for_readiness(readiness_config(s))
        report = scheduler.run_cycle()
    finally:
        scheduler.check_engine.close()
    print_startup_summary(console, report)
    return report.exit_code


def cmd_status(s: Settings) -> int:
    """Read-only view: probe table without repairs, plus connected clients."""
    host = Host.from_settings(s)
    engine = CheckEngine(build_probes(host, GatewayConfig.from_settings(s)), timeout=s.probe_timeout)
    try:
        summary = engine.run_all()
    finally:
        engine.close()
    console.print(summary_table(summary, title="Gateway status"))
    clients = host.connections.clients()
    if clients is None:
        console.print(f"[yellow]Status log not found: {s.status_log_path}[/yellow]")
    else:
        console.print(clients_table(clients))
    return 0


def cmd_install(s: Settings) -> int:
    try:
        path = install_as_service(
            s.unit_dir, s.unit_name, s.service_name, CommandRunner(timeout=s.command_timeout),
        )
    except (VpnGuardError, OSError) as e:
        logger.error("Service installation failed: %s", e)
        console.print(f"[red]Could not install {s.unit_name}:[/red] {escape(str(e))}")
        return 1
    console.print(f"[green]Installed and started {s.unit_name}[/green] ({path})")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="VPN gateway health reconciliation")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("check", help="Run one check + repair cycle")
    mon = sub.add_parser("monitor", help="Run cycles continuously until terminated")
    mon.add_argument("--boot", action="store_true", help="Wait for network readiness first")
    sub.add_parser("startup", help="Boot-time readiness wait followed by one cycle")
    sub.add_parser("status", help="Show probe results and connected clients (no repairs)")
    sub.add_parser("install-as-service", help="Register `monitor --boot` as a systemd service")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1

    configure_logging(settings)

    if args.command == "check":
        return cmd_check(settings)
    if args.command == "monitor":
        return cmd_monitor(settings, boot=args.boot)
    if args.command == "startup":
        return cmd_startup(settings)
    if args.command == "status":
        return cmd_status(settings)
    return cmd_install(settings)
