"""Console rendering of cycle results."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from vpnguard.health.engine import RunSummary, Status
from vpnguard.health.scheduler import CycleReport, CycleStatus
from vpnguard.system.connections import ConnectedClient

_STATUS_STYLE = {
    Status.PASS: "[green]✓ PASS[/green]",
    Status.FAIL: "[red]✗ FAIL[/red]",
    Status.WARN: "[yellow]⚠ WARN[/yellow]",
}

_CYCLE_STYLE = {
    CycleStatus.HEALTHY: "bold green",
    CycleStatus.REPAIRED: "bold yellow",
    CycleStatus.ALERT: "bold red",
}


def summary_table(summary: RunSummary, title: str = "Health check") -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("Check", style="bold")
    table.add_column("Status")
    table.add_column("Detail")
    for result in summary.results:
        table.add_row(result.probe_name, _STATUS_STYLE[result.status], escape(result.message))
    return table


def print_report(console: Console, report: CycleReport) -> None:
    """Pass/fail table plus a one-line verdict."""
    final = report.final
    console.print(summary_table(final))
    for outcome in report.repairs:
        verdict = "[green]repaired[/green]" if outcome.converged else f"[red]not repaired[/red] ({escape(outcome.error)})"
        console.print(f"  repair {outcome.probe_name}: {verdict}")
    console.print(
        f"[{_CYCLE_STYLE[report.status]}]{report.status.value.upper()}[/] — "
        f"{final.passed}/{final.total} checks passed, {final.failed} failed, {final.warned} warnings"
    )


def print_startup_summary(console: Console, report: CycleReport) -> None:
    lines = [
        f"{_STATUS_STYLE[r.status]}  {r.probe_name}: {escape(r.message)}"
        for r in report.final.results
    ]
    console.print(
        Panel.fit(
            "\n".join(lines),
            title="Startup Process Completed",
            border_style=_CYCLE_STYLE[report.status].split()[-1],
        )
    )


def clients_table(clients: list[ConnectedClient] | None) -> Table:
    table = Table(title="Active VPN Connections")
    table.add_column("Client", style="bold")
    table.add_column("Real address")
    table.add_column("Connected since")
    for c in clients or []:
        table.add_row(escape(c.common_name), c.real_address, c.connected_since)
    return table
