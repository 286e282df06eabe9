"""Error taxonomy for probes, repairs and the host collaborators they call.

Probe errors never leave the check engine; they become Warn results.
Repair errors never leave the repair engine; they become alert records.
"""

from __future__ import annotations


class VpnGuardError(Exception):
    """Base class for every error raised by vpnguard."""


# ── Probes ───────────────────────────────────────────────────────────────────


class ProbeError(VpnGuardError):
    """A probe could not produce a verdict."""

    def __init__(self, probe_name: str, detail: str) -> None:
        self.probe_name = probe_name
        self.detail = detail
        super().__init__(f"{probe_name}: {detail}")


class ProbeTimeout(ProbeError):
    """A probe did not finish inside its time budget."""

    def __init__(self, probe_name: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(probe_name, f"timed out after {timeout:g}s")


class ProbeInternalError(ProbeError):
    """A probe raised instead of returning a result."""


# ── Repairs ──────────────────────────────────────────────────────────────────


class RepairError(VpnGuardError):
    """Base class for failed repair attempts."""


class RepairApplyError(RepairError):
    """The corrective action itself failed."""


class RepairVerifyFailed(RepairError):
    """The corrective action ran but the probe still fails."""

    def __init__(self, probe_name: str, message: str) -> None:
        self.probe_name = probe_name
        self.message = message
        super().__init__(f"{probe_name} still failing after repair: {message}")


class PersistenceError(VpnGuardError):
    """A best-effort follow-up (saving rules, sysctl drop-in) failed."""


# ── Collaborators ────────────────────────────────────────────────────────────


class CommandError(RepairApplyError):
    """An external command exited non-zero."""

    def __init__(self, cmd: list[str], exit_code: int, stderr: str) -> None:
        self.cmd = cmd
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"`{' '.join(cmd)}` exited {exit_code}: {detail}")


class ServiceControlError(RepairApplyError):
    """The service manager refused or failed an operation."""


class FirewallError(RepairApplyError):
    """One or more firewall rules could not be installed."""
