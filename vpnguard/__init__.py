"""vpnguard — health reconciliation for an always-on VPN gateway."""

__version__ = "0.1.0"
