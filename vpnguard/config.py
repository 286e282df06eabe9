from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "VPNGUARD_",
        "extra": "ignore",
    }

    # Tunnel service
    service_name: str = "openvpn@server"
    tunnel_interface: str = "tun0"
    tunnel_subnet: str = "10.8.0.0/24"
    service_port: int = 1194
    service_protocol: str = "udp"
    egress_interface: str = "eth0"
    status_log_path: str = "/var/log/openvpn/status.log"

    # Resource thresholds (percent)
    disk_path: str = "/"
    disk_warn_percent: int = 90
    memory_warn_percent: int = 90

    # Timing (seconds)
    probe_timeout: float = 5.0
    command_timeout: float = 30.0
    restart_grace_seconds: float = 5.0
    interface_settle_seconds: float = 30.0
    monitor_interval: float = 300.0

    # Boot-time readiness wait
    readiness_host: str = "8.8.8.8"
    readiness_interval: float = 2.0
    readiness_max_attempts: int = 30

    # Kernel forwarding flag
    forwarding_flag_path: str = "/proc/sys/net/ipv4/ip_forward"
    sysctl_dropin_path: str = "/etc/sysctl.d/99-vpnguard.conf"

    # Service registration
    unit_name: str = "vpnguard-monitor.service"
    unit_dir: str = "/etc/systemd/system"

    # Logging
    logs_dir: str = "/var/log/vpnguard"
    log_level: str = "INFO"

    # Notifications (optional: Slack, Telegram)
    slack_webhook_url: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""


settings = Settings()
