"""Webhook notifications — Slack and Telegram.

Forwards Warning / Alert records from the alert sink. Delivery is
best-effort: failures are logged and never affect the health cycle.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from vpnguard.health.alerts import AlertRecord

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org/bot{token}/sendMessage"

_EMOJI = {
    "info": "ℹ️",
    "warning": "⚠️",
    "alert": "🔴",
}


class WebhookNotifier:
    """Posts alert records to every configured channel."""

    def __init__(
        self,
        slack_webhook: str = "",
        telegram_token: str = "",
        telegram_chat_id: str = "",
        hostname: str = "",
        timeout: float = 10.0,
    ) -> None:
        self.slack_webhook = slack_webhook
        self.telegram_token = telegram_token
        self.telegram_chat_id = telegram_chat_id
        self.hostname = hostname
        self.timeout = timeout

    @property
    def is_enabled(self) -> bool:
        return bool(self.slack_webhook or (self.telegram_token and self.telegram_chat_id))

    def status(self) -> dict[str, Any]:
        return {
            "enabled": self.is_enabled,
            "slack_configured": bool(self.slack_webhook),
            "telegram_configured": bool(self.telegram_token and self.telegram_chat_id),
        }

    def format(self, record: AlertRecord) -> str:
        host = f" on `{self.hostname}`" if self.hostname else ""
        return (
            f"{_EMOJI.get(record.severity.value, '')} *VPN gateway {record.severity.value}*{host}\n"
            f"{record.message}"
        )

    def send(self, record: AlertRecord) -> None:
        if not self.is_enabled:
            return
        text = self.format(record)
        with httpx.Client(timeout=self.timeout) as client:
            if self.slack_webhook:
                self._post(client, self.slack_webhook, {"text": text, "mrkdwn": True}, "Slack")
            if self.telegram_token and self.telegram_chat_id:
                self._post(
                    client,
                    TELEGRAM_API.format(token=self.telegram_token),
                    {"chat_id": self.telegram_chat_id, "text": text, "parse_mode": "Markdown"},
                    "Telegram",
                )

    @staticmethod
    def _post(client: httpx.Client, url: str, payload: dict[str, Any], channel: str) -> None:
        try:
            resp = client.post(url, json=payload)
            if resp.status_code != 200:
                logger.warning("%s webhook returned %d: %s", channel, resp.status_code, resp.text[:200])
        except httpx.HTTPError as exc:
            logger.warning("%s notification failed: %s", channel, exc)
