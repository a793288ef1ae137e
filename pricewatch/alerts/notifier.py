"""Account notifications delivered by SendGrid email or Telegram."""

from __future__ import annotations

import html
import os
import time
from typing import Any, Iterable, Mapping

import requests
from tenacity import retry, stop_after_attempt, wait_exponential

from pricewatch.logging_config import get_logger
from pricewatch.monitoring.models import Account, NotificationType
from pricewatch.normalizers import format_price

LOGGER = get_logger(__name__)

WEEKLY_SUMMARY_SUBJECT = "Your Weekly Price Tracking Summary"


def describe_change(change: Mapping[str, Any], item: Mapping[str, Any] | None) -> str:
    """One summary line such as ``Desk Lamp: Price dropped from $20.00 to $15.00 (-$5.00, 25.00%)``."""

    title = (item or {}).get("title") or change.get("item_id")
    currency = (item or {}).get("currency") or "USD"
    old_value = change.get("old_value")
    new_value = change.get("new_value")
    new_text = format_price(new_value, currency)
    if old_value is None or new_value is None:
        return f"{title}: Price set to {new_text}"

    difference = old_value - new_value
    direction = "Price dropped" if difference > 0 else "Price increased"
    sign = "-" if difference > 0 else "+"
    line = (
        f"{title}: {direction} from {format_price(old_value, currency)} to {new_text} "
        f"({sign}{format_price(abs(difference), currency)}"
    )
    if old_value:
        line += f", {abs(difference / old_value * 100):.2f}%"
    line += ")"
    lowest = (item or {}).get("lowest_price")
    if difference > 0 and lowest is not None and new_value <= lowest:
        line += ", lowest price recorded"
    return line


class Notifier:
    """Send notifications via SendGrid or Telegram when credentials are present.

    Without credentials the message is only logged. ``notify`` reports whether
    the message went out and never raises.
    """

    def __init__(self) -> None:
        self._telegram_token = os.getenv("TELEGRAM_BOT_TOKEN")
        self._telegram_chat = os.getenv("TELEGRAM_CHAT_ID")
        self._sendgrid_key = os.getenv("SENDGRID_API_KEY")
        self._sendgrid_from = os.getenv("SENDGRID_FROM")
        self._dashboard_url = os.getenv("PRICEWATCH_DASHBOARD_URL")
        self._last_send = 0.0

    def notify(
        self,
        notification_type: NotificationType | str,
        account: Account,
        data: Mapping[str, Any],
    ) -> bool:
        try:
            kind = NotificationType(notification_type)
        except ValueError:
            LOGGER.error("Unknown notification type: %s", notification_type)
            return False

        if kind is NotificationType.WEEKLY_SUMMARY:
            subject, lines = self.build_weekly_summary(data)
        else:
            subject, lines = self.build_system_message(data)
        if self._dashboard_url:
            lines.append(f"{self._dashboard_url.rstrip('/')}/dashboard")
        return self._dispatch(account, subject, lines)

    @staticmethod
    def build_system_message(data: Mapping[str, Any]) -> tuple[str, list[str]]:
        subject = str(data.get("subject") or "System notification")
        return subject, [subject, str(data.get("message") or "")]

    @staticmethod
    def build_weekly_summary(data: Mapping[str, Any]) -> tuple[str, list[str]]:
        items = {str(item.get("id")): item for item in data.get("items") or []}
        changes = list(data.get("changes") or [])
        lines = [
            WEEKLY_SUMMARY_SUBJECT,
            "Here's a summary of price changes for your tracked products this week:",
        ]
        if not changes:
            lines.append("No price changes detected this week.")
        for change in changes:
            lines.append(describe_change(change, items.get(str(change.get("item_id")))))
        return WEEKLY_SUMMARY_SUBJECT, lines

    def _dispatch(self, account: Account, subject: str, lines: list[str]) -> bool:
        transport = None
        try:
            if self._sendgrid_key and self._sendgrid_from and account.email:
                transport = "sendgrid"
                self._send_sendgrid(account.email, subject, lines)
            elif self._telegram_token and self._telegram_chat:
                transport = "telegram"
                self._send_telegram([f"To: {account.email}", *lines])
            else:
                LOGGER.info("Notification (noop) to %s: %s", account.email, " | ".join(lines))
        except Exception as exc:
            LOGGER.warning("Notification delivery to %s failed via %s: %s", account.email, transport, exc)
            return False
        return True

    def _throttle(self) -> None:
        elapsed = time.monotonic() - self._last_send
        if elapsed < 1:
            time.sleep(1 - elapsed)
        self._last_send = time.monotonic()

    @retry(wait=wait_exponential(multiplier=0.5, max=10), stop=stop_after_attempt(5), reraise=True)
    def _send_telegram(self, lines: Iterable[str]) -> None:
        self._throttle()
        url = f"https://api.telegram.org/bot{self._telegram_token}/sendMessage"
        payload = {
            "chat_id": self._telegram_chat,
            "text": "\n".join(lines),
            "disable_web_page_preview": True,
        }
        response = requests.post(url, json=payload, timeout=8)
        if response.status_code >= 400:
            raise RuntimeError(f"HTTP {response.status_code}")

    @retry(wait=wait_exponential(multiplier=0.5, max=10), stop=stop_after_attempt(5), reraise=True)
    def _send_sendgrid(self, to_email: str, subject: str, lines: list[str]) -> None:
        self._throttle()
        body = f"<h1>{html.escape(lines[0])}</h1>" if lines else ""
        body += "".join(f"<p>{html.escape(line)}</p>" for line in lines[1:])
        payload = {
            "from": {"email": self._sendgrid_from},
            "personalizations": [{"to": [{"email": to_email}], "subject": subject}],
            "content": [{"type": "text/html", "value": body}],
        }
        headers = {"Authorization": f"Bearer {self._sendgrid_key}"}
        response = requests.post(
            "https://api.sendgrid.com/v3/mail/send",
            json=payload,
            headers=headers,
            timeout=8,
        )
        if response.status_code >= 300:
            raise RuntimeError(f"HTTP {response.status_code}")
