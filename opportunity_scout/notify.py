"""Notification sink for high-scoring opportunities.

Delivers a plain message to a Telegram chat through the Bot API:
  POST https://api.telegram.org/bot{token}/sendMessage

Delivery is best-effort. `send()` never raises; it returns True only when
the Bot API accepted the message. A missing token or chat id turns every
send into a no-op returning False (with one warning at construction time).
"""

from __future__ import annotations

import html
import logging
from typing import Protocol

import requests

from opportunity_scout.config import NotifierConfig
from opportunity_scout.models import ScoredOpportunity

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class Notifier(Protocol):
    def send(self, message: str) -> bool:
        ...


class TelegramNotifier:
    """Sends messages to a single Telegram chat."""

    def __init__(self, config: NotifierConfig, session: requests.Session | None = None):
        self.config = config
        self.session = session or requests.Session()
        if not config.configured:
            logger.warning(
                "Telegram bot not configured. Set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID"
            )

    def send(self, message: str) -> bool:
        if not self.config.configured:
            return False

        url = f"{TELEGRAM_API_BASE}/bot{self.config.telegram_bot_token}/sendMessage"
        try:
            resp = self.session.post(
                url,
                json={
                    "chat_id": self.config.telegram_chat_id,
                    "text": message,
                    "parse_mode": "HTML",
                },
                timeout=self.config.timeout_seconds,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            # The token is part of the URL; keep it out of the log.
            logger.error(
                "Error sending Telegram notification: %s",
                str(exc).replace(self.config.telegram_bot_token, "***"),
            )
            return False
        return True


class NullNotifier:
    """Drops every message. Used for dry runs and manual imports."""

    def send(self, message: str) -> bool:
        logger.debug("Notification suppressed: %s", message.splitlines()[0] if message else "")
        return False


def format_opportunity_message(opportunity: ScoredOpportunity) -> str:
    """Summary of a scored opportunity for the chat.

    Text fields are HTML-escaped since messages go out with parse_mode=HTML.
    """
    return (
        f"🎯 High-scoring opportunity ({opportunity.score}/100)\n\n"
        f"Title: {_escape(opportunity.title)}\n"
        f"Source: {_escape(opportunity.source)}\n"
        f"Reason: {_escape(opportunity.match_reason)}\n"
        f"URL: {_escape(opportunity.url)}"
    )


def _escape(text: str) -> str:
    return html.escape(text or "", quote=False)
