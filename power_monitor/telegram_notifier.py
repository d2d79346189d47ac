"""Telegram bot notification channel."""

import logging
from typing import Optional

import requests

from .config import TelegramConfig
from .formatter import EMOJI, format_event, severity
from .models import DeliveryError, NotificationEvent
from .notifier import Notifier

logger = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"
MAX_MESSAGE_LENGTH = 4096


def _error_description(response: Optional[requests.Response]) -> Optional[str]:
    """Bot API errors carry a human-readable ``description`` in the JSON body."""
    if response is None:
        return None
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return data.get("description")


class TelegramNotifier(Notifier):
    """Send events as plain-text messages through the Telegram Bot API."""

    kind = "telegram"

    def __init__(self, config: TelegramConfig, session: Optional[requests.Session] = None):
        self.chat_id = config.chat_id
        self.url = f"{API_BASE}/bot{config.bot_token}/sendMessage"
        self.session = session or requests.Session()

    def send(self, event: NotificationEvent) -> None:
        formatted = format_event(event)
        if formatted is None:
            return
        title, body = formatted
        text = f"{EMOJI[severity(event)]} [{title}]\n{body}"[:MAX_MESSAGE_LENGTH]

        try:
            response = self.session.post(
                self.url,
                data={"chat_id": self.chat_id, "text": text},
                timeout=10,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            # Never log self.url: it embeds the bot token
            reason = type(e).__name__
            description = _error_description(e.response)
            if description:
                reason = f"{reason}: {description}"
            logger.error(f"Failed to send Telegram message: {reason}")
            raise DeliveryError(f"Telegram request failed: {reason}") from None

        data = response.json()
        if not data.get("ok", False):
            description = data.get("description", "unknown error")
            logger.error(f"Telegram API rejected message: {description}")
            raise DeliveryError(f"Telegram API error: {description}")
        logger.info(f"Telegram message sent to chat {self.chat_id}")

    def close(self) -> None:
        self.session.close()
