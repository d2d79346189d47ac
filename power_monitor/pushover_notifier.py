"""Pushover push notification channel."""

import logging
from typing import Optional

import requests

from .config import PushoverConfig
from .formatter import format_event
from .models import DeliveryError, NotificationEvent
from .notifier import Notifier

logger = logging.getLogger(__name__)

API_URL = "https://api.pushover.net/1/messages.json"
EMERGENCY_PRIORITY = 2


class PushoverNotifier(Notifier):
    """
    Send events through Pushover.

    The config is expected to be validated and clamped by the registry.
    """

    kind = "pushover"

    def __init__(self, config: PushoverConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def send(self, event: NotificationEvent) -> None:
        formatted = format_event(event)
        if formatted is None:
            return
        title, body = formatted

        data = {
            "token": self.config.api_token,
            "user": self.config.user_key,
            "title": title,
            "message": body,
            "priority": self.config.priority,
            "timestamp": int(event.created_at.timestamp()),
        }
        if self.config.priority == EMERGENCY_PRIORITY:
            data["retry"] = self.config.retry
            data["expire"] = self.config.expire
        if self.config.device:
            data["device"] = self.config.device

        try:
            response = self.session.post(API_URL, data=data, timeout=10)
        except requests.RequestException as e:
            logger.error(f"Failed to reach Pushover: {e}")
            raise

        if response.status_code >= 400:
            # Pushover returns a JSON error list on 4xx
            try:
                errors = response.json().get("errors", [])
            except ValueError:
                errors = []
            detail = "; ".join(errors) or f"HTTP {response.status_code}"
            logger.error(f"Pushover rejected notification: {detail}")
            raise DeliveryError(f"Pushover error: {detail}")

        logger.info(f"Pushover notification sent ({event.kind.value})")

    def close(self) -> None:
        self.session.close()
