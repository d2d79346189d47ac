"""Generic JSON webhook notification channel."""

import logging
from typing import Any, Dict, Optional

import requests

from .config import WebhookConfig
from .formatter import format_event, severity
from .models import NotificationEvent
from .notifier import Notifier

logger = logging.getLogger(__name__)


def build_payload(event: NotificationEvent) -> Optional[Dict[str, Any]]:
    """Build the JSON body posted to the webhook."""
    formatted = format_event(event)
    if formatted is None:
        return None
    title, body = formatted
    payload: Dict[str, Any] = {
        "event": event.kind.value,
        "severity": severity(event),
        "title": title,
        "body": body,
        "timestamp": event.created_at.isoformat(),
    }
    if event.reading is not None:
        payload.update({
            "room_display_name": event.reading.room_display_name,
            "remaining_money": float(event.reading.remaining_money),
            "remaining_energy": float(event.reading.remaining_energy),
        })
    if event.message is not None:
        payload["message"] = event.message
    return payload


class WebhookNotifier(Notifier):
    """POST each event as JSON to a configured URL."""

    kind = "webhook"

    def __init__(self, config: WebhookConfig, session: Optional[requests.Session] = None):
        self.url = config.url
        self.session = session or requests.Session()

    def send(self, event: NotificationEvent) -> None:
        payload = build_payload(event)
        if payload is None:
            return
        try:
            response = self.session.post(
                self.url,
                json=payload,
                headers={"X-Event-Type": event.kind.value},
                timeout=10,
            )
            response.raise_for_status()
            logger.info(f"Webhook delivered {event.kind.value} event")
        except requests.RequestException as e:
            logger.error(f"Failed to deliver webhook: {e}")
            raise

    def close(self) -> None:
        self.session.close()
