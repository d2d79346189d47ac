"""ntfy topic push notification channel."""

import logging
from typing import Optional

import requests

from .config import NtfyConfig
from .formatter import format_event, severity
from .models import DeliveryError, NotificationEvent
from .notifier import Notifier

logger = logging.getLogger(__name__)

TAGS = {
    "info": "information_source",
    "warning": "warning",
    "error": "rotating_light",
}


class NtfyNotifier(Notifier):
    """Publish events to an ntfy topic URL (validated by the registry)."""

    kind = "ntfy"

    def __init__(self, config: NtfyConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def send(self, event: NotificationEvent) -> None:
        formatted = format_event(event)
        if formatted is None:
            return
        title, body = formatted

        headers = {
            "Title": title,
            "Priority": str(self.config.priority),
            "Tags": TAGS[severity(event)],
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"

        try:
            response = self.session.post(
                self.config.topic_url,
                data=body.encode("utf-8"),
                headers=headers,
                timeout=10,
                allow_redirects=False,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to publish to ntfy: {e}")
            raise

        # Redirects are not followed: the validated host must be the one we post to
        if response.is_redirect:
            logger.error(f"ntfy topic redirected to {response.headers.get('Location')}")
            raise DeliveryError("ntfy topic URL answered with a redirect")
        logger.info(f"ntfy notification published ({event.kind.value})")

    def close(self) -> None:
        self.session.close()
