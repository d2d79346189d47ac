"""Twilio SMS notification channel."""

import logging

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from .config import TwilioConfig
from .formatter import format_event
from .models import NotificationEvent
from .notifier import Notifier

logger = logging.getLogger(__name__)

MAX_SMS_LENGTH = 320  # two concatenated segments


class TwilioNotifier(Notifier):
    """Send events as SMS via Twilio."""

    kind = "sms"

    def __init__(self, config: TwilioConfig, client: Client = None):
        self.config = config
        self.client = client or Client(config.account_sid, config.auth_token)

    def send(self, event: NotificationEvent) -> None:
        formatted = format_event(event)
        if formatted is None:
            return
        title, body = formatted
        message = f"[{title}] {body}"[:MAX_SMS_LENGTH]

        try:
            message_obj = self.client.messages.create(
                body=message,
                from_=self.config.from_number,
                to=self.config.to_number,
            )
            logger.info(f"SMS sent successfully. SID: {message_obj.sid}")
        except TwilioRestException as e:
            if e.code == 20003 or e.status == 401:
                logger.error(
                    "Twilio authentication failed (Error 20003). "
                    "Check UPM_TWILIO_ACCOUNT_SID and UPM_TWILIO_AUTH_TOKEN. "
                    f"Current Account SID (first 10 chars): {self.config.account_sid[:10]}..."
                )
            else:
                logger.error(f"Failed to send SMS: {e}")
            raise
