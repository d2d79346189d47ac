"""Email notification channel for alert emails."""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List

from .config import EmailConfig
from .formatter import format_event
from .models import NotificationEvent
from .notifier import Notifier

logger = logging.getLogger(__name__)

SECURITY_MODES = ("starttls", "ssl", "none")
DEFAULT_PORTS = {"starttls": 587, "ssl": 465, "none": 25}


def parse_recipients(value: str) -> List[str]:
    """Parse a comma-separated recipient list, dropping blanks."""
    return [address.strip() for address in value.split(",") if address.strip()]


class EmailNotifier(Notifier):
    """Send each event as a plain-text email over SMTP."""

    kind = "email"

    def __init__(self, config: EmailConfig, recipients: List[str], timeout: int = 30):
        """
        Args:
            config: SMTP configuration, already validated by the registry.
            recipients: Parsed recipient addresses (at least one).
            timeout: Socket timeout in seconds.
        """
        self.config = config
        self.recipients = recipients
        self.port = config.smtp_port or DEFAULT_PORTS[config.security]
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        host = self.config.smtp_server
        logger.debug(f"Connecting to SMTP server: {host}:{self.port} ({self.config.security})")
        if self.config.security == "ssl":
            return smtplib.SMTP_SSL(host, self.port, timeout=self.timeout)
        server = smtplib.SMTP(host, self.port, timeout=self.timeout)
        if self.config.security == "starttls":
            try:
                server.starttls()
            except Exception:
                server.close()
                raise
        return server

    def send(self, event: NotificationEvent) -> None:
        formatted = format_event(event)
        if formatted is None:
            return
        title, body = formatted

        msg = MIMEMultipart()
        msg["From"] = self.config.from_address
        msg["To"] = ", ".join(self.recipients)
        msg["Subject"] = f"[Power Monitor] {title}"
        msg.attach(MIMEText(body, "plain", "utf-8"))

        try:
            server = self._connect()
            # Sends QUIT and closes the socket on exit
            with server:
                if self.config.username:
                    server.login(self.config.username, self.config.password)
                server.send_message(msg, to_addrs=self.recipients)
            logger.info(f"Email sent successfully to {', '.join(self.recipients)}")
        except smtplib.SMTPAuthenticationError as e:
            logger.error(
                f"SMTP authentication failed for {self.config.username}. "
                f"For Gmail use an App Password, not your regular password. "
                f"Error details: {e}"
            )
            raise
        except (smtplib.SMTPException, ConnectionError, TimeoutError, OSError) as e:
            logger.error(f"Failed to send email: {e}")
            raise
