"""Build the active notification channels from configuration."""

import ipaddress
import logging
import socket
from dataclasses import replace
from typing import Callable, Dict, List, Optional
from urllib.parse import urlparse

from .config import NotifyConfig, NtfyConfig, PushoverConfig
from .console_notifier import ConsoleNotifier
from .email_notifier import SECURITY_MODES, EmailNotifier, parse_recipients
from .notifier import Notifier
from .ntfy_notifier import NtfyNotifier
from .pushover_notifier import EMERGENCY_PRIORITY, PushoverNotifier
from .telegram_notifier import TelegramNotifier
from .twilio_notifier import TwilioNotifier
from .webhook_notifier import WebhookNotifier

logger = logging.getLogger(__name__)

PUSHOVER_PRIORITY_RANGE = (-2, 2)
PUSHOVER_RETRY_RANGE = (30, 10800)
PUSHOVER_EXPIRE_RANGE = (30, 10800)
NTFY_PRIORITY_RANGE = (1, 5)

Resolver = Callable[[str], List[str]]


class ChannelConfigError(ValueError):
    """A channel's configuration is incomplete or unsafe."""


def _clamp(value: int, bounds) -> int:
    low, high = bounds
    return max(low, min(high, value))


def resolve_host(host: str) -> List[str]:
    """Return every address the host resolves to."""
    infos = socket.getaddrinfo(host, None)
    return sorted({info[4][0] for info in infos})


def _is_unsafe_address(address: str) -> bool:
    # Strip an IPv6 zone id ("fe80::1%eth0")
    ip = ipaddress.ip_address(address.split("%", 1)[0])
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_loopback
        or ip.is_private
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_unspecified
        or ip.is_reserved
        or ip == ipaddress.IPv4Address("255.255.255.255")
    )


def validate_public_https_url(url: str, resolver: Resolver = resolve_host) -> str:
    """
    Ensure a URL is https and points at a public host.

    Returns:
        The lower-cased host name.

    Raises:
        ChannelConfigError: If the URL is malformed, unencrypted, or targets
            a loopback, private, link-local, multicast, unspecified,
            broadcast or .local destination.
    """
    try:
        parsed = urlparse(url)
        host = parsed.hostname
        parsed.port  # raises ValueError for a malformed port
    except ValueError as e:
        raise ChannelConfigError(f"invalid URL: {e}") from None

    if parsed.scheme != "https":
        raise ChannelConfigError(f"URL must use https, got {parsed.scheme or 'no scheme'!r}")
    if not host:
        raise ChannelConfigError("URL has no host")

    host = host.lower().rstrip(".")
    if host == "localhost" or host.endswith(".localhost") or host.endswith(".local"):
        raise ChannelConfigError(f"host {host!r} is a local name")

    try:
        ipaddress.ip_address(host.split("%", 1)[0])
        addresses = [host]
    except ValueError:
        try:
            addresses = resolver(host)
        except OSError as e:
            raise ChannelConfigError(f"cannot resolve host {host!r}: {e}") from None

    for address in addresses:
        if _is_unsafe_address(address):
            raise ChannelConfigError(f"host {host!r} resolves to non-public address {address}")
    return host


def _require(**fields: str) -> None:
    missing = [name for name, value in fields.items() if not (value and value.strip())]
    if missing:
        raise ChannelConfigError(f"missing {', '.join(missing)}")


def _build_console(config: NotifyConfig, resolver: Resolver) -> Notifier:
    return ConsoleNotifier()


def _build_webhook(config: NotifyConfig, resolver: Resolver) -> Notifier:
    _require(url=config.webhook.url)
    return WebhookNotifier(config.webhook)


def _build_telegram(config: NotifyConfig, resolver: Resolver) -> Notifier:
    _require(bot_token=config.telegram.bot_token, chat_id=config.telegram.chat_id)
    return TelegramNotifier(config.telegram)


def clamp_pushover(config: PushoverConfig) -> PushoverConfig:
    """Clamp priority, and retry/expire for emergency priority, to accepted bounds."""
    priority = _clamp(config.priority, PUSHOVER_PRIORITY_RANGE)
    if priority != config.priority:
        logger.warning(f"Pushover priority {config.priority} clamped to {priority}")
    clamped = replace(config, priority=priority)
    if priority == EMERGENCY_PRIORITY:
        clamped = replace(
            clamped,
            retry=_clamp(config.retry, PUSHOVER_RETRY_RANGE),
            expire=_clamp(config.expire, PUSHOVER_EXPIRE_RANGE),
        )
    return clamped


def _build_pushover(config: NotifyConfig, resolver: Resolver) -> Notifier:
    _require(api_token=config.pushover.api_token, user_key=config.pushover.user_key)
    return PushoverNotifier(clamp_pushover(config.pushover))


def clamp_ntfy(config: NtfyConfig) -> NtfyConfig:
    priority = _clamp(config.priority, NTFY_PRIORITY_RANGE)
    if priority != config.priority:
        logger.warning(f"ntfy priority {config.priority} clamped to {priority}")
    return replace(config, priority=priority)


def _build_ntfy(config: NotifyConfig, resolver: Resolver) -> Notifier:
    _require(topic_url=config.ntfy.topic_url)
    validate_public_https_url(config.ntfy.topic_url.strip(), resolver)
    return NtfyNotifier(clamp_ntfy(replace(config.ntfy, topic_url=config.ntfy.topic_url.strip())))


def _build_email(config: NotifyConfig, resolver: Resolver) -> Notifier:
    email = config.email
    recipients = parse_recipients(email.to_addresses)
    if not recipients:
        raise ChannelConfigError("no recipients in UPM_EMAIL_TO")
    _require(smtp_server=email.smtp_server, from_address=email.from_address)
    if email.security not in SECURITY_MODES:
        raise ChannelConfigError(
            f"security must be one of {', '.join(SECURITY_MODES)}, got {email.security!r}"
        )
    if email.smtp_port is not None and not 0 < email.smtp_port < 65536:
        raise ChannelConfigError(f"invalid SMTP port {email.smtp_port}")
    if email.username and not email.password:
        raise ChannelConfigError("username set without password")
    return EmailNotifier(email, recipients)


def _build_sms(config: NotifyConfig, resolver: Resolver) -> Notifier:
    twilio = config.twilio
    _require(
        account_sid=twilio.account_sid,
        auth_token=twilio.auth_token,
        from_number=twilio.from_number,
        to_number=twilio.to_number,
    )
    return TwilioNotifier(twilio)


BUILDERS: Dict[str, Callable[[NotifyConfig, Resolver], Notifier]] = {
    "console": _build_console,
    "webhook": _build_webhook,
    "telegram": _build_telegram,
    "pushover": _build_pushover,
    "ntfy": _build_ntfy,
    "email": _build_email,
    "sms": _build_sms,
}


def create_notifiers(config: NotifyConfig, resolver: Optional[Resolver] = None) -> List[Notifier]:
    """
    Build one notifier per configured channel, in configuration order.

    Channels that are unknown or fail validation are skipped with a warning.

    Args:
        config: Notification configuration.
        resolver: Host resolver used for URL safety checks.

    Returns:
        The active notifiers; empty when notifications are disabled.
    """
    if not config.enabled:
        return []

    resolver = resolver or resolve_host
    notifiers = []
    for kind in config.channels:
        builder = BUILDERS.get(kind)
        if builder is None:
            logger.warning(f"Unknown notification channel {kind!r}; skipping")
            continue
        try:
            notifiers.append(builder(config, resolver))
        except ChannelConfigError as e:
            logger.warning(f"Notification channel {kind!r} disabled: {e}")

    if notifiers:
        logger.info(f"Active notification channels: {', '.join(n.kind for n in notifiers)}")
    else:
        logger.warning("No notification channels are usable; notifications are disabled")
    return notifiers
