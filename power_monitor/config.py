"""Configuration management."""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

ENV_PREFIX = "UPM_"
SECRETS_DIR = "/run/secrets"
# Keys that may be provided as Docker secrets (/run/secrets/<key>)
SECRET_KEYS = ("username", "password", "service_url", "db_path")

DEFAULT_SERVICE_URL = "https://online.uestc.edu.cn/site"
DEFAULT_LOGIN_URL = "https://online.uestc.edu.cn/site/login"
DEFAULT_CONFIG_FILE = "config.toml"


@dataclass(frozen=True)
class WebhookConfig:
    """Generic JSON webhook."""
    url: str = ""


@dataclass(frozen=True)
class TelegramConfig:
    """Telegram bot configuration."""
    bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class PushoverConfig:
    """Pushover push service configuration."""
    api_token: str = ""
    user_key: str = ""
    priority: int = 0
    retry: int = 60     # seconds between re-notifications, emergency priority only
    expire: int = 3600  # seconds until an emergency notification gives up
    device: Optional[str] = None


@dataclass(frozen=True)
class NtfyConfig:
    """ntfy topic push configuration."""
    topic_url: str = ""
    priority: int = 3
    token: Optional[str] = None  # access token for protected topics


@dataclass(frozen=True)
class EmailConfig:
    """SMTP configuration for alert emails."""
    smtp_server: str = ""
    smtp_port: Optional[int] = None  # defaults by security mode
    username: str = ""
    password: str = ""   # or app-specific password / token
    from_address: str = ""
    to_addresses: str = ""  # comma-separated
    security: str = "starttls"  # "starttls", "ssl" or "none"


@dataclass(frozen=True)
class TwilioConfig:
    """Twilio SMS configuration."""
    account_sid: str = ""
    auth_token: str = ""
    from_number: str = ""
    to_number: str = ""


@dataclass(frozen=True)
class NotifyConfig:
    """Notification policy and channel credentials."""
    enabled: bool = False
    threshold: Decimal = Decimal("10.0")
    cooldown: timedelta = timedelta(minutes=60)
    heartbeat_enabled: bool = False
    heartbeat_hour: int = 9
    login_failure_enabled: bool = True
    fetch_failure_enabled: bool = True
    fetch_failure_threshold: int = 3
    fetch_failure_cooldown: timedelta = timedelta(minutes=60)
    channels: Tuple[str, ...] = ("console",)
    retry_attempts: int = 3
    retry_delay_seconds: float = 1.0
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    pushover: PushoverConfig = field(default_factory=PushoverConfig)
    ntfy: NtfyConfig = field(default_factory=NtfyConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    twilio: TwilioConfig = field(default_factory=TwilioConfig)


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    username: str
    password: str
    service_url: str
    login_url: str
    db_path: str
    interval_seconds: int
    notify: NotifyConfig


Source = Mapping[str, str]


def _env(source: Source, key: str, default: Optional[str] = None) -> Optional[str]:
    return source.get(key, default)


def _parse_list_env(source: Source, key: str, default: List[str]) -> List[str]:
    """Parse comma-separated list from environment variable."""
    value = _env(source, key, "")
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool_env(source: Source, key: str, default: bool) -> bool:
    value = _env(source, key)
    if value is None or not value.strip():
        return default
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{ENV_PREFIX}{key} must be a boolean, got {value!r}")


def _parse_int_env(source: Source, key: str, default: int) -> int:
    value = _env(source, key)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{key} must be an integer, got {value!r}") from None


def _parse_float_env(source: Source, key: str, default: float) -> float:
    value = _env(source, key)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{key} must be a number, got {value!r}") from None


def _parse_decimal_env(source: Source, key: str, default: str) -> Decimal:
    value = _env(source, key) or default
    try:
        number = Decimal(value.strip())
    except InvalidOperation:
        raise ValueError(f"{ENV_PREFIX}{key} must be a decimal number, got {value!r}") from None
    if not number.is_finite():
        raise ValueError(f"{ENV_PREFIX}{key} must be a finite number, got {value!r}")
    return number


def _read_secrets(secrets_dir: str) -> Dict[str, str]:
    """Read Docker secrets, one file per key."""
    secrets = {}
    for key in SECRET_KEYS:
        path = Path(secrets_dir) / key
        if path.is_file():
            secrets[key] = path.read_text(encoding="utf-8").strip()
    return secrets


def _flatten(table: Dict[str, Any], prefix: str = "") -> Dict[str, str]:
    """
    Flatten a TOML table onto environment-style keys.

    ``[notify] threshold = 5.0`` becomes ``NOTIFY_THRESHOLD = "5.0"``, lists
    become comma-separated strings.
    """
    flat = {}
    for name, value in table.items():
        key = f"{prefix}{name}".upper()
        if isinstance(value, dict):
            flat.update(_flatten(value, prefix=f"{key}_"))
        elif isinstance(value, list):
            flat[key] = ",".join(str(item) for item in value)
        elif isinstance(value, bool):
            flat[key] = "true" if value else "false"
        else:
            flat[key] = str(value)
    return flat


def load_config_file(path: str) -> Dict[str, str]:
    """
    Read an optional TOML config file.

    Returns:
        Flattened settings, or an empty dict when the file does not exist.

    Raises:
        ValueError: If the file is not valid TOML.
    """
    if not Path(path).is_file():
        return {}
    try:
        with open(path, "rb") as f:
            return _flatten(tomllib.load(f))
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid config file {path}: {e}") from None


def _env_values() -> Dict[str, str]:
    # Empty variables do not override lower layers
    return {
        key[len(ENV_PREFIX):]: value
        for key, value in os.environ.items()
        if key.startswith(ENV_PREFIX) and value.strip()
    }


def build_source(config_file: Optional[str] = None, secrets_dir: Optional[str] = None) -> Dict[str, str]:
    """
    Merge the configuration layers.

    Precedence, lowest first: config file, Docker secrets, ``UPM_*``
    environment variables.
    """
    values: Dict[str, str] = {}
    if config_file:
        values.update(load_config_file(config_file))
    if secrets_dir:
        values.update({key.upper(): value for key, value in _read_secrets(secrets_dir).items()})
    values.update(_env_values())
    return values


def _dedupe(channels: List[str]) -> Tuple[str, ...]:
    seen = []
    for channel in channels:
        kind = channel.lower()
        if kind not in seen:
            seen.append(kind)
    return tuple(seen)


def load_notify_config(source: Optional[Source] = None) -> NotifyConfig:
    """Load the notification policy (from the environment when no source is given)."""
    s = build_source() if source is None else source

    heartbeat_hour = _parse_int_env(s, "NOTIFY_HEARTBEAT_HOUR", 9)
    if not 0 <= heartbeat_hour <= 23:
        raise ValueError(f"{ENV_PREFIX}NOTIFY_HEARTBEAT_HOUR must be between 0 and 23, got {heartbeat_hour}")

    fetch_failure_threshold = _parse_int_env(s, "NOTIFY_FETCH_FAILURE_THRESHOLD", 3)
    if fetch_failure_threshold < 1:
        raise ValueError(f"{ENV_PREFIX}NOTIFY_FETCH_FAILURE_THRESHOLD must be at least 1")

    return NotifyConfig(
        enabled=_parse_bool_env(s, "NOTIFY_ENABLED", False),
        threshold=_parse_decimal_env(s, "NOTIFY_THRESHOLD", "10.0"),
        cooldown=timedelta(minutes=_parse_int_env(s, "NOTIFY_COOLDOWN_MINUTES", 60)),
        heartbeat_enabled=_parse_bool_env(s, "NOTIFY_HEARTBEAT_ENABLED", False),
        heartbeat_hour=heartbeat_hour,
        login_failure_enabled=_parse_bool_env(s, "NOTIFY_LOGIN_FAILURE_ENABLED", True),
        fetch_failure_enabled=_parse_bool_env(s, "NOTIFY_FETCH_FAILURE_ENABLED", True),
        fetch_failure_threshold=fetch_failure_threshold,
        fetch_failure_cooldown=timedelta(
            minutes=_parse_int_env(s, "NOTIFY_FETCH_FAILURE_COOLDOWN_MINUTES", 60)
        ),
        channels=_dedupe(_parse_list_env(s, "NOTIFY_CHANNELS", ["console"])),
        retry_attempts=_parse_int_env(s, "NOTIFY_RETRY_ATTEMPTS", 3),
        retry_delay_seconds=_parse_float_env(s, "NOTIFY_RETRY_DELAY_SECONDS", 1.0),
        webhook=WebhookConfig(url=_env(s, "WEBHOOK_URL", "")),
        telegram=TelegramConfig(
            bot_token=_env(s, "TELEGRAM_BOT_TOKEN", ""),
            chat_id=_env(s, "TELEGRAM_CHAT_ID", ""),
        ),
        pushover=PushoverConfig(
            api_token=_env(s, "PUSHOVER_API_TOKEN", ""),
            user_key=_env(s, "PUSHOVER_USER_KEY", ""),
            priority=_parse_int_env(s, "PUSHOVER_PRIORITY", 0),
            retry=_parse_int_env(s, "PUSHOVER_RETRY", 60),
            expire=_parse_int_env(s, "PUSHOVER_EXPIRE", 3600),
            device=_env(s, "PUSHOVER_DEVICE"),
        ),
        ntfy=NtfyConfig(
            topic_url=_env(s, "NTFY_TOPIC_URL", ""),
            priority=_parse_int_env(s, "NTFY_PRIORITY", 3),
            token=_env(s, "NTFY_TOKEN"),
        ),
        email=EmailConfig(
            smtp_server=_env(s, "EMAIL_SMTP_SERVER", ""),
            smtp_port=_parse_int_env(s, "EMAIL_SMTP_PORT", 0) or None,
            username=_env(s, "EMAIL_USERNAME", ""),
            # Remove spaces from password (Gmail app passwords are shown with spaces)
            password=_env(s, "EMAIL_PASSWORD", "").replace(" ", ""),
            from_address=_env(s, "EMAIL_FROM", ""),
            to_addresses=_env(s, "EMAIL_TO", ""),
            security=_env(s, "EMAIL_SECURITY", "starttls").strip().lower(),
        ),
        twilio=TwilioConfig(
            account_sid=_env(s, "TWILIO_ACCOUNT_SID", ""),
            auth_token=_env(s, "TWILIO_AUTH_TOKEN", ""),
            from_number=_env(s, "TWILIO_FROM_NUMBER", ""),
            to_number=_env(s, "TWILIO_TO_NUMBER", ""),
        ),
    )


def load_config(secrets_dir: str = SECRETS_DIR, config_file: Optional[str] = None) -> AppConfig:
    """
    Load configuration from a TOML file, Docker secrets and environment variables.

    Environment variables take precedence over secrets, which take
    precedence over the config file. The file defaults to ``config.toml``
    in the working directory (``UPM_CONFIG_FILE`` overrides) and may be
    absent.

    Raises:
        ValueError: If required configuration values are missing or malformed.
    """
    if config_file is None:
        config_file = os.getenv(f"{ENV_PREFIX}CONFIG_FILE", DEFAULT_CONFIG_FILE)
    s = build_source(config_file, secrets_dir)

    username = _env(s, "USERNAME")
    password = _env(s, "PASSWORD")
    service_url = _env(s, "SERVICE_URL") or DEFAULT_SERVICE_URL
    db_path = _env(s, "DB_PATH") or "power_monitor.db"
    login_url = _env(s, "LOGIN_URL") or DEFAULT_LOGIN_URL

    interval_seconds = _parse_int_env(s, "INTERVAL_SECONDS", 60)
    if interval_seconds < 1:
        raise ValueError(f"{ENV_PREFIX}INTERVAL_SECONDS must be positive")

    # Validate required fields
    missing = []
    if not username:
        missing.append(f"{ENV_PREFIX}USERNAME")
    if not password:
        missing.append(f"{ENV_PREFIX}PASSWORD")

    if missing:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    return AppConfig(
        username=username,
        password=password,
        service_url=service_url.rstrip("/"),
        login_url=login_url,
        db_path=db_path,
        interval_seconds=interval_seconds,
        notify=load_notify_config(s),
    )
