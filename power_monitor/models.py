"""Data models for readings and notification events."""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class Reading:
    """A single balance snapshot fetched from the remote endpoint."""
    remaining_money: Decimal   # CNY
    remaining_energy: Decimal  # kWh
    room_display_name: str     # e.g. "220407"
    fetched_at: datetime = field(default_factory=datetime.now)  # local time
    meter_room_id: str = ""
    room_id: str = ""
    building_id: str = ""
    campus_id: str = ""
    room_number: str = ""      # e.g. "407"


class EventKind(str, enum.Enum):
    low_balance = "low_balance"
    heartbeat = "heartbeat"
    login_failure = "login_failure"
    consecutive_fetch_failures = "consecutive_fetch_failures"


@dataclass(frozen=True)
class NotificationEvent:
    """
    One alert decided by the state machine.

    Low-balance and heartbeat events carry the reading that triggered them;
    login and fetch failure events carry an error message instead.
    """
    kind: EventKind
    created_at: datetime
    reading: Optional[Reading] = None
    message: Optional[str] = None

    @classmethod
    def low_balance(cls, reading: Reading, now: datetime) -> "NotificationEvent":
        return cls(kind=EventKind.low_balance, created_at=now, reading=reading)

    @classmethod
    def heartbeat(cls, reading: Reading, now: datetime) -> "NotificationEvent":
        return cls(kind=EventKind.heartbeat, created_at=now, reading=reading)

    @classmethod
    def login_failure(cls, message: str, now: datetime) -> "NotificationEvent":
        return cls(kind=EventKind.login_failure, created_at=now, message=message)

    @classmethod
    def consecutive_fetch_failures(cls, message: str, now: datetime) -> "NotificationEvent":
        return cls(kind=EventKind.consecutive_fetch_failures, created_at=now, message=message)

    @property
    def is_error(self) -> bool:
        return self.kind in (EventKind.login_failure, EventKind.consecutive_fetch_failures)


@dataclass
class DeliveryOutcome:
    """Result of delivering one event to one channel."""
    channel: str
    event_kind: EventKind
    success: bool
    error: Optional[str] = None


class PowerMonitorError(Exception):
    """Base class for errors raised by the monitor."""


class LoginError(PowerMonitorError):
    """Authentication against the remote service was rejected."""


class FetchError(PowerMonitorError):
    """A balance reading could not be fetched or parsed."""


class DeliveryError(PowerMonitorError):
    """A notification channel rejected or failed a delivery."""
