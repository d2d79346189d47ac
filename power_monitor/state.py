"""Notification decision logic: edge triggers, cooldowns and the daily heartbeat."""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, List, Optional

from .config import NotifyConfig
from .models import NotificationEvent, Reading

logger = logging.getLogger(__name__)


@dataclass
class NotificationState:
    """Debounce memory for one process lifetime. Never persisted."""
    last_low_balance_alert_at: Optional[datetime] = None
    last_heartbeat_date: Optional[date] = None
    last_balance: Optional[Decimal] = None
    consecutive_fetch_failures: int = 0
    last_fetch_failure_alert_at: Optional[datetime] = None


class NotificationStateMachine:
    """
    Decide which notifications a poll cycle should produce.

    The machine only decides; delivery is done by the caller through
    ``dispatcher.dispatch``. Timestamps are recorded when an alert is
    decided, not when it is confirmed delivered.

    It is not thread-safe: the poll loop that owns it must be the only caller.
    """

    def __init__(
        self,
        config: NotifyConfig,
        state: Optional[NotificationState] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.state = state or NotificationState()
        self.clock = clock

    def on_reading(self, reading: Reading, now: Optional[datetime] = None) -> List[NotificationEvent]:
        """
        Process a successful reading.

        Returns:
            Events to dispatch, heartbeat first, then low balance.
        """
        if not self.config.enabled:
            return []

        now = now or self.clock()
        events = []

        heartbeat = self._check_heartbeat(reading, now)
        if heartbeat:
            events.append(heartbeat)

        low_balance = self._check_low_balance(reading, now)
        if low_balance:
            events.append(low_balance)

        return events

    def _check_heartbeat(self, reading: Reading, now: datetime) -> Optional[NotificationEvent]:
        if not self.config.heartbeat_enabled or now.hour != self.config.heartbeat_hour:
            return None
        today = now.date()
        if self.state.last_heartbeat_date == today:
            return None
        logger.info("Daily heartbeat due")
        self.state.last_heartbeat_date = today
        return NotificationEvent.heartbeat(reading, now)

    def _check_low_balance(self, reading: Reading, now: datetime) -> Optional[NotificationEvent]:
        threshold = self.config.threshold
        current = reading.remaining_money
        last_balance = self.state.last_balance
        self.state.last_balance = current

        if current > threshold:
            return None

        if last_balance is None or last_balance > threshold:
            # Falling edge: bypasses cooldown
            logger.info(f"Balance {current} dropped to or below threshold {threshold}")
        elif not self._cooldown_elapsed(self.state.last_low_balance_alert_at, self.config.cooldown, now):
            logger.debug(f"Balance still low ({current}), low-balance alert in cooldown")
            return None

        self.state.last_low_balance_alert_at = now
        return NotificationEvent.low_balance(reading, now)

    def on_fetch_failure(self, now: Optional[datetime] = None) -> Optional[NotificationEvent]:
        """Record a failed fetch; alert once the failure run reaches the threshold."""
        now = now or self.clock()
        self.state.consecutive_fetch_failures += 1
        failures = self.state.consecutive_fetch_failures

        if not (self.config.enabled and self.config.fetch_failure_enabled):
            return None
        if failures < self.config.fetch_failure_threshold:
            return None
        if not self._cooldown_elapsed(
            self.state.last_fetch_failure_alert_at, self.config.fetch_failure_cooldown, now
        ):
            return None

        self.state.last_fetch_failure_alert_at = now
        return NotificationEvent.consecutive_fetch_failures(
            f"Failed to fetch data {failures} times consecutively", now
        )

    def on_fetch_success(self) -> None:
        if self.state.consecutive_fetch_failures:
            logger.info(
                f"Fetch recovered after {self.state.consecutive_fetch_failures} consecutive failure(s)"
            )
        self.state.consecutive_fetch_failures = 0

    def on_login_failure(self, error_message: str, now: Optional[datetime] = None) -> Optional[NotificationEvent]:
        """Login failure alerts have no cooldown."""
        if not (self.config.enabled and self.config.login_failure_enabled):
            return None
        return NotificationEvent.login_failure(error_message, now or self.clock())

    @staticmethod
    def _cooldown_elapsed(last_alert_at: Optional[datetime], cooldown, now: datetime) -> bool:
        # A missing timestamp counts as due
        if last_alert_at is None:
            return True
        return now - last_alert_at >= cooldown
