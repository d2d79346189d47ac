"""Main entry point for the power balance monitor."""

import argparse
import logging
import os
import sqlite3
import sys
import time
from dataclasses import replace
from typing import Callable, List, Optional, Sequence

from .client import PowerClient
from .config import AppConfig, NotifyConfig, load_config
from .db import init_db, save_reading
from .dispatcher import dispatch
from .models import DeliveryOutcome, LoginError, NotificationEvent
from .notifier import Notifier
from .registry import create_notifiers
from .retry import retry
from .state import NotificationStateMachine

# Configure logging
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)

FETCH_ATTEMPTS = 3
FETCH_RETRY_DELAY = 2.0


def _notify(
    events: Sequence[Optional[NotificationEvent]],
    notifiers: Sequence[Notifier],
    config: NotifyConfig,
    sleep: Callable[[float], None],
) -> List[DeliveryOutcome]:
    events = [event for event in events if event is not None]
    if not events:
        return []
    logger.info(f"Dispatching {', '.join(e.kind.value for e in events)} to {len(notifiers)} channel(s)")
    return dispatch(
        events,
        notifiers,
        max_attempts=config.retry_attempts,
        initial_delay=config.retry_delay_seconds,
        sleep=sleep,
    )


def login(
    client: PowerClient,
    machine: NotificationStateMachine,
    notifiers: Sequence[Notifier],
    config: NotifyConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Log in, alerting on failure.

    Returns:
        True on success, False if login failed (after alerting).
    """
    try:
        retry(client.login, FETCH_ATTEMPTS, FETCH_RETRY_DELAY, sleep=sleep, description="Login")
        return True
    except Exception as e:
        logger.error(f"Login failed: {e}")
        _notify([machine.on_login_failure(str(e))], notifiers, config, sleep)
        return False


def run_cycle(
    client: PowerClient,
    conn: Optional[sqlite3.Connection],
    machine: NotificationStateMachine,
    notifiers: Sequence[Notifier],
    config: NotifyConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> List[DeliveryOutcome]:
    """
    Run one poll cycle: fetch, store, decide and deliver.

    Raises:
        LoginError: If the session expired and logging in again failed.
    """
    try:
        # An expired session is not retried here; it goes straight to a new login
        reading = retry(
            client.fetch_reading,
            FETCH_ATTEMPTS,
            FETCH_RETRY_DELAY,
            sleep=sleep,
            description="Fetch",
            fatal=(LoginError,),
        )
    except LoginError as e:
        logger.warning(f"Session rejected ({e}), logging in again...")
        if not login(client, machine, notifiers, config, sleep):
            raise
        return []
    except Exception as e:
        logger.error(f"Failed to fetch data: {e}")
        return _notify([machine.on_fetch_failure()], notifiers, config, sleep)

    machine.on_fetch_success()
    if reading is None:
        logger.info("No data available")
        return []

    logger.info(
        f"Room {reading.room_display_name}: {reading.remaining_money} CNY, "
        f"{reading.remaining_energy} kWh"
    )
    if conn is not None:
        try:
            save_reading(conn, reading)
        except sqlite3.Error as e:
            # Storage problems must not suppress alerts
            logger.error(f"Failed to save data: {e}")

    return _notify(machine.on_reading(reading), notifiers, config, sleep)


def send_test_notification(config: AppConfig) -> int:
    """Send a heartbeat built from the current reading to every channel."""
    notify_config = replace(config.notify, enabled=True)
    notifiers = create_notifiers(notify_config)
    if not notifiers:
        logger.error("No usable notification channels configured")
        return 1

    client = PowerClient(config.service_url, config.login_url, config.username, config.password)
    try:
        client.login()
        reading = client.fetch_reading()
    finally:
        client.close()
    if reading is None:
        logger.error("No data available to build a test notification")
        return 1

    outcomes = _notify(
        [NotificationEvent.heartbeat(reading, reading.fetched_at)], notifiers, notify_config, time.sleep
    )
    for outcome in outcomes:
        status = "ok" if outcome.success else f"FAILED ({outcome.error})"
        logger.info(f"Test notification via {outcome.channel}: {status}")
    return 0 if all(o.success for o in outcomes) else 1


def run(config: AppConfig, once: bool = False, sleep: Callable[[float], None] = time.sleep) -> int:
    """Poll until interrupted. Returns the process exit code."""
    notifiers = create_notifiers(config.notify)
    machine = NotificationStateMachine(config.notify)

    logger.info(f"Initializing database at {config.db_path}...")
    conn = init_db(config.db_path)
    client = PowerClient(config.service_url, config.login_url, config.username, config.password)

    try:
        if not login(client, machine, notifiers, config.notify, sleep):
            return 1

        while True:
            try:
                run_cycle(client, conn, machine, notifiers, config.notify, sleep)
            except LoginError:
                return 1
            if once:
                return 0
            sleep(config.interval_seconds)
    finally:
        client.close()
        conn.close()
        for notifier in notifiers:
            notifier.close()


def main():
    """Main entry point with command-line argument parsing."""
    parser = argparse.ArgumentParser(
        description="Poll the dormitory power balance and send low-balance alerts"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single poll cycle and exit"
    )
    parser.add_argument(
        "--test-notify",
        action="store_true",
        help="Send a test notification with the current balance to every configured channel and exit"
    )

    args = parser.parse_args()

    try:
        logger.info("Loading configuration...")
        config = load_config()
    except ValueError as e:
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    try:
        if args.test_notify:
            sys.exit(send_test_notification(config))
        sys.exit(run(config, once=args.once))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down.")


if __name__ == "__main__":
    main()
