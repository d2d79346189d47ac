"""Fan notification events out to every active channel."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Sequence

from .models import DeliveryOutcome, NotificationEvent
from .notifier import Notifier
from .retry import retry

logger = logging.getLogger(__name__)


def deliver(
    notifier: Notifier,
    event: NotificationEvent,
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> DeliveryOutcome:
    """Deliver one event to one channel with retry. Never raises."""
    try:
        retry(
            lambda: notifier.send(event),
            max_attempts=max_attempts,
            initial_delay=initial_delay,
            sleep=sleep,
            description=f"{notifier.kind} delivery of {event.kind.value}",
        )
    except Exception as e:
        logger.error(
            f"Giving up on {event.kind.value} notification via {notifier.kind} "
            f"after {max_attempts} attempt(s): {e}"
        )
        return DeliveryOutcome(notifier.kind, event.kind, success=False, error=str(e) or type(e).__name__)
    return DeliveryOutcome(notifier.kind, event.kind, success=True)


def dispatch(
    events: Sequence[NotificationEvent],
    notifiers: Sequence[Notifier],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> List[DeliveryOutcome]:
    """
    Deliver every event to every notifier.

    Channels for one event are attempted concurrently and fail independently;
    events are processed in order.

    Returns:
        One outcome per (event, notifier) pair, events in input order and
        channels in notifier order.
    """
    outcomes: List[DeliveryOutcome] = []
    if not events or not notifiers:
        return outcomes

    with ThreadPoolExecutor(max_workers=len(notifiers)) as executor:
        for event in events:
            futures = [
                executor.submit(deliver, notifier, event, max_attempts, initial_delay, sleep)
                for notifier in notifiers
            ]
            outcomes.extend(future.result() for future in futures)

    failed = [o for o in outcomes if not o.success]
    if failed:
        logger.warning(f"{len(failed)}/{len(outcomes)} notification deliveries failed")
    return outcomes
