"""Channel-agnostic message formatting for notification events."""

from typing import Optional, Tuple

from .models import EventKind, NotificationEvent

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

TITLES = {
    EventKind.low_balance: "Low Power Warning",
    EventKind.heartbeat: "Daily Report",
    EventKind.login_failure: "Login Failed",
    EventKind.consecutive_fetch_failures: "Data Fetch Failing",
}

SEVERITIES = {
    EventKind.low_balance: "warning",
    EventKind.heartbeat: "info",
    EventKind.login_failure: "error",
    EventKind.consecutive_fetch_failures: "error",
}

EMOJI = {"info": "ℹ️", "warning": "⚠️", "error": "🚨"}


def severity(event: NotificationEvent) -> str:
    """Return "info", "warning" or "error" for channels that style by severity."""
    return SEVERITIES.get(event.kind, "info")


def format_event(event: NotificationEvent) -> Optional[Tuple[str, str]]:
    """
    Build a (title, body) pair for an event.

    Returns:
        The title and body, or None when the event carries nothing to format.
    """
    title = TITLES.get(event.kind)
    if title is None:
        return None

    timestamp = event.created_at.strftime(TIMESTAMP_FORMAT)

    if event.kind in (EventKind.low_balance, EventKind.heartbeat):
        reading = event.reading
        if reading is None:
            return None
        body = (
            f"Room: {reading.room_display_name}\n"
            f"Money: {reading.remaining_money:.2f} CNY\n"
            f"Energy: {reading.remaining_energy:.2f} kWh\n"
            f"Time: {timestamp}"
        )
        return title, body

    body = f"Error: {event.message or 'unknown error'}\nTime: {timestamp}"
    return title, body
