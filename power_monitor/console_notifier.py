"""Console notification channel."""

from .formatter import EMOJI, format_event, severity
from .models import NotificationEvent
from .notifier import Notifier


class ConsoleNotifier(Notifier):
    """Print notifications to stdout."""

    kind = "console"

    def send(self, event: NotificationEvent) -> None:
        formatted = format_event(event)
        if formatted is None:
            return
        title, body = formatted
        one_line = body.replace("\n", ", ")
        print(f"{EMOJI[severity(event)]} [{title}] {one_line}", flush=True)
