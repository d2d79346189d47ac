"""Abstract notification channel interface."""

from abc import ABC, abstractmethod

from .models import NotificationEvent


class Notifier(ABC):
    """Abstract base class for notification channels."""

    kind: str = ""

    @abstractmethod
    def send(self, event: NotificationEvent) -> None:
        """
        Deliver one event.

        Args:
            event: The event to deliver.

        Raises:
            Exception: If delivery fails. Callers retry and log.
        """
        pass

    def close(self) -> None:
        """Release pooled connections, if any."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} kind={self.kind!r}>"
