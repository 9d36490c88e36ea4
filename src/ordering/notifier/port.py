"""Notifier port: abstract interface for customer and staff notifications."""

from abc import ABC, abstractmethod


class Notifier(ABC):
    """Abstract interface for notification dispatch adapters."""

    @abstractmethod
    def notify(self, topic: str, recipient: str | None, context: dict) -> None:
        """Deliver a notification. Raises on delivery failure."""
        ...
