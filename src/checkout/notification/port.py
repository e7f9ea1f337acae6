"""Notification port (abstract interface).

The checkout core informs the notification collaborator about order events
and never consumes a return value.
"""

from abc import ABC, abstractmethod

from protean.core.event import BaseEvent


class NotificationPort(ABC):
    """Abstract interface for order-event notification adapters."""

    @abstractmethod
    def publish(self, event: BaseEvent) -> None:
        """Deliver an order event (e-mail, push, queue, ...)."""
        ...
