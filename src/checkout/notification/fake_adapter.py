"""Fake notification adapter: records published events for testing."""

import threading

from protean.core.event import BaseEvent

from checkout.notification.port import NotificationPort


class FakeNotifier(NotificationPort):
    """Notifier that keeps published events in memory for test assertions."""

    def __init__(self):
        self.published: list[BaseEvent] = []
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"
        self._lock = threading.Lock()

    def configure(self, should_succeed: bool = True, failure_reason: str = "Notification delivery failed"):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def publish(self, event: BaseEvent) -> None:
        if not self.should_succeed:
            raise ConnectionError(self.failure_reason)
        with self._lock:
            self.published.append(event)

    def events_named(self, name: str) -> list[BaseEvent]:
        return [event for event in self.published if event.__class__.__name__ == name]

    def reset(self):
        """Clear published events (useful between tests)."""
        with self._lock:
            self.published.clear()
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"
