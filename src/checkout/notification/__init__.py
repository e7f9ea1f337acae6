"""Notification adapter registry.

Provides get_notifier() / set_notifier() to swap implementations. The fake
adapter is used unless something else is configured.
"""

import structlog
from protean.core.event import BaseEvent

from checkout.notification.fake_adapter import FakeNotifier
from checkout.notification.port import NotificationPort

logger = structlog.get_logger(__name__)

_current_notifier: NotificationPort | None = None


def get_notifier() -> NotificationPort:
    """Return the current notifier. Defaults to FakeNotifier."""
    global _current_notifier
    if _current_notifier is None:
        _current_notifier = FakeNotifier()
    return _current_notifier


def set_notifier(notifier: NotificationPort) -> None:
    """Override the active notifier (useful for tests)."""
    global _current_notifier
    _current_notifier = notifier


def reset_notifier() -> None:
    """Reset to the default notifier."""
    global _current_notifier
    _current_notifier = None


def notify(event: BaseEvent) -> None:
    """Fire-and-forget delivery of a committed order event.

    The order is already committed when this runs, so a delivery failure is
    logged and never reported back to the caller.
    """
    logger.debug("Publishing order event", event_name=event.__class__.__name__, payload=event.to_dict())
    try:
        get_notifier().publish(event)
    except Exception:
        logger.exception("Order notification failed", event_name=event.__class__.__name__, order_id=event.order_id)
