"""
Broadcast gateway for djqueue.

Fans change signals out to every registered listener. Delivery is
fire-and-forget: a failing listener is logged and never affects the
operation that published the signal.
"""

import logging
import threading
from typing import Any, Callable, List, Optional

from .models import Notification

ORDERS_CHANGED = "orders_changed"
NOTIFICATION_CREATED = "notification_created"
NOTIFICATIONS_CLEARED = "notifications_cleared"

# Listener signature: listener(event, payload)
Listener = Callable[[str, Optional[Any]], None]


class BroadcastGateway:
    """Publishes queue events to all listeners, no filtering."""

    def __init__(self):
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            Function that unsubscribes the listener
        """
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, event: str, payload: Optional[Any] = None) -> None:
        """Deliver an event to every listener."""
        with self._lock:
            listeners = list(self._listeners)

        self.logger.debug("Publishing %s to %d listener(s)", event, len(listeners))
        for listener in listeners:
            try:
                listener(event, payload)
            except Exception as e:
                self.logger.error("Listener failed for %s: %s", event, e, exc_info=True)

    def orders_changed(self) -> None:
        """Signal that the queue changed; observers re-fetch it."""
        self.publish(ORDERS_CHANGED)

    def notification_created(self, notification: Notification) -> None:
        self.publish(NOTIFICATION_CREATED, notification.to_dict())

    def notifications_cleared(self) -> None:
        self.publish(NOTIFICATIONS_CLEARED, [])
