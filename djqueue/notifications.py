"""
Notification log for djqueue.

Keeps a bounded, newest-first log of guest actions (edits and
cancellations) for the DJ to review.
"""

import logging
from typing import Any, Dict, List

from .models import Notification
from .storage import NotificationStore

DEFAULT_CAPACITY = 50


class NotificationLog:
    """Bounded append log; the oldest entries are dropped on overflow."""

    def __init__(self, store: NotificationStore, capacity: int = DEFAULT_CAPACITY):
        """
        Initialize NotificationLog.

        Args:
            store: Backend holding the notifications
            capacity: Maximum number of notifications kept
        """
        if capacity < 1:
            raise ValueError("Notification capacity must be at least 1")
        self.store = store
        self.capacity = capacity
        self.logger = logging.getLogger(__name__)

    def append(self, notification_type: str, payload: Dict[str, Any]) -> Notification:
        """Record a notification and drop whatever no longer fits."""
        notification = self.store.add(notification_type, payload)
        dropped = self.store.trim(self.capacity)
        if dropped:
            self.logger.debug("Dropped %d old notification(s)", dropped)
        self.logger.info(
            "Notification %s: %s (request %s)",
            notification.id,
            notification_type,
            payload.get("id"),
        )
        return notification

    def list(self) -> List[Notification]:
        """Get notifications, newest first."""
        return self.store.get_all(limit=self.capacity)

    def clear(self) -> int:
        count = self.store.clear()
        self.logger.info("Cleared %d notification(s)", count)
        return count
