"""Tests for the broadcast gateway."""

from datetime import datetime, timezone
from unittest.mock import Mock

from djqueue.broadcast import (
    NOTIFICATION_CREATED,
    NOTIFICATIONS_CLEARED,
    ORDERS_CHANGED,
    BroadcastGateway,
)
from djqueue.models import Notification


def test_every_listener_receives_every_event():
    gateway = BroadcastGateway()
    first, second = Mock(), Mock()
    gateway.subscribe(first)
    gateway.subscribe(second)

    gateway.orders_changed()

    first.assert_called_once_with(ORDERS_CHANGED, None)
    second.assert_called_once_with(ORDERS_CHANGED, None)


def test_notification_created_carries_notification():
    gateway = BroadcastGateway()
    listener = Mock()
    gateway.subscribe(listener)
    notification = Notification(
        id=3,
        type="cancelled",
        payload={"id": 9, "song_title": "Song"},
        timestamp=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )

    gateway.notification_created(notification)

    listener.assert_called_once_with(
        NOTIFICATION_CREATED,
        {
            "id": 3,
            "type": "cancelled",
            "payload": {"id": 9, "song_title": "Song"},
            "timestamp": "2024-05-01T00:00:00+00:00",
        },
    )


def test_notifications_cleared():
    gateway = BroadcastGateway()
    listener = Mock()
    gateway.subscribe(listener)

    gateway.notifications_cleared()

    listener.assert_called_once_with(NOTIFICATIONS_CLEARED, [])


def test_unsubscribe():
    gateway = BroadcastGateway()
    listener = Mock()
    unsubscribe = gateway.subscribe(listener)

    unsubscribe()
    gateway.orders_changed()

    listener.assert_not_called()
    assert gateway.listener_count == 0


def test_failing_listener_is_isolated():
    gateway = BroadcastGateway()
    broken = Mock(side_effect=ConnectionError("gone"))
    healthy = Mock()
    gateway.subscribe(broken)
    gateway.subscribe(healthy)

    gateway.orders_changed()

    healthy.assert_called_once_with(ORDERS_CHANGED, None)
