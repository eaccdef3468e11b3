"""
Tests for the storage backends (SQLite repositories and in-memory stores).
"""

import sqlite3

import pytest

from djqueue.database import Database, HistoryRepository, NotificationRepository, RequestRepository
from djqueue.errors import StorageError
from djqueue.storage import (
    MemoryHistoryStore,
    MemoryNotificationStore,
    MemoryRequestStore,
    utcnow,
)


@pytest.fixture(params=["sqlite", "memory"])
def request_store(request, temp_db):
    if request.param == "sqlite":
        return RequestRepository(temp_db)
    return MemoryRequestStore()


@pytest.fixture(params=["sqlite", "memory"])
def notification_store(request, temp_db):
    if request.param == "sqlite":
        return NotificationRepository(temp_db)
    return MemoryNotificationStore()


@pytest.fixture(params=["sqlite", "memory"])
def history_store(request, temp_db):
    if request.param == "sqlite":
        return HistoryRepository(temp_db)
    return MemoryHistoryStore()


def add(store, title, position, table_id="1", request_type="regular"):
    return store.add(
        song_title=title,
        artist_name="Artist",
        table_id=table_id,
        request_type=request_type,
        note="",
        position=position,
    )


# =============================================================================
# Request store
# =============================================================================


def test_add_shifts_later_positions(request_store):
    add(request_store, "A", 1)
    add(request_store, "B", 2)
    add(request_store, "C", 1)

    requests = request_store.get_all()
    assert [r.song_title for r in requests] == ["C", "A", "B"]
    assert [r.position for r in requests] == [1, 2, 3]


def test_get_unknown_returns_none(request_store):
    assert request_store.get(42) is None


def test_update_fields(request_store):
    request = add(request_store, "A", 1)

    updated = request_store.update(request.id, {"dj_note": "soon", "status": "in_progress"})

    assert updated.dj_note == "soon"
    assert updated.status == "in_progress"
    assert updated.song_title == "A"
    assert request_store.get(request.id).dj_note == "soon"


def test_update_with_order(request_store):
    a = add(request_store, "A", 1)
    b = add(request_store, "B", 2)

    request_store.update(a.id, {"status": "completed"}, ordered_ids=[b.id, a.id])

    assert [r.song_title for r in request_store.get_all()] == ["B", "A"]


def test_update_unknown_returns_none(request_store):
    assert request_store.update(42, {"note": "x"}) is None


def test_update_rejects_immutable_field(request_store):
    request = add(request_store, "A", 1)
    with pytest.raises(ValueError):
        request_store.update(request.id, {"table_id": "9"})


def test_returned_requests_are_copies(request_store):
    request = add(request_store, "A", 1)
    fetched = request_store.get(request.id)
    fetched.song_title = "changed"
    assert request_store.get(request.id).song_title == "A"


def test_set_order(request_store):
    a = add(request_store, "A", 1)
    b = add(request_store, "B", 2)
    c = add(request_store, "C", 3)

    request_store.set_order([c.id, a.id, b.id])

    assert [r.song_title for r in request_store.get_all()] == ["C", "A", "B"]


def test_remove_compacts(request_store):
    a = add(request_store, "A", 1)
    add(request_store, "B", 2)
    c = add(request_store, "C", 3)

    assert request_store.remove([a.id, c.id, 999]) == 2

    requests = request_store.get_all()
    assert [r.song_title for r in requests] == ["B"]
    assert requests[0].position == 1


def test_clear_keeps_ids_unique(request_store):
    first = add(request_store, "A", 1)
    assert request_store.clear() == 1
    second = add(request_store, "B", 1)
    assert second.id > first.id


def test_sqlite_requests_persist(temp_db):
    request = add(RequestRepository(temp_db), "A", 1)

    reopened = RequestRepository(Database(temp_db.db_path))
    stored = reopened.get(request.id)
    assert stored.song_title == "A"
    assert stored.created_at == request.created_at


def test_sqlite_error_becomes_storage_error(temp_db):
    store = RequestRepository(temp_db)
    conn = sqlite3.connect(temp_db.db_path)
    conn.execute("DROP TABLE song_requests")
    conn.commit()
    conn.close()

    with pytest.raises(StorageError):
        store.get_all()


def test_sqlite_health(temp_db):
    assert RequestRepository(temp_db).is_healthy() is True


# =============================================================================
# Notification store
# =============================================================================


def test_notifications_newest_first(notification_store):
    notification_store.add("edited", {"id": 1})
    notification_store.add("cancelled", {"id": 2})

    notifications = notification_store.get_all()
    assert [n.type for n in notifications] == ["cancelled", "edited"]
    assert notifications[0].payload == {"id": 2}
    assert notifications[0].id > notifications[1].id
    assert notifications[0].timestamp is not None


def test_notifications_trim_drops_oldest(notification_store):
    for i in range(5):
        notification_store.add("edited", {"id": i})

    assert notification_store.trim(3) == 2

    assert [n.payload["id"] for n in notification_store.get_all()] == [4, 3, 2]


def test_notifications_clear(notification_store):
    notification_store.add("edited", {"id": 1})
    assert notification_store.clear() == 1
    assert notification_store.get_all() == []


# =============================================================================
# History store
# =============================================================================


def test_history_add_once_per_request(history_store, request_store):
    request = add(request_store, "A", 1)

    first = history_store.add(request, utcnow())
    second = history_store.add(request, utcnow())

    assert first is not None
    assert first.request_id == request.id
    assert second is None
    assert history_store.contains(request.id)
    assert len(history_store.get_all()) == 1


def test_history_newest_first_with_limit(history_store, request_store):
    for title in ("A", "B", "C"):
        history_store.add(add(request_store, title, 1), utcnow())

    entries = history_store.get_all()
    assert [e.song_title for e in entries] == ["C", "B", "A"]
    assert [e.song_title for e in history_store.get_all(limit=2)] == ["C", "B"]
