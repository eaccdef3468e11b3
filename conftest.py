"""
Pytest configuration for djqueue tests.

Provides:
- temp_db: a Database on a temporary SQLite file
- make_queue: factory building a QueueManager on either storage backend
- queue_manager: QueueManager parametrized over both backends
"""

import os
import tempfile

import pytest

from djqueue.broadcast import BroadcastGateway
from djqueue.database import Database, HistoryRepository, NotificationRepository, RequestRepository
from djqueue.history import HistoryArchive
from djqueue.notifications import NotificationLog
from djqueue.queue import QueueManager
from djqueue.storage import MemoryHistoryStore, MemoryNotificationStore, MemoryRequestStore

BACKENDS = ["sqlite", "memory"]


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    db = Database(db_path=path)
    yield db
    db.close()
    os.unlink(path)


@pytest.fixture
def make_queue(temp_db):
    """Return a factory: make_queue(backend, capacity=50) -> QueueManager."""

    def factory(backend="sqlite", capacity=50):
        if backend == "sqlite":
            stores = (
                RequestRepository(temp_db),
                NotificationRepository(temp_db),
                HistoryRepository(temp_db),
            )
        else:
            stores = (MemoryRequestStore(), MemoryNotificationStore(), MemoryHistoryStore())

        request_store, notification_store, history_store = stores
        return QueueManager(
            request_store,
            NotificationLog(notification_store, capacity=capacity),
            HistoryArchive(history_store),
            broadcaster=BroadcastGateway(),
        )

    return factory


@pytest.fixture(params=BACKENDS)
def queue_manager(request, make_queue):
    """QueueManager on each storage backend."""
    return make_queue(request.param)
