"""Tests for server bootstrap."""

import pytest
from fastapi.testclient import TestClient

from djqueue.config_manager import ConfigManager
from djqueue.database import RequestRepository
from djqueue.main import DjQueueServer
from djqueue.storage import MemoryRequestStore


def test_sqlite_server(temp_db):
    server = DjQueueServer(storage="sqlite", db_path=temp_db.db_path)

    assert isinstance(server.queue_manager.store, RequestRepository)
    assert server.queue_manager.notification_log.capacity == 50

    client = TestClient(server.web_app)
    client.post("/api/orders", json={"song_title": "Song", "table_id": 1})
    assert len(client.get("/api/orders").json()) == 1


def test_memory_server(temp_db):
    server = DjQueueServer(storage="memory", db_path=temp_db.db_path)

    assert isinstance(server.queue_manager.store, MemoryRequestStore)
    assert TestClient(server.web_app).get("/api/health").json() == {"dbConnected": True}


def test_config_drives_components(temp_db):
    config = ConfigManager(temp_db)
    config.set("notification_limit", "5")
    config.set("unspecified_artist", "Unknown")

    server = DjQueueServer(storage="memory", db_path=temp_db.db_path)

    assert server.queue_manager.notification_log.capacity == 5
    request = server.queue_manager.create_request("Song", table_id=1)
    assert request.artist_name == "Unknown"


def test_unknown_storage(temp_db):
    with pytest.raises(ValueError):
        DjQueueServer(storage="redis", db_path=temp_db.db_path)
