"""
Main entry point for djqueue.

Initializes all components and starts the server.
"""

import argparse
import logging
import os
from typing import Optional

import uvicorn

from .broadcast import BroadcastGateway
from .config_manager import ConfigManager
from .database import Database, HistoryRepository, NotificationRepository, RequestRepository
from .history import HistoryArchive
from .notifications import DEFAULT_CAPACITY, NotificationLog
from .queue import QueueManager
from .storage import MemoryHistoryStore, MemoryNotificationStore, MemoryRequestStore
from .web.server import create_app

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

STORAGE_SQLITE = "sqlite"
STORAGE_MEMORY = "memory"


class DjQueueServer:
    """Main server class that orchestrates all components."""

    def __init__(self, storage: str = STORAGE_SQLITE, db_path: Optional[str] = None):
        """
        Initialize all components.

        Args:
            storage: Where requests, notifications and history live ("sqlite" or "memory")
            db_path: SQLite database file (default ~/.djqueue/djqueue.db)
        """
        logger.info("Initializing djqueue server (storage: %s)...", storage)

        # The database always holds configuration, whatever the queue storage
        self.database = Database(db_path)
        self.config_manager = ConfigManager(self.database)

        if storage == STORAGE_MEMORY:
            request_store = MemoryRequestStore()
            notification_store = MemoryNotificationStore()
            history_store = MemoryHistoryStore()
        elif storage == STORAGE_SQLITE:
            request_store = RequestRepository(self.database)
            notification_store = NotificationRepository(self.database)
            history_store = HistoryRepository(self.database)
        else:
            raise ValueError(f"Unknown storage backend: {storage}")

        capacity = self.config_manager.get_int("notification_limit", DEFAULT_CAPACITY)
        if capacity is None or capacity < 1:
            logger.warning("Invalid notification_limit %s, using %d", capacity, DEFAULT_CAPACITY)
            capacity = DEFAULT_CAPACITY

        self.broadcaster = BroadcastGateway()
        self.queue_manager = QueueManager(
            request_store,
            NotificationLog(notification_store, capacity=capacity),
            HistoryArchive(history_store),
            broadcaster=self.broadcaster,
            unspecified_artist=self.config_manager.get("unspecified_artist"),
        )

        # Web server
        self.web_app = create_app(self.queue_manager, self.config_manager)

        self.uvicorn_server = None

        logger.info("djqueue server initialized")

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """Start the server."""
        host = host or self.config_manager.get("host")
        port = port or self.config_manager.get_int("port", 8000)

        logger.info("=" * 60)
        logger.info("djqueue is running!")
        logger.info("API: http://%s:%s/api", host, port)
        logger.info("Realtime: ws://%s:%s/ws", host, port)
        logger.info("=" * 60)

        config = uvicorn.Config(self.web_app, host=host, port=port, log_level="info")
        self.uvicorn_server = uvicorn.Server(config)
        self.uvicorn_server.run()

    def stop(self):
        """Stop all components."""
        logger.info("Stopping djqueue server...")

        if self.uvicorn_server:
            self.uvicorn_server.should_exit = True

        if self.database:
            self.database.close()

        logger.info("djqueue server stopped")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="djqueue - live karaoke request queue")
    parser.add_argument(
        "--storage",
        choices=[STORAGE_SQLITE, STORAGE_MEMORY],
        default=os.environ.get("DJQUEUE_STORAGE", STORAGE_SQLITE),
        help="Queue storage backend (env: DJQUEUE_STORAGE)",
    )
    parser.add_argument(
        "--db-path",
        default=os.environ.get("DJQUEUE_DB_PATH"),
        help="SQLite database file (env: DJQUEUE_DB_PATH)",
    )
    parser.add_argument("--host", default=None, help="Listen address (overrides config)")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ["DJQUEUE_PORT"]) if os.environ.get("DJQUEUE_PORT") else None,
        help="Listen port (env: DJQUEUE_PORT, overrides config)",
    )
    args = parser.parse_args()

    server = DjQueueServer(storage=args.storage, db_path=args.db_path)
    try:
        server.run(host=args.host, port=args.port)
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()


if __name__ == "__main__":
    main()
