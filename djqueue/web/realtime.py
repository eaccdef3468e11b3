"""
WebSocket endpoint - realtime queue events.

Every client connected to /ws receives every event the broadcast gateway
publishes:
  - orders_changed: the queue changed, re-fetch /api/orders
  - notification_created: a guest edited or cancelled a request
  - notifications_cleared: the notification log was emptied
"""

import asyncio
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, List, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


class Subscriber:
    """One connected socket and the queue of messages waiting to be sent to it."""

    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop):
        self.websocket = websocket
        self.loop = loop
        self.outbox: asyncio.Queue = asyncio.Queue()


class ConnectionManager:
    """Tracks connected sockets and pushes gateway events to all of them."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    async def connect(self, websocket: WebSocket) -> Subscriber:
        subscriber = Subscriber(websocket, asyncio.get_running_loop())
        # Registered before accepting so no event published after the
        # handshake can be missed.
        with self._lock:
            self._subscribers.append(subscriber)
        try:
            await websocket.accept()
        except Exception:
            self.disconnect(subscriber)
            raise
        logger.info("WebSocket connected: %d active", self.connection_count)
        return subscriber

    def disconnect(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)
        logger.info("WebSocket disconnected: %d active", self.connection_count)

    def handle_event(self, event: str, payload: Optional[Any] = None) -> None:
        """
        Gateway listener. Safe to call from any thread.

        The message is handed to each socket's event loop; sending happens
        in that socket's pump task.
        """
        text = json.dumps(
            {
                "type": event,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "data": payload,
            },
            ensure_ascii=False,
            default=str,
        )
        with self._lock:
            subscribers = list(self._subscribers)

        for subscriber in subscribers:
            try:
                subscriber.loop.call_soon_threadsafe(subscriber.outbox.put_nowait, text)
            except RuntimeError:
                # Event loop already closed
                logger.warning("Dropping event %s for a closed connection", event)
                self.disconnect(subscriber)

    async def pump(self, subscriber: Subscriber) -> None:
        """Send queued messages to the socket until it fails or the task is cancelled."""
        while True:
            text = await subscriber.outbox.get()
            try:
                await subscriber.websocket.send_text(text)
            except Exception as e:
                logger.warning("WebSocket send failed, dropping connection: %s", e)
                self.disconnect(subscriber)
                return


def create_realtime_router(manager: ConnectionManager) -> APIRouter:
    """Build the router serving the /ws endpoint for a connection manager."""
    router = APIRouter()

    @router.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Realtime event stream; answers "ping" with a pong message."""
        subscriber = await manager.connect(websocket)
        sender = asyncio.create_task(manager.pump(subscriber))

        try:
            while True:
                data = await websocket.receive_text()
                if data == "ping":
                    subscriber.outbox.put_nowait(json.dumps({"type": "pong"}))
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error("WebSocket error: %s", e, exc_info=True)
        finally:
            sender.cancel()
            manager.disconnect(subscriber)

    return router
