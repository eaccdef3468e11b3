"""
FastAPI web server for djqueue.

Provides the REST API for guests and the DJ, and the realtime WebSocket
channel.
"""

import logging
from typing import List, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from ..config_manager import CONFIG_SCHEMA, ConfigManager
from ..errors import QueueError, StorageError
from ..queue import QueueManager
from .realtime import ConnectionManager, create_realtime_router

logger = logging.getLogger(__name__)


# Request models
class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    song_title: Optional[str] = None
    artist_name: Optional[str] = None
    table_id: Optional[Union[int, str]] = None
    is_vip: bool = Field(False, alias="isVip")
    note: Optional[str] = None


class EditOrderRequest(BaseModel):
    """Guest edit; fields left out stay unchanged."""

    song_title: Optional[str] = None
    artist_name: Optional[str] = None
    note: Optional[str] = None


class StatusRequest(BaseModel):
    status: Optional[str] = None


class DjNoteRequest(BaseModel):
    dj_note: Optional[str] = None


class ReorderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ordered_ids: List[Union[int, str]] = Field(default_factory=list, alias="orderedIds")


class ConfigUpdateRequest(BaseModel):
    key: str
    value: str


# Dependency to get components
def get_queue_manager(request: Request) -> QueueManager:
    """Get QueueManager from app state."""
    return request.app.state.queue_manager


def get_config_manager(request: Request) -> Optional[ConfigManager]:
    """Get ConfigManager from app state."""
    return request.app.state.config_manager


def _http_error(error: QueueError) -> HTTPException:
    """Translate a queue error into the HTTP error reported to the caller."""
    if isinstance(error, StorageError):
        logger.error("Storage failure: %s", error, exc_info=error)
        return HTTPException(status_code=500, detail="Storage failure")
    return HTTPException(status_code=error.status_code, detail=str(error))


def create_app(
    queue_manager: QueueManager,
    config_manager: Optional[ConfigManager] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        queue_manager: QueueManager instance
        config_manager: ConfigManager instance (optional, enables /api/config)

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(title="djqueue", version="1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    # Store components in app state
    app.state.queue_manager = queue_manager
    app.state.config_manager = config_manager

    # Realtime channel follows every queue event
    connection_manager = ConnectionManager()
    app.state.connection_manager = connection_manager
    queue_manager.broadcaster.subscribe(connection_manager.handle_event)
    app.include_router(create_realtime_router(connection_manager))

    # Queue endpoints
    @app.get("/api/orders")
    async def list_orders(queue_mgr: QueueManager = Depends(get_queue_manager)):
        """Get all requests, active first in service order, then completed."""
        try:
            return [item.to_dict() for item in queue_mgr.list_requests()]
        except QueueError as e:
            raise _http_error(e)

    @app.post("/api/orders", status_code=201)
    async def create_order(
        request_data: CreateOrderRequest,
        queue_mgr: QueueManager = Depends(get_queue_manager),
    ):
        """Add a guest request to the queue."""
        try:
            item = queue_mgr.create_request(
                song_title=request_data.song_title,
                table_id=request_data.table_id,
                artist_name=request_data.artist_name,
                is_vip=request_data.is_vip,
                note=request_data.note,
            )
        except QueueError as e:
            raise _http_error(e)
        return item.to_dict()

    # Static /api/orders/... routes come before /api/orders/{request_id}
    @app.post("/api/orders/reorder")
    async def reorder_orders(
        request_data: ReorderRequest,
        queue_mgr: QueueManager = Depends(get_queue_manager),
    ):
        """Put the active requests in the given order (all-or-nothing)."""
        try:
            items = queue_mgr.reorder(request_data.ordered_ids)
        except QueueError as e:
            raise _http_error(e)
        return {"message": "Queue updated", "orders": [item.to_dict() for item in items]}

    @app.delete("/api/orders/all", status_code=204)
    async def reset_orders(queue_mgr: QueueManager = Depends(get_queue_manager)):
        """Archive completed requests and empty the queue and notifications."""
        try:
            queue_mgr.reset_all()
        except QueueError as e:
            raise _http_error(e)
        return Response(status_code=204)

    @app.delete("/api/orders/table/{table_id}", status_code=204)
    async def clear_table(
        table_id: str,
        queue_mgr: QueueManager = Depends(get_queue_manager),
    ):
        """Remove every request of a table."""
        try:
            queue_mgr.clear_table(table_id)
        except QueueError as e:
            raise _http_error(e)
        return Response(status_code=204)

    @app.patch("/api/orders/{request_id}")
    async def edit_order(
        request_id: int,
        request_data: EditOrderRequest,
        queue_mgr: QueueManager = Depends(get_queue_manager),
    ):
        """Guest edit of title, artist or note. The DJ is notified."""
        try:
            item = queue_mgr.edit_request(
                request_id,
                song_title=request_data.song_title,
                artist_name=request_data.artist_name,
                note=request_data.note,
            )
        except QueueError as e:
            raise _http_error(e)
        return item.to_dict()

    @app.patch("/api/orders/{request_id}/status")
    async def set_order_status(
        request_id: int,
        request_data: StatusRequest,
        queue_mgr: QueueManager = Depends(get_queue_manager),
    ):
        """Change request status (new, in_progress, completed)."""
        try:
            item = queue_mgr.set_status(request_id, request_data.status)
        except QueueError as e:
            raise _http_error(e)
        return item.to_dict()

    @app.patch("/api/orders/{request_id}/dj-note")
    async def set_order_dj_note(
        request_id: int,
        request_data: DjNoteRequest,
        queue_mgr: QueueManager = Depends(get_queue_manager),
    ):
        """Set the DJ-only note of a request."""
        try:
            item = queue_mgr.set_dj_note(request_id, request_data.dj_note)
        except QueueError as e:
            raise _http_error(e)
        return item.to_dict()

    @app.delete("/api/orders/{request_id}", status_code=204)
    async def delete_order(
        request_id: int,
        by_guest: bool = Query(False, alias="byGuest"),
        queue_mgr: QueueManager = Depends(get_queue_manager),
    ):
        """
        Remove a request.

        With byGuest=true the DJ gets a cancellation notification.
        """
        try:
            queue_mgr.delete_request(request_id, by_guest=by_guest)
        except QueueError as e:
            raise _http_error(e)
        return Response(status_code=204)

    # Notification endpoints
    @app.get("/api/notifications")
    async def list_notifications(queue_mgr: QueueManager = Depends(get_queue_manager)):
        """Get guest notifications, newest first."""
        try:
            return [n.to_dict() for n in queue_mgr.list_notifications()]
        except QueueError as e:
            raise _http_error(e)

    @app.delete("/api/notifications", status_code=204)
    async def clear_notifications(queue_mgr: QueueManager = Depends(get_queue_manager)):
        """Empty the notification log."""
        try:
            queue_mgr.clear_notifications()
        except QueueError as e:
            raise _http_error(e)
        return Response(status_code=204)

    # History endpoints
    @app.get("/api/history")
    async def list_history(
        limit: Optional[int] = Query(None, ge=1),
        queue_mgr: QueueManager = Depends(get_queue_manager),
    ):
        """Get completed requests, newest first."""
        try:
            return [entry.to_dict() for entry in queue_mgr.list_history(limit=limit)]
        except QueueError as e:
            raise _http_error(e)

    @app.get("/api/health")
    async def health(queue_mgr: QueueManager = Depends(get_queue_manager)):
        """Report whether the storage backend is reachable."""
        return {"dbConnected": queue_mgr.is_healthy()}

    # Configuration endpoints
    @app.get("/api/config")
    async def get_config(config: Optional[ConfigManager] = Depends(get_config_manager)):
        """
        Get all configuration with schema metadata.

        Returns:
            - values: Current configuration values
            - schema: Metadata for each editable key
            - groups: Group definitions for organizing the config UI
        """
        if config is None:
            raise HTTPException(status_code=404, detail="Configuration not available")
        return config.get_full_config()

    @app.patch("/api/config")
    async def update_config(
        request_data: ConfigUpdateRequest,
        config: Optional[ConfigManager] = Depends(get_config_manager),
    ):
        """Update an editable configuration value."""
        if config is None:
            raise HTTPException(status_code=404, detail="Configuration not available")
        if request_data.key not in CONFIG_SCHEMA:
            raise HTTPException(
                status_code=400, detail=f"Unknown configuration key: {request_data.key}"
            )

        config.set(request_data.key, request_data.value)
        return {
            "status": "updated",
            "key": request_data.key,
            "value": request_data.value,
        }

    return app
