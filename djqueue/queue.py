"""
Queue management for djqueue.

Handles request ordering (regular and VIP insertion), status transitions,
guest notifications, history archiving, and change broadcasts.
"""

import logging
import threading
from dataclasses import replace
from typing import Any, Iterable, List, Optional

from .broadcast import BroadcastGateway
from .errors import NotFoundError, ReorderMismatchError, ValidationError
from .history import HistoryArchive
from .models import (
    NOTIFICATION_CANCELLED,
    NOTIFICATION_EDITED,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_NEW,
    STATUSES,
    TYPE_REGULAR,
    TYPE_VIP,
    UNSPECIFIED_ARTIST,
    HistoryEntry,
    Notification,
    SongRequest,
    normalize_table_id,
)
from .notifications import NotificationLog
from .storage import RequestStore


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def _request_id(value: Any) -> int:
    # bool is an int subclass; True must not pass as request 1
    if isinstance(value, bool):
        raise TypeError("Request id must not be a boolean")
    return int(value)


class QueueManager:
    """
    Manages the live request queue.

    Every mutation runs under a single lock, together with its notification,
    history and broadcast side effects, so observers see changes in the
    order the commands arrived.
    """

    STATUS_NEW = STATUS_NEW
    STATUS_IN_PROGRESS = STATUS_IN_PROGRESS
    STATUS_COMPLETED = STATUS_COMPLETED

    def __init__(
        self,
        store: RequestStore,
        notification_log: NotificationLog,
        history: HistoryArchive,
        broadcaster: Optional[BroadcastGateway] = None,
        unspecified_artist: str = UNSPECIFIED_ARTIST,
    ):
        """
        Initialize QueueManager.

        Args:
            store: Request store (SQLite or in-memory)
            notification_log: Log receiving guest edit/cancel events
            history: Archive receiving completed requests
            broadcaster: Gateway for change signals (a private one if None)
            unspecified_artist: Artist name used when a guest gives none
        """
        self.store = store
        self.notification_log = notification_log
        self.history = history
        self.broadcaster = broadcaster or BroadcastGateway()
        self.unspecified_artist = unspecified_artist
        self.logger = logging.getLogger(__name__)
        self._lock = threading.RLock()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require(self, request_id: int) -> SongRequest:
        request = self.store.get(request_id)
        if request is None:
            raise NotFoundError(request_id)
        return request

    def _artist_or_default(self, artist_name: Optional[str]) -> str:
        return self.unspecified_artist if _is_blank(artist_name) else str(artist_name).strip()

    @staticmethod
    def _partition(requests: Iterable[SongRequest]):
        active, completed = [], []
        for request in requests:
            (active if request.is_active else completed).append(request)
        return active, completed

    def _load_layout(self):
        """
        Load requests split into the active and completed segments.

        Positions are expected to run 1..n with the active segment first;
        anything else is rewritten before use.
        """
        requests = self.store.get_all()
        active, completed = self._partition(requests)
        ordered = active + completed
        if [r.position for r in ordered] != list(range(1, len(ordered) + 1)):
            self.logger.warning("Queue positions out of sequence, renumbering")
            self.store.set_order([r.id for r in ordered])
            for index, request in enumerate(ordered, start=1):
                request.position = index
        return active, completed

    # =========================================================================
    # Queue Operations
    # =========================================================================

    def create_request(
        self,
        song_title: Optional[str],
        table_id: Any,
        artist_name: Optional[str] = None,
        is_vip: bool = False,
        note: Optional[str] = None,
    ) -> SongRequest:
        """
        Add a request to the queue.

        A VIP request goes right after the last in-progress request, ahead of
        every waiting request. A regular request goes to the end of the
        active segment.

        Args:
            song_title: Song title (required)
            table_id: Guest's table (required, number or string)
            artist_name: Artist name (optional)
            is_vip: Whether this is a priority request
            note: Free text from the guest (optional)

        Returns:
            The created request

        Raises:
            ValidationError: If song_title or table_id is missing
        """
        table = normalize_table_id(table_id)
        if _is_blank(song_title) or not table:
            raise ValidationError("Song title and table number are required")

        request_type = TYPE_VIP if is_vip else TYPE_REGULAR

        with self._lock:
            active, _ = self._load_layout()
            if is_vip:
                index = 0
                for i, request in enumerate(active):
                    if request.status == STATUS_IN_PROGRESS:
                        index = i + 1
            else:
                index = len(active)

            request = self.store.add(
                song_title=str(song_title).strip(),
                artist_name=self._artist_or_default(artist_name),
                table_id=table,
                request_type=request_type,
                note=note or "",
                position=index + 1,
            )
            self.logger.info(
                "Added %s request %s: %s - %s (table %s, position %d)",
                request_type,
                request.id,
                request.song_title,
                request.artist_name,
                request.table_id,
                request.position,
            )
            self.broadcaster.orders_changed()
        return request

    def edit_request(
        self,
        request_id: int,
        song_title: Optional[str] = None,
        artist_name: Optional[str] = None,
        note: Optional[str] = None,
    ) -> SongRequest:
        """
        Guest edit of a request. Only the supplied fields change.

        The DJ is notified with the post-edit snapshot.

        Raises:
            NotFoundError: If the request does not exist
            ValidationError: If song_title is supplied but blank
        """
        if song_title is not None and _is_blank(song_title):
            raise ValidationError("Song title cannot be empty")

        fields = {}
        if song_title is not None:
            fields["song_title"] = str(song_title).strip()
        if artist_name is not None:
            fields["artist_name"] = self._artist_or_default(artist_name)
        if note is not None:
            fields["note"] = note

        with self._lock:
            request = self.store.update(request_id, fields)
            if request is None:
                raise NotFoundError(request_id)

            notification = self.notification_log.append(NOTIFICATION_EDITED, request.to_dict())
            self.logger.info("Request %s edited by guest: %s", request_id, sorted(fields))
            self.broadcaster.orders_changed()
            self.broadcaster.notification_created(notification)
        return request

    def set_status(self, request_id: int, status: str) -> SongRequest:
        """
        Move a request through new -> in_progress -> completed.

        Completing a request archives it; a request is archived at most once.
        Crossing between active and completed re-lays out the queue so the
        completed segment stays after the active one.

        Raises:
            NotFoundError: If the request does not exist
            ValidationError: If status is not a known status
        """
        if status not in STATUSES:
            raise ValidationError(
                f"Invalid status {status!r}, expected one of: {', '.join(STATUSES)}"
            )

        with self._lock:
            current = self._require(request_id)
            becomes_active = status != STATUS_COMPLETED
            ordered_ids = None

            if current.is_active != becomes_active:
                active, completed = self._load_layout()
                active_ids = [r.id for r in active if r.id != request_id]
                completed_ids = [r.id for r in completed if r.id != request_id]
                if becomes_active:
                    active_ids.append(request_id)
                else:
                    completed_ids.insert(0, request_id)
                ordered_ids = active_ids + completed_ids

            if status == STATUS_COMPLETED and current.is_active:
                self.history.archive(replace(current, status=STATUS_COMPLETED))

            request = self.store.update(request_id, {"status": status}, ordered_ids)
            if request is None:
                raise NotFoundError(request_id)

            self.logger.info(
                "Request %s status: %s -> %s", request_id, current.status, status
            )
            self.broadcaster.orders_changed()
        return request

    def set_dj_note(self, request_id: int, dj_note: Optional[str] = None) -> SongRequest:
        """Set the DJ-only annotation on a request. Guests are not notified."""
        with self._lock:
            request = self.store.update(request_id, {"dj_note": dj_note or ""})
            if request is None:
                raise NotFoundError(request_id)
            self.logger.info("Request %s DJ note updated", request_id)
            self.broadcaster.orders_changed()
        return request

    def delete_request(self, request_id: int, by_guest: bool = False) -> None:
        """
        Remove a request from the queue.

        Args:
            request_id: Request to remove
            by_guest: If True, the DJ is notified of the cancellation

        Raises:
            NotFoundError: If the request does not exist
        """
        with self._lock:
            request = self._require(request_id)

            self.store.remove([request_id])

            notification = None
            if by_guest:
                notification = self.notification_log.append(
                    NOTIFICATION_CANCELLED, request.to_dict()
                )

            self.logger.info(
                "Removed request %s (%s)%s",
                request_id,
                request.song_title,
                " - cancelled by guest" if by_guest else "",
            )

            if notification is not None:
                self.broadcaster.notification_created(notification)
            self.broadcaster.orders_changed()

    def clear_table(self, table_id: Any) -> int:
        """
        Remove every request of a table, whatever its status.

        Table ids are compared as trimmed strings, so 5 and "5" match.

        Returns:
            Number of requests removed
        """
        table = normalize_table_id(table_id)

        with self._lock:
            ids = [
                r.id for r in self.store.get_all() if normalize_table_id(r.table_id) == table
            ]
            removed = self.store.remove(ids) if ids and table else 0
            if removed:
                self.logger.info("Cleared %d request(s) for table %s", removed, table)
                self.broadcaster.orders_changed()
        return removed

    def reorder(self, ordered_ids: Iterable[Any]) -> List[SongRequest]:
        """
        Put the active requests in a new order.

        The ids must name every active request exactly once and nothing
        else; otherwise nothing changes. Completed requests keep their
        relative order after the active segment.

        Returns:
            All requests in their new order

        Raises:
            ReorderMismatchError: If the ids do not match the active requests
        """
        try:
            resolved = [_request_id(request_id) for request_id in ordered_ids]
        except (TypeError, ValueError):
            raise ReorderMismatchError("Reorder ids must be integers")

        with self._lock:
            active, completed = self._load_layout()
            active_ids = {r.id for r in active}

            if (
                len(resolved) != len(active_ids)
                or len(set(resolved)) != len(resolved)
                or set(resolved) != active_ids
            ):
                self.logger.warning(
                    "Rejected reorder: %d id(s) given for %d active request(s)",
                    len(resolved),
                    len(active_ids),
                )
                raise ReorderMismatchError("Ordered ids do not match the active queue")

            self.store.set_order(resolved + [r.id for r in completed])
            self.logger.info("Queue reordered (%d active request(s))", len(resolved))
            self.broadcaster.orders_changed()
            return self.store.get_all()

    def reset_all(self) -> None:
        """
        Archive completed requests, then empty the queue and the notification log.

        History survives the reset.
        """
        with self._lock:
            _, completed = self._partition(self.store.get_all())
            for request in completed:
                self.history.archive(request)

            self.notification_log.clear()
            removed = self.store.clear()
            self.logger.info("Queue reset: %d request(s) removed", removed)

            self.broadcaster.orders_changed()
            self.broadcaster.notifications_cleared()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_request(self, request_id: int) -> SongRequest:
        """Get a request by id. Raises NotFoundError if unknown."""
        return self._require(request_id)

    def list_requests(self) -> List[SongRequest]:
        """Get all requests ordered by position, then creation time."""
        return self.store.get_all()

    def get_active(self) -> List[SongRequest]:
        return self._partition(self.store.get_all())[0]

    def get_completed(self) -> List[SongRequest]:
        return self._partition(self.store.get_all())[1]

    # =========================================================================
    # Notifications and History
    # =========================================================================

    def list_notifications(self) -> List[Notification]:
        return self.notification_log.list()

    def clear_notifications(self) -> None:
        with self._lock:
            self.notification_log.clear()
            self.broadcaster.notifications_cleared()

    def list_history(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        return self.history.list(limit=limit)

    def is_healthy(self) -> bool:
        """Check whether the request store is reachable."""
        return self.store.is_healthy()
