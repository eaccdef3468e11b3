"""
Storage abstraction for djqueue.

Defines the store interfaces the queue engine depends on and the
process-local (in-memory) implementations. The SQLite implementations live
in database.py.
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .models import HistoryEntry, Notification, SongRequest

# Fields a caller may overwrite through RequestStore.update()
MUTABLE_FIELDS = ("song_title", "artist_name", "note", "dj_note", "status")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestStore(ABC):
    """Collection of song requests; owns the position field."""

    @abstractmethod
    def add(
        self,
        song_title: str,
        artist_name: str,
        table_id: str,
        request_type: str,
        note: str,
        position: int,
    ) -> SongRequest:
        """
        Insert a request at a position.

        Every stored request at or after the position is shifted down by one
        in the same atomic step.

        Returns:
            The stored request with its assigned id and created_at
        """
        ...

    @abstractmethod
    def get(self, request_id: int) -> Optional[SongRequest]:
        """Get a request by id, or None if unknown."""
        ...

    @abstractmethod
    def get_all(self) -> List[SongRequest]:
        """Get all requests ordered by position, then created_at, then id."""
        ...

    @abstractmethod
    def update(
        self,
        request_id: int,
        fields: Dict[str, Any],
        ordered_ids: Optional[List[int]] = None,
    ) -> Optional[SongRequest]:
        """
        Overwrite fields of a request.

        Args:
            request_id: Request to update
            fields: Mapping of field name to new value (names from MUTABLE_FIELDS)
            ordered_ids: If given, positions are rewritten to this order in
                the same atomic step

        Returns:
            Updated request, or None if unknown
        """
        ...

    @abstractmethod
    def set_order(self, ordered_ids: List[int]) -> None:
        """Assign positions 1..n following ordered_ids."""
        ...

    @abstractmethod
    def remove(self, request_ids: Iterable[int]) -> int:
        """Delete requests and compact the positions of the rest. Returns count removed."""
        ...

    @abstractmethod
    def clear(self) -> int:
        """Delete all requests. Returns count removed."""
        ...

    def is_healthy(self) -> bool:
        """Check whether the backend is reachable."""
        return True


class NotificationStore(ABC):
    """Append log of notifications."""

    @abstractmethod
    def add(self, notification_type: str, payload: Dict[str, Any]) -> Notification:
        ...

    @abstractmethod
    def get_all(self, limit: Optional[int] = None) -> List[Notification]:
        """Get notifications newest-first."""
        ...

    @abstractmethod
    def trim(self, keep: int) -> int:
        """Drop all but the newest `keep` notifications. Returns count dropped."""
        ...

    @abstractmethod
    def clear(self) -> int:
        ...


class HistoryStore(ABC):
    """Append-only record of completed requests, at most one per request id."""

    @abstractmethod
    def add(self, request: SongRequest, completed_at: datetime) -> Optional[HistoryEntry]:
        """Store a snapshot of the request. Returns None if it was already archived."""
        ...

    @abstractmethod
    def contains(self, request_id: int) -> bool:
        ...

    @abstractmethod
    def get_all(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        """Get entries newest-first."""
        ...


# =============================================================================
# In-memory implementations
# =============================================================================


class MemoryRequestStore(RequestStore):
    """Requests held in a process-local dict. Ids are never reused."""

    def __init__(self):
        self._requests: Dict[int, SongRequest] = {}
        self._ids = itertools.count(1)
        self.logger = logging.getLogger(__name__)

    def _ordered(self) -> List[SongRequest]:
        return sorted(
            self._requests.values(), key=lambda r: (r.position, r.created_at, r.id)
        )

    def _renumber(self, ordered_ids: List[int]) -> None:
        for index, request_id in enumerate(ordered_ids, start=1):
            self._requests[request_id].position = index

    def add(self, song_title, artist_name, table_id, request_type, note, position):
        for request in self._requests.values():
            if request.position >= position:
                request.position += 1

        request = SongRequest(
            id=next(self._ids),
            song_title=song_title,
            artist_name=artist_name,
            table_id=table_id,
            type=request_type,
            note=note,
            position=position,
            created_at=utcnow(),
        )
        self._requests[request.id] = request
        return replace(request)

    def get(self, request_id):
        request = self._requests.get(request_id)
        return replace(request) if request else None

    def get_all(self):
        return [replace(r) for r in self._ordered()]

    def update(self, request_id, fields, ordered_ids=None):
        request = self._requests.get(request_id)
        if request is None:
            return None

        for name, value in fields.items():
            if name not in MUTABLE_FIELDS:
                raise ValueError(f"Field {name!r} cannot be updated")
            setattr(request, name, value)
        if ordered_ids is not None:
            self._renumber(ordered_ids)
        return replace(request)

    def set_order(self, ordered_ids):
        self._renumber(ordered_ids)

    def remove(self, request_ids):
        removed = 0
        for request_id in set(request_ids):
            if self._requests.pop(request_id, None) is not None:
                removed += 1
        if removed:
            self._renumber([r.id for r in self._ordered()])
        return removed

    def clear(self):
        count = len(self._requests)
        self._requests.clear()
        return count


class MemoryNotificationStore(NotificationStore):
    """Notifications held newest-first in a list."""

    def __init__(self):
        self._notifications: List[Notification] = []
        self._ids = itertools.count(1)

    def add(self, notification_type, payload):
        notification = Notification(
            id=next(self._ids),
            type=notification_type,
            payload=dict(payload),
            timestamp=utcnow(),
        )
        self._notifications.insert(0, notification)
        return notification

    def get_all(self, limit=None):
        items = self._notifications if limit is None else self._notifications[:limit]
        return list(items)

    def trim(self, keep):
        dropped = max(len(self._notifications) - keep, 0)
        if dropped:
            del self._notifications[keep:]
        return dropped

    def clear(self):
        count = len(self._notifications)
        self._notifications = []
        return count


class MemoryHistoryStore(HistoryStore):
    """History entries held in insertion order."""

    def __init__(self):
        self._entries: List[HistoryEntry] = []
        self._archived_ids = set()
        self._ids = itertools.count(1)

    def add(self, request, completed_at):
        if request.id in self._archived_ids:
            return None

        entry = HistoryEntry(
            id=next(self._ids),
            request_id=request.id,
            song_title=request.song_title,
            artist_name=request.artist_name,
            table_id=request.table_id,
            type=request.type,
            note=request.note,
            dj_note=request.dj_note,
            requested_at=request.created_at,
            completed_at=completed_at,
        )
        self._entries.append(entry)
        self._archived_ids.add(request.id)
        return entry

    def contains(self, request_id):
        return request_id in self._archived_ids

    def get_all(self, limit=None):
        newest_first = list(reversed(self._entries))
        return newest_first if limit is None else newest_first[:limit]
