"""
Data models for djqueue.

Defines typed dataclasses for all entities used throughout the application.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional

# Request status values
STATUS_NEW = "new"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUSES = (STATUS_NEW, STATUS_IN_PROGRESS, STATUS_COMPLETED)

# Request types
TYPE_REGULAR = "regular"
TYPE_VIP = "vip"

# Notification types
NOTIFICATION_EDITED = "edited"
NOTIFICATION_CANCELLED = "cancelled"

UNSPECIFIED_ARTIST = "Not specified"


def normalize_table_id(table_id: Any) -> str:
    """Table ids arrive as numbers or strings; compare them as trimmed strings."""
    if table_id is None:
        return ""
    return str(table_id).strip()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class SongRequest:
    """A guest's song request in the live queue."""

    id: int
    song_title: str
    artist_name: str
    table_id: str
    status: str = STATUS_NEW
    type: str = TYPE_REGULAR
    note: str = ""
    dj_note: str = ""
    position: int = 0  # Service order among active requests
    created_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status != STATUS_COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        return data


@dataclass
class Notification:
    """Guest-visible event (edit or cancellation) surfaced to the DJ."""

    id: int
    type: str
    payload: Dict[str, Any]  # SongRequest snapshot at event time
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "payload": self.payload,
            "timestamp": _iso(self.timestamp),
        }


@dataclass
class HistoryEntry:
    """Snapshot of a request taken when it was completed."""

    id: int
    request_id: int
    song_title: str
    artist_name: str
    table_id: str
    type: str = TYPE_REGULAR
    note: str = ""
    dj_note: str = ""
    requested_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["requested_at"] = _iso(self.requested_at)
        data["completed_at"] = _iso(self.completed_at)
        return data


@dataclass
class ConfigEntry:
    """Configuration entry."""

    key: str
    value: str
    updated_at: Optional[datetime] = None
