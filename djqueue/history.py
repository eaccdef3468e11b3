"""
Request history management.

Maintains a permanent record of completed requests.
"""

import logging
from typing import List, Optional

from .models import HistoryEntry, SongRequest
from .storage import HistoryStore, utcnow


class HistoryArchive:
    """
    Manages the history of completed requests.

    Operates independently from the queue - history is permanent, the queue
    is ephemeral. Each request is archived at most once.
    """

    def __init__(self, store: HistoryStore):
        """
        Initialize history archive.

        Args:
            store: Backend holding the history entries
        """
        self.store = store
        self.logger = logging.getLogger(__name__)

    def archive(self, request: SongRequest) -> Optional[HistoryEntry]:
        """
        Record a completed request.

        Args:
            request: Request snapshot to archive

        Returns:
            The new history entry, or None if the request was already archived
        """
        entry = self.store.add(request, completed_at=utcnow())
        if entry is None:
            self.logger.debug("Request %s already archived", request.id)
            return None

        self.logger.info(
            "Archived request %s: %s - %s (table %s)",
            request.id,
            request.song_title,
            request.artist_name,
            request.table_id,
        )
        return entry

    def is_archived(self, request_id: int) -> bool:
        return self.store.contains(request_id)

    def list(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        """
        Get archived requests.

        Args:
            limit: Maximum number of entries to return (all if None)

        Returns:
            History entries, newest first
        """
        return self.store.get_all(limit=limit)
