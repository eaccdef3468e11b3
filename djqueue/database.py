"""
Database module for djqueue.

Handles SQLite database initialization, schema creation, connection
management, and the SQLite-backed repositories.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import StorageError
from .models import ConfigEntry, HistoryEntry, Notification, SongRequest
from .storage import (
    MUTABLE_FIELDS,
    HistoryStore,
    NotificationStore,
    RequestStore,
    utcnow,
)


class Database:
    """Manages SQLite database connection and schema."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses ~/.djqueue/djqueue.db
        """
        self.logger = logging.getLogger(__name__)

        if db_path is None:
            home = Path.home()
            data_dir = home / '.djqueue'
            data_dir.mkdir(exist_ok=True)
            db_path = str(data_dir / 'djqueue.db')

        self.db_path = db_path
        self._ensure_schema()
        self.logger.info('Database initialized at %s', self.db_path)

    def _ensure_schema(self):
        """Ensure database schema exists."""
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        try:
            cursor = conn.cursor()

            # Live queue
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS song_requests (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    position INTEGER NOT NULL,
                    song_title TEXT NOT NULL,
                    artist_name TEXT NOT NULL,
                    table_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'new',
                    request_type TEXT NOT NULL DEFAULT 'regular',
                    note TEXT NOT NULL DEFAULT '',
                    dj_note TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL
                )
            ''')

            # Guest-visible events shown to the DJ
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    type TEXT NOT NULL,
                    payload_json TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            ''')

            # Completed requests, independent of the live queue
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS request_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    request_id INTEGER NOT NULL UNIQUE,
                    song_title TEXT NOT NULL,
                    artist_name TEXT NOT NULL,
                    table_id TEXT NOT NULL,
                    request_type TEXT NOT NULL,
                    note TEXT NOT NULL DEFAULT '',
                    dj_note TEXT NOT NULL DEFAULT '',
                    requested_at TEXT,
                    completed_at TEXT NOT NULL
                )
            ''')

            # Configuration table
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS config (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_song_requests_position
                ON song_requests(position)
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_song_requests_table
                ON song_requests(table_id)
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_request_history_completed_at
                ON request_history(completed_at)
            ''')

            conn.commit()
        finally:
            conn.close()
        self.logger.debug('Database schema created/verified')

    def get_connection(self):
        """
        Get a new database connection (thread-safe).

        Each call gets its own connection. Caller is responsible
        for closing the connection when done.
        """
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def transaction(self):
        """
        Open a connection, commit on success and roll back on failure.

        sqlite3 errors are re-raised as StorageError.
        """
        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            self.logger.error('Database error: %s', e, exc_info=True)
            raise StorageError(f'Database error: {e}') from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def ping(self) -> bool:
        """Check that the database answers a trivial query."""
        try:
            conn = self.get_connection()
            try:
                conn.execute('SELECT 1').fetchone()
            finally:
                conn.close()
            return True
        except sqlite3.Error as e:
            self.logger.warning('Database ping failed: %s', e)
            return False

    def close(self):
        """Close database connection (no-op since we use per-call connections)."""
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def _format_ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


# =============================================================================
# Repositories
# =============================================================================


class RequestRepository(RequestStore):
    """SQLite-backed request store."""

    _COLUMNS = {
        'song_title': 'song_title',
        'artist_name': 'artist_name',
        'note': 'note',
        'dj_note': 'dj_note',
        'status': 'status',
    }

    def __init__(self, database: Database):
        self.database = database
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _row_to_request(row) -> SongRequest:
        return SongRequest(
            id=row['id'],
            song_title=row['song_title'],
            artist_name=row['artist_name'],
            table_id=row['table_id'],
            status=row['status'],
            type=row['request_type'],
            note=row['note'],
            dj_note=row['dj_note'],
            position=row['position'],
            created_at=_parse_ts(row['created_at']),
        )

    @staticmethod
    def _fetch(conn, request_id: int) -> Optional[SongRequest]:
        row = conn.execute(
            'SELECT * FROM song_requests WHERE id = ?', (request_id,)
        ).fetchone()
        return RequestRepository._row_to_request(row) if row else None

    @staticmethod
    def _write_order(conn, ordered_ids: List[int]) -> None:
        conn.executemany(
            'UPDATE song_requests SET position = ? WHERE id = ?',
            [(index, request_id) for index, request_id in enumerate(ordered_ids, start=1)],
        )

    @staticmethod
    def _current_order(conn) -> List[int]:
        rows = conn.execute(
            'SELECT id FROM song_requests ORDER BY position, created_at, id'
        ).fetchall()
        return [row['id'] for row in rows]

    def add(self, song_title, artist_name, table_id, request_type, note, position):
        with self.database.transaction() as conn:
            conn.execute(
                'UPDATE song_requests SET position = position + 1 WHERE position >= ?',
                (position,),
            )
            cursor = conn.execute('''
                INSERT INTO song_requests (
                    position, song_title, artist_name, table_id,
                    status, request_type, note, dj_note, created_at
                ) VALUES (?, ?, ?, ?, 'new', ?, ?, '', ?)
            ''', (
                position,
                song_title,
                artist_name,
                table_id,
                request_type,
                note,
                _format_ts(utcnow()),
            ))
            return self._fetch(conn, cursor.lastrowid)

    def get(self, request_id):
        with self.database.transaction() as conn:
            return self._fetch(conn, request_id)

    def get_all(self):
        with self.database.transaction() as conn:
            rows = conn.execute(
                'SELECT * FROM song_requests ORDER BY position, created_at, id'
            ).fetchall()
            return [self._row_to_request(row) for row in rows]

    def update(self, request_id, fields, ordered_ids=None):
        for name in fields:
            if name not in MUTABLE_FIELDS:
                raise ValueError(f'Field {name!r} cannot be updated')

        with self.database.transaction() as conn:
            if self._fetch(conn, request_id) is None:
                return None
            if fields:
                assignments = ', '.join(f'{self._COLUMNS[name]} = ?' for name in fields)
                conn.execute(
                    f'UPDATE song_requests SET {assignments} WHERE id = ?',
                    (*fields.values(), request_id),
                )
            if ordered_ids is not None:
                self._write_order(conn, ordered_ids)
            return self._fetch(conn, request_id)

    def set_order(self, ordered_ids):
        with self.database.transaction() as conn:
            self._write_order(conn, ordered_ids)

    def remove(self, request_ids):
        ids = list(set(request_ids))
        if not ids:
            return 0
        with self.database.transaction() as conn:
            cursor = conn.executemany(
                'DELETE FROM song_requests WHERE id = ?', [(i,) for i in ids]
            )
            removed = cursor.rowcount
            if removed:
                self._write_order(conn, self._current_order(conn))
            return removed

    def clear(self):
        with self.database.transaction() as conn:
            return conn.execute('DELETE FROM song_requests').rowcount

    def is_healthy(self):
        return self.database.ping()


class NotificationRepository(NotificationStore):
    """SQLite-backed notification log. Payloads are stored as JSON."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logging.getLogger(__name__)

    def _encode_payload(self, payload: Dict[str, Any]) -> str:
        """Encode payload dict to JSON string."""
        return json.dumps(payload, default=str)

    def _decode_payload(self, payload_json: str) -> Dict[str, Any]:
        """Decode payload from JSON string."""
        if not payload_json:
            return {}
        try:
            return json.loads(payload_json)
        except json.JSONDecodeError:
            self.logger.warning('Failed to decode notification payload JSON: %s', payload_json)
            return {}

    def _row_to_notification(self, row) -> Notification:
        return Notification(
            id=row['id'],
            type=row['type'],
            payload=self._decode_payload(row['payload_json']),
            timestamp=_parse_ts(row['created_at']),
        )

    def add(self, notification_type, payload):
        with self.database.transaction() as conn:
            cursor = conn.execute(
                'INSERT INTO notifications (type, payload_json, created_at) VALUES (?, ?, ?)',
                (notification_type, self._encode_payload(payload), _format_ts(utcnow())),
            )
            row = conn.execute(
                'SELECT * FROM notifications WHERE id = ?', (cursor.lastrowid,)
            ).fetchone()
            return self._row_to_notification(row)

    def get_all(self, limit=None):
        with self.database.transaction() as conn:
            rows = conn.execute(
                'SELECT * FROM notifications ORDER BY id DESC LIMIT ?',
                (-1 if limit is None else limit,),
            ).fetchall()
            return [self._row_to_notification(row) for row in rows]

    def trim(self, keep):
        with self.database.transaction() as conn:
            cursor = conn.execute('''
                DELETE FROM notifications
                WHERE id NOT IN (
                    SELECT id FROM notifications ORDER BY id DESC LIMIT ?
                )
            ''', (keep,))
            return cursor.rowcount

    def clear(self):
        with self.database.transaction() as conn:
            return conn.execute('DELETE FROM notifications').rowcount


class HistoryRepository(HistoryStore):
    """SQLite-backed history archive."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _row_to_entry(row) -> HistoryEntry:
        return HistoryEntry(
            id=row['id'],
            request_id=row['request_id'],
            song_title=row['song_title'],
            artist_name=row['artist_name'],
            table_id=row['table_id'],
            type=row['request_type'],
            note=row['note'],
            dj_note=row['dj_note'],
            requested_at=_parse_ts(row['requested_at']),
            completed_at=_parse_ts(row['completed_at']),
        )

    def add(self, request, completed_at):
        with self.database.transaction() as conn:
            cursor = conn.execute('''
                INSERT OR IGNORE INTO request_history (
                    request_id, song_title, artist_name, table_id,
                    request_type, note, dj_note, requested_at, completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                request.id,
                request.song_title,
                request.artist_name,
                request.table_id,
                request.type,
                request.note,
                request.dj_note,
                _format_ts(request.created_at),
                _format_ts(completed_at),
            ))
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                'SELECT * FROM request_history WHERE id = ?', (cursor.lastrowid,)
            ).fetchone()
            return self._row_to_entry(row)

    def contains(self, request_id):
        with self.database.transaction() as conn:
            row = conn.execute(
                'SELECT 1 FROM request_history WHERE request_id = ?', (request_id,)
            ).fetchone()
            return row is not None

    def get_all(self, limit=None):
        with self.database.transaction() as conn:
            rows = conn.execute('''
                SELECT * FROM request_history
                ORDER BY completed_at DESC, id DESC
                LIMIT ?
            ''', (-1 if limit is None else limit,)).fetchall()
            return [self._row_to_entry(row) for row in rows]


class ConfigRepository:
    """Key/value configuration stored in the config table."""

    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def _row_to_entry(row) -> ConfigEntry:
        updated_at = row['updated_at']
        if isinstance(updated_at, str):
            updated_at = _parse_ts(updated_at.replace(' ', 'T'))
        return ConfigEntry(key=row['key'], value=row['value'], updated_at=updated_at)

    def initialize_defaults(self, defaults: Dict[str, Any]) -> None:
        """Insert defaults for keys that have no stored value yet."""
        with self.database.transaction() as conn:
            conn.executemany(
                'INSERT OR IGNORE INTO config (key, value) VALUES (?, ?)',
                [(key, str(value)) for key, value in defaults.items() if value is not None],
            )

    def get(self, key: str) -> Optional[ConfigEntry]:
        with self.database.transaction() as conn:
            row = conn.execute('SELECT * FROM config WHERE key = ?', (key,)).fetchone()
            return self._row_to_entry(row) if row else None

    def set(self, key: str, value: str) -> bool:
        with self.database.transaction() as conn:
            conn.execute('''
                INSERT INTO config (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
            ''', (key, value))
        return True

    def get_all(self) -> List[ConfigEntry]:
        with self.database.transaction() as conn:
            rows = conn.execute('SELECT * FROM config ORDER BY key').fetchall()
            return [self._row_to_entry(row) for row in rows]
