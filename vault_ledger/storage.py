"""
Storage Backend Module

Provides abstract storage interface and implementations for in-memory (testing)
and SQLite (persistence). All monetary values stored as Decimal strings.

Both backends honour atomic(): writes made inside the block become visible
to other callers only on commit and are discarded on rollback.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from datetime import datetime, timezone
import sqlite3
import json
import threading
from dataclasses import dataclass
from pathlib import Path
from contextlib import contextmanager

from .errors import ConflictError


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp written by one of the *_to_dict serializers"""
    if not value:
        return None
    return datetime.fromisoformat(value)


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
        except BaseException:
            self.rollback()
            raise
        self.commit()


def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    for key, value in filters.items():
        if key not in record or record[key] != value:
            return False
    return True


class InMemoryStorage(StorageInterface):
    """
    In-memory storage implementation for testing

    Writes inside a transaction go to a per-thread buffer that overlays the
    committed data for that thread only.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._local = threading.local()

    @staticmethod
    def _copy(data: Dict[str, Any]) -> Dict[str, Any]:
        # Deep copy to prevent external mutation
        return json.loads(json.dumps(data, default=str))

    def _buffer(self) -> Optional[Dict[str, Dict[str, Optional[Dict[str, Any]]]]]:
        return getattr(self._local, 'buffer', None)

    def _view(self, table: str) -> Dict[str, Dict[str, Any]]:
        """Committed rows overlaid with this thread's pending writes"""
        with self._lock:
            rows = dict(self._data.get(table, {}))

        buffer = self._buffer()
        if buffer and table in buffer:
            for record_id, record in buffer[table].items():
                if record is None:
                    rows.pop(record_id, None)
                else:
                    rows[record_id] = record
        return rows

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        record = self._copy(data)
        buffer = self._buffer()
        if buffer is not None:
            buffer.setdefault(table, {})[record_id] = record
            return

        with self._lock:
            self._data.setdefault(table, {})[record_id] = record

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        record = self._view(table).get(record_id)
        if record:
            return self._copy(record)
        return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        return [self._copy(record) for record in self._view(table).values()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from memory"""
        existed = record_id in self._view(table)
        buffer = self._buffer()
        if buffer is not None:
            if existed:
                buffer.setdefault(table, {})[record_id] = None
            return existed

        with self._lock:
            if record_id in self._data.get(table, {}):
                del self._data[table][record_id]
                return True
            return False

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        return record_id in self._view(table)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        return [
            self._copy(record) for record in self._view(table).values()
            if _matches(record, filters)
        ]

    def count(self, table: str) -> int:
        """Count records in table"""
        return len(self._view(table))

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        buffer = self._buffer()
        if buffer is not None:
            pending = buffer.setdefault(table, {})
            for record_id in list(self._view(table)):
                pending[record_id] = None
            return

        with self._lock:
            self._data[table] = {}

    def begin_transaction(self) -> None:
        """Start buffering writes for the calling thread"""
        depth = getattr(self._local, 'depth', 0)
        if depth == 0:
            self._local.buffer = {}
        self._local.depth = depth + 1

    def commit(self) -> None:
        """Apply buffered writes once the outermost transaction commits"""
        depth = getattr(self._local, 'depth', 0)
        if depth == 0:
            return
        self._local.depth = depth - 1
        if depth > 1:
            return

        buffer = self._buffer() or {}
        self._local.buffer = None
        with self._lock:
            for table, rows in buffer.items():
                committed = self._data.setdefault(table, {})
                for record_id, record in rows.items():
                    if record is None:
                        committed.pop(record_id, None)
                    else:
                        committed[record_id] = record

    def rollback(self) -> None:
        """Discard buffered writes"""
        self._local.buffer = None
        self._local.depth = 0

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """
    SQLite storage implementation for persistence

    A transaction holds the connection lock from begin to commit/rollback,
    so writer transactions are serialized.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        # Set isolation_level to 'DEFERRED' to enable manual transaction control
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._tables = set()

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    @property
    def _in_transaction(self) -> bool:
        return self._depth > 0

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._connection.execute(sql, params)
        except sqlite3.OperationalError as e:
            if "locked" in str(e):
                raise ConflictError(f"Storage busy: {e}") from e
            raise

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._tables:
            return
        with self._lock:
            self._execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_created_at
                ON {table}(created_at)
            """)
            if not self._in_transaction:
                self._connection.commit()
            self._tables.add(table)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to SQLite"""
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=str)

            # Use INSERT OR REPLACE to handle updates
            self._execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?,
                    COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                    ?)
            """, (record_id, data_json, record_id, now, now))

            # Only commit if not in transaction
            if not self._in_transaction:
                self._connection.commit()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._execute(f"""
                SELECT data FROM {table} ORDER BY created_at, rowid
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._execute(f"""
                DELETE FROM {table} WHERE id = ?
            """, (record_id,))

            if not self._in_transaction:
                self._connection.commit()
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._execute(f"""
                SELECT 1 FROM {table} WHERE id = ? LIMIT 1
            """, (record_id,))
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters (simple JSON key matching)"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._execute(f"""
                SELECT data FROM {table} ORDER BY created_at, rowid
            """)

            results = []
            for row in cursor.fetchall():
                record = json.loads(row['data'])
                if _matches(record, filters):
                    results.append(record)

            return results

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._ensure_table(table)
            self._execute(f"DELETE FROM {table}")

            if not self._in_transaction:
                self._connection.commit()

    def begin_transaction(self) -> None:
        """Start a database transaction, holding the connection lock until it ends"""
        self._lock.acquire()
        # SQLite with isolation_level='DEFERRED' starts the transaction on first write
        self._depth += 1

    def commit(self) -> None:
        """Commit current transaction"""
        if self._depth == 0:
            return
        try:
            if self._depth == 1:
                try:
                    self._connection.commit()
                except sqlite3.OperationalError as e:
                    self._connection.rollback()
                    if "locked" in str(e):
                        raise ConflictError(f"Storage busy: {e}") from e
                    raise
        finally:
            self._depth -= 1
            self._lock.release()

    def rollback(self) -> None:
        """Rollback current transaction"""
        if self._depth == 0:
            return
        try:
            self._connection.rollback()
            # tables created inside the rolled back transaction are gone too
            self._tables.clear()
        finally:
            self._depth -= 1
            self._lock.release()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(backend: str, database_path: str = ":memory:") -> StorageInterface:
    """Build the storage backend named in configuration"""
    if backend == "memory":
        return InMemoryStorage()
    if backend == "sqlite":
        return SQLiteStorage(database_path)
    raise ValueError(f"Unknown storage backend: {backend}")
