"""
Storage Backend Module

Row stores behind the statement executor: an in-memory backend for tests and
a SQLite backend for persistence. Rows are JSON documents keyed by primary
key; NUMERIC values arrive already rendered as Decimal strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from datetime import datetime, timezone
import sqlite3
import json
import threading
from pathlib import Path
from contextlib import contextmanager

from .errors import StorageError


class StorageInterface(ABC):
    """Abstract interface for storage backends"""
    
    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a row"""
    
    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Every row of a table in insertion order"""
    
    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Remove a row; False when it was not there"""
    
    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Rows whose fields equal every filter value"""
    
    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Drop every row of a table"""
    
    @abstractmethod
    def close(self) -> None:
        """Release the backend"""
    
    @property
    def in_transaction(self) -> bool:
        return False
    
    def begin_transaction(self) -> None:
        pass
    
    def commit(self) -> None:
        pass
    
    def rollback(self) -> None:
        pass
    
    @contextmanager
    def atomic(self):
        """
        Context manager for atomic operations.
    
        A nested block joins the enclosing transaction; only the outermost
        block commits or rolls back.
        """
        if self.in_transaction:
            yield
            return
    
        self.begin_transaction()
        try:
            yield
            self.commit()
        except BaseException:
            self.rollback()
            raise


def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    return all(key in record and record[key] == value for key, value in filters.items())


def _copy(data: Any) -> Any:
    return json.loads(json.dumps(data, default=str))


class InMemoryStorage(StorageInterface):
    """In-memory storage; transactions snapshot every table"""
    
    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None
    
    def _rows(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault(table, {})
    
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            # Copy so callers cannot mutate stored rows
            self._rows(table)[record_id] = _copy(data)
    
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [_copy(record) for record in self._rows(table).values()]
    
    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._rows(table).pop(record_id, None) is not None
    
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                _copy(record)
                for record in self._rows(table).values()
                if _matches(record, filters)
            ]
    
    def clear_table(self, table: str) -> None:
        with self._lock:
            self._data[table] = {}
    
    @property
    def in_transaction(self) -> bool:
        return self._snapshot is not None
    
    def begin_transaction(self) -> None:
        with self._lock:
            if self._snapshot is None:
                self._snapshot = _copy(self._data)
    
    def commit(self) -> None:
        with self._lock:
            self._snapshot = None
    
    def rollback(self) -> None:
        """Restore the snapshot taken when the transaction began"""
        with self._lock:
            if self._snapshot is not None:
                self._data = self._snapshot
                self._snapshot = None
    
    def close(self) -> None:
        pass


class SQLiteStorage(StorageInterface):
    """
    SQLite storage for persistence.
    
    Each logical table is a SQLite table of (id, data, created_at,
    updated_at) with the row serialized as JSON. Driver failures and use of
    a closed connection surface as StorageError.
    """
    
    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._in_transaction = False
        self._known_tables = set()
        try:
            # DEFERRED: the transaction opens implicitly on the first write
            self._connection: Optional[sqlite3.Connection] = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level='DEFERRED'
            )
        except sqlite3.Error as e:
            raise StorageError(f"could not open database {self.db_path}: {e}") from e
        self._connection.row_factory = sqlite3.Row
    
        if self.db_path != ":memory:":
            with self._cursor() as conn:
                conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("PRAGMA synchronous = NORMAL")
                conn.commit()
    
    @contextmanager
    def _cursor(self):
        with self._lock:
            if self._connection is None:
                raise StorageError("connection to the database is closed")
            try:
                yield self._connection
            except sqlite3.Error as e:
                raise StorageError(f"storage failure: {e}") from e
    
    def _ensure_table(self, conn: sqlite3.Connection, table: str) -> None:
        if table in self._known_tables:
            return
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_created_at ON {table}(created_at)")
        # DDL inside a rolled back transaction disappears with it
        if not self._in_transaction:
            conn.commit()
            self._known_tables.add(table)
    
    def _autocommit(self, conn: sqlite3.Connection) -> None:
        if not self._in_transaction:
            conn.commit()
    
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._cursor() as conn:
            self._ensure_table(conn, table)
            now = datetime.now(timezone.utc).isoformat()
            conn.execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?,
                    COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                    ?)
            """, (record_id, json.dumps(data, default=str), record_id, now, now))
            self._autocommit(conn)
    
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        return self.find(table, {})
    
    def delete(self, table: str, record_id: str) -> bool:
        with self._cursor() as conn:
            self._ensure_table(conn, table)
            cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
            self._autocommit(conn)
            return cursor.rowcount > 0
    
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._cursor() as conn:
            self._ensure_table(conn, table)
            # rowid breaks created_at ties in insertion order
            cursor = conn.execute(f"SELECT data FROM {table} ORDER BY created_at, rowid")
            records = [json.loads(row['data']) for row in cursor.fetchall()]
        return [record for record in records if _matches(record, filters)]
    
    def clear_table(self, table: str) -> None:
        with self._cursor() as conn:
            self._ensure_table(conn, table)
            conn.execute(f"DELETE FROM {table}")
            self._autocommit(conn)
    
    @property
    def in_transaction(self) -> bool:
        return self._in_transaction
    
    def begin_transaction(self) -> None:
        with self._lock:
            self._in_transaction = True
    
    def commit(self) -> None:
        with self._lock:
            if not self._in_transaction:
                return
            self._in_transaction = False
            with self._cursor() as conn:
                try:
                    conn.commit()
                except sqlite3.Error:
                    conn.rollback()
                    raise
    
    def rollback(self) -> None:
        with self._lock:
            if not self._in_transaction:
                return
            self._in_transaction = False
            # Nothing to undo once the connection is gone
            if self._connection is not None:
                self._connection.rollback()
    
    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """
    Build a storage backend from a URL.
    
    Supported forms: ``memory://``, ``sqlite://`` (in-memory SQLite) and
    ``sqlite:///path/to/file.db``.
    """
    if database_url.startswith("memory://"):
        return InMemoryStorage()
    if database_url.startswith("sqlite://"):
        path = database_url[len("sqlite://"):]
        if path.startswith("/"):
            path = path[1:]
        return SQLiteStorage(path or ":memory:")
    raise ValueError(f"Unsupported database URL: {database_url}")
