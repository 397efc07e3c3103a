"""
SQLite Target Store.

Owns the connection to the target datastore and the tables DataSync
persists its own state in:
- datasync_registry: source id -> target id mappings
- datasync_delta: per (source system, entity type) checkpoints
- datasync_records: payloads written by the record table handler

Every write commits on its own; there are no transactions spanning
several calls.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Sequence

from datasync.utils.logger import get_logger

logger = get_logger(__name__)

MEMORY = ":memory:"

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS datasync_registry (
        registry_id INTEGER PRIMARY KEY AUTOINCREMENT,
        source_system TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        source_id INTEGER NOT NULL,
        target_id INTEGER NOT NULL,
        external_ref TEXT,
        synced_at TEXT NOT NULL,
        metadata TEXT,
        UNIQUE (source_system, entity_type, source_id)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_datasync_registry_external_ref
    ON datasync_registry (entity_type, external_ref)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_datasync_registry_target
    ON datasync_registry (target_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS datasync_delta (
        state_id INTEGER PRIMARY KEY AUTOINCREMENT,
        source_system TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        adapter_code TEXT NOT NULL DEFAULT 'csv',
        last_sync_at TEXT NOT NULL,
        last_entity_id INTEGER,
        last_updated_at TEXT,
        sync_count INTEGER NOT NULL DEFAULT 0,
        error_count INTEGER NOT NULL DEFAULT 0,
        last_error TEXT,
        config_hash TEXT,
        UNIQUE (source_system, entity_type)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS datasync_records (
        record_id INTEGER PRIMARY KEY AUTOINCREMENT,
        entity_type TEXT NOT NULL,
        source_system TEXT NOT NULL,
        source_id INTEGER,
        natural_key TEXT,
        payload TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_datasync_records_source
    ON datasync_records (entity_type, source_system, source_id)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_datasync_records_natural_key
    ON datasync_records (entity_type, natural_key)
    """,
)


class SQLiteStore:
    """
    Connector for the SQLite target datastore.

    Example:
        with SQLiteStore(Path("datasync.db")) as store:
            store.ensure_schema()
            store.execute_sql("DELETE FROM datasync_delta")
    """

    def __init__(self, path: Path | str = MEMORY) -> None:
        """
        Initialize the store.

        Args:
            path: Path to the SQLite file, or ":memory:"
        """
        self.path = path if path == MEMORY else Path(path)
        self._connection: sqlite3.Connection | None = None

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with proper cleanup."""
        if self._connection is None:
            self._connection = self._create_connection()

        try:
            yield self._connection
        except Exception:
            self._connection.rollback()
            raise

    def _create_connection(self) -> sqlite3.Connection:
        """Create a new database connection."""
        if isinstance(self.path, Path):
            self.path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.path),
            check_same_thread=False,
            timeout=30.0,
        )

        conn.row_factory = sqlite3.Row
        if self.path != MEMORY:
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA temp_store=MEMORY")

        return conn

    def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None

    def __enter__(self) -> "SQLiteStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def ensure_schema(self) -> None:
        """Create the DataSync tables and indexes if they do not exist."""
        with self.connection() as conn:
            for statement in SCHEMA:
                conn.execute(statement)
            conn.commit()
        logger.debug(f"Schema ready in {self.path}")

    def execute_sql(self, sql: str, params: Sequence[Any] = ()) -> int:
        """
        Execute a write statement and return affected row count.

        Args:
            sql: SQL statement
            params: Query parameters

        Returns:
            Number of affected rows
        """
        with self.connection() as conn:
            cursor = conn.execute(sql, params)
            conn.commit()
            return cursor.rowcount

    def insert(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute an INSERT and return the new row id."""
        with self.connection() as conn:
            cursor = conn.execute(sql, params)
            conn.commit()
            return int(cursor.lastrowid or 0)

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        """Run a SELECT and return all rows."""
        with self.connection() as conn:
            return conn.execute(sql, params).fetchall()

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        """Run a SELECT and return the first row, if any."""
        with self.connection() as conn:
            return conn.execute(sql, params).fetchone()


def open_store(path: Path | str) -> SQLiteStore:
    """Open a target store and make sure its schema exists."""
    store = SQLiteStore(path)
    store.ensure_schema()
    return store
