"""
SQLite source adapter.

Reads one table per entity type from a SQLite database opened
read-only. Exact-match filters are pushed into SQL; date filters are
applied per row. Rows are streamed in pages so large tables never sit
in memory.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Iterator

from datasync.adapters.base import BaseAdapter, RawRecord
from datasync.core.filters import FilterSet
from datasync.exceptions import ConnectionFailed, SourceNotFound
from datasync.utils.logger import get_logger

logger = get_logger(__name__)


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class SQLiteAdapter(BaseAdapter):
    """
    Adapter reading from a SQLite database.

    Example:
        adapter = SQLiteAdapter({
            "database_path": "legacy.db",
            "tables": {"customer": "customer_entity"},
        })
        for record in adapter.read("customer"):
            ...
    """

    code = "sqlite"
    label = "SQLite Database"

    @property
    def database_path(self) -> Path | None:
        value = self._option("database_path")
        return Path(value) if value else None

    @property
    def page_size(self) -> int:
        return int(self._option("page_size", 100))

    def table_for(self, entity_type: str) -> str:
        """Source table for an entity type; defaults to the entity type itself."""
        return self._option("tables", {}).get(entity_type, entity_type)

    def _connect(self) -> sqlite3.Connection:
        path = self.database_path
        if path is None:
            raise SourceNotFound("No database path configured")
        if not path.is_file():
            raise SourceNotFound(str(path))

        try:
            conn = sqlite3.connect(
                f"{path.resolve().as_uri()}?mode=ro",
                uri=True,
                timeout=30.0,
            )
        except sqlite3.OperationalError as e:
            raise ConnectionFailed(str(e), {"database_path": str(path)}) from e
        conn.row_factory = sqlite3.Row
        return conn

    def _columns(self, conn: sqlite3.Connection, table: str) -> list[str]:
        cursor = conn.execute(f"PRAGMA table_info({quote_identifier(table)})")
        return [row["name"] for row in cursor.fetchall()]

    def validate(self) -> bool:
        self._ensure_configured()
        conn = self._connect()
        try:
            conn.execute("SELECT COUNT(*) FROM sqlite_master").fetchone()
        except sqlite3.DatabaseError as e:
            raise ConnectionFailed(str(e), {"database_path": str(self.database_path)}) from e
        finally:
            conn.close()
        return True

    def supported_entities(self) -> list[str]:
        entities = super().supported_entities()
        for entity_type in self._option("tables", {}):
            if entity_type not in entities:
                entities.append(entity_type)
        return entities

    def _where(
        self,
        columns: list[str],
        filters: FilterSet,
        entity_type: str,
    ) -> tuple[str, list[Any]]:
        """Build a WHERE clause for the filters that map onto existing columns."""
        clauses: list[str] = []
        params: list[Any] = []
        id_field = self._option("id_field", "entity_id")
        store_field = self._option("store_field", "store_id")
        natural_key_field = self.natural_key_field(entity_type)

        if id_field in columns:
            column = quote_identifier(id_field)
            if filters.id_from is not None:
                clauses.append(f"{column} >= ?")
                params.append(filters.id_from)
            if filters.id_to is not None:
                clauses.append(f"{column} <= ?")
                params.append(filters.id_to)
            if filters.entity_ids is not None:
                clauses.append(f"{column} IN ({', '.join('?' for _ in filters.entity_ids) or 'NULL'})")
                params.extend(filters.entity_ids)

        stores = filters.stores()
        if stores is not None and store_field in columns:
            clauses.append(
                f"CAST({quote_identifier(store_field)} AS TEXT) IN ({', '.join('?' for _ in stores)})"
            )
            params.extend(sorted(stores))

        if filters.natural_key_list is not None and natural_key_field in columns:
            keys = filters.natural_key_list
            clauses.append(
                f"{quote_identifier(natural_key_field)} IN ({', '.join('?' for _ in keys) or 'NULL'})"
            )
            params.extend(keys)

        return (" WHERE " + " AND ".join(clauses) if clauses else ""), params

    def read(self, entity_type: str, filters: FilterSet | None = None) -> Iterator[RawRecord]:
        """
        Stream rows page by page.

        Offset and limit count rows that passed every filter.
        """
        self._ensure_configured()
        filters = filters or FilterSet()
        table = self.table_for(entity_type)
        conn = self._connect()

        try:
            columns = self._columns(conn, table)
            if not columns:
                raise SourceNotFound(f"{self.database_path}:{table}")

            where, params = self._where(columns, filters, entity_type)
            id_field = self._option("id_field", "entity_id")
            order = quote_identifier(id_field) if id_field in columns else "rowid"
            query = f"SELECT * FROM {quote_identifier(table)}{where} ORDER BY {order}"

            skipped = 0
            yielded = 0
            current_offset = 0

            while True:
                batch_query = f"{query} LIMIT {self.page_size} OFFSET {current_offset}"
                rows = conn.execute(batch_query, params).fetchall()
                if not rows:
                    break
                current_offset += len(rows)

                for row in rows:
                    record = dict(row)
                    if not self.matches(record, filters, entity_type):
                        continue
                    if skipped < filters.offset:
                        skipped += 1
                        continue
                    yield record
                    yielded += 1
                    if filters.limit is not None and yielded >= filters.limit:
                        return
        except sqlite3.OperationalError as e:
            raise ConnectionFailed(
                str(e), {"database_path": str(self.database_path), "table": table}
            ) from e
        finally:
            conn.close()

    def count(self, entity_type: str, filters: FilterSet | None = None) -> int | None:
        """Rows matching the filters pushed into SQL; date filters are not counted."""
        filters = filters or FilterSet()
        table = self.table_for(entity_type)
        path = self.database_path
        if path is None or not path.is_file():
            return None

        conn = self._connect()
        try:
            columns = self._columns(conn, table)
            if not columns:
                return None
            where, params = self._where(columns, filters, entity_type)
            row = conn.execute(
                f"SELECT COUNT(*) AS count FROM {quote_identifier(table)}{where}",
                params,
            ).fetchone()
            return int(row["count"])
        except sqlite3.OperationalError as e:
            raise ConnectionFailed(str(e), {"database_path": str(path)}) from e
        finally:
            conn.close()

    def info(self) -> dict[str, Any]:
        info = super().info()
        info["database_path"] = str(self.database_path) if self.database_path else ""
        info["tables"] = dict(self._option("tables", {}))
        info["page_size"] = self.page_size
        return info
