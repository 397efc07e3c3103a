"""Tests for the SQLite target store."""

from pathlib import Path

from datasync.storage.sqlite import MEMORY, SQLiteStore, open_store

INSERT_RECORD = (
    "INSERT INTO datasync_records (entity_type, source_system, payload, created_at, updated_at) "
    "VALUES (?, ?, '{}', 'now', 'now')"
)


def row_count(store: SQLiteStore, table: str) -> int:
    row = store.query_one(f"SELECT COUNT(*) AS count FROM {table}")
    return row["count"] if row else 0


class TestSQLiteStore:
    """Test SQLiteStore class."""

    def test_ensure_schema_creates_tables(self, store: SQLiteStore) -> None:
        """Test that the DataSync tables exist after ensure_schema()."""
        rows = store.query("SELECT name FROM sqlite_master WHERE type = 'table'")
        names = {row["name"] for row in rows}
        assert {"datasync_registry", "datasync_delta", "datasync_records"} <= names

    def test_ensure_schema_is_idempotent(self, store: SQLiteStore) -> None:
        """Test that running ensure_schema() twice is harmless."""
        store.ensure_schema()
        assert row_count(store, "datasync_registry") == 0

    def test_insert_returns_row_id(self, store: SQLiteStore) -> None:
        """Test insert() returns the new row id."""
        first = store.insert(
            "INSERT INTO datasync_records (entity_type, source_system, payload, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            ("customer", "legacy", "{}", "now", "now"),
        )
        second = store.insert(
            "INSERT INTO datasync_records (entity_type, source_system, payload, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            ("customer", "legacy", "{}", "now", "now"),
        )
        assert second == first + 1
        assert row_count(store, "datasync_records") == 2

    def test_execute_sql_returns_rowcount(self, store: SQLiteStore) -> None:
        """Test execute_sql() reports affected rows."""
        for entity_type in ("customer", "customer", "order"):
            store.execute_sql(INSERT_RECORD, (entity_type, "legacy"))
        removed = store.execute_sql("DELETE FROM datasync_records WHERE entity_type = ?", ("customer",))
        assert removed == 2

    def test_query_one_missing(self, store: SQLiteStore) -> None:
        """Test query_one() returns None without rows."""
        assert store.query_one("SELECT * FROM datasync_delta") is None

    def test_open_store_on_disk(self, tmp_path: Path) -> None:
        """Test open_store() creates parent directories and the schema."""
        path = tmp_path / "nested" / "target.db"
        with open_store(path) as target:
            assert row_count(target, "datasync_delta") == 0
        assert path.exists()

    def test_close_and_reopen(self, tmp_path: Path) -> None:
        """Test that data survives closing the connection."""
        path = tmp_path / "target.db"
        target = open_store(path)
        target.execute_sql(
            "INSERT INTO datasync_records (entity_type, source_system, payload, created_at, updated_at) "
            "VALUES ('customer', 'legacy', '{}', 'now', 'now')"
        )
        target.close()

        reopened = SQLiteStore(path)
        assert row_count(reopened, "datasync_records") == 1
        reopened.close()

    def test_memory_path(self) -> None:
        """Test the default in-memory store."""
        target = SQLiteStore()
        assert target.path == MEMORY
        target.close()
