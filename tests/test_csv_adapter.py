"""Tests for the CSV source adapter."""

from pathlib import Path

import pytest

from datasync.adapters import CsvAdapter, available_adapters, create_adapter
from datasync.core.filters import FilterSet
from datasync.exceptions import (
    AdapterNotFound,
    ConfigurationError,
    ConnectionFailed,
    SourceNotFound,
    ValidationFailed,
)


@pytest.fixture
def customers_csv(tmp_path: Path) -> Path:
    """Create a sample customer export."""
    path = tmp_path / "customers.csv"
    path.write_text(
        "\ufeffentity_id,email,firstname,created_at,store_id\n"
        "1,alice@example.com,Alice,2024-01-05 10:00:00,1\n"
        "2,bob@example.com,Bob,2024-02-10 09:30:00,2\n"
        "\n"
        "3,carol@example.com,Carol,2024-03-15 08:00:00,1\n"
        "4,broken@example.com\n"
        "5,dave@example.com,Dave,2024-04-01 12:00:00,1\n",
        encoding="utf-8",
    )
    return path


class TestCsvAdapter:
    """Test CsvAdapter class."""

    def test_read_all(self, customers_csv: Path) -> None:
        """Test reading skips blank and malformed rows."""
        adapter = CsvAdapter({"file_path": str(customers_csv)})
        records = list(adapter.read("customer"))

        assert [r["entity_id"] for r in records] == ["1", "2", "3", "5"]
        assert records[0]["email"] == "alice@example.com"
        assert records[0]["_csv_row"] == 1

    def test_bom_stripped_from_header(self, customers_csv: Path) -> None:
        """Test that a UTF-8 BOM does not leak into the first column name."""
        adapter = CsvAdapter({"file_path": str(customers_csv)})
        record = next(adapter.read("customer"))
        assert "entity_id" in record

    def test_filters(self, customers_csv: Path) -> None:
        """Test record-level filters."""
        adapter = CsvAdapter({"file_path": str(customers_csv)})

        by_date = list(adapter.read("customer", FilterSet(date_from="2024-02-01", date_to="2024-03-31")))
        assert [r["entity_id"] for r in by_date] == ["2", "3"]

        by_store = list(adapter.read("customer", FilterSet(store_scope=1)))
        assert [r["entity_id"] for r in by_store] == ["1", "3", "5"]

        by_email = list(adapter.read("customer", FilterSet(natural_key_list=["bob@example.com"])))
        assert [r["entity_id"] for r in by_email] == ["2"]

    def test_offset_before_filters_and_limit_after(self, customers_csv: Path) -> None:
        """Test offset counts data rows and limit counts yielded records."""
        adapter = CsvAdapter({"file_path": str(customers_csv)})

        records = list(adapter.read("customer", FilterSet(offset=1, store_scope=1, limit=1)))
        assert [r["entity_id"] for r in records] == ["3"]

    def test_row_number_as_default_id(self, tmp_path: Path) -> None:
        """Test that rows without entity_id are numbered."""
        path = tmp_path / "products.csv"
        path.write_text("sku;name\nA-1;First\nA-2;Second\n", encoding="utf-8")

        adapter = CsvAdapter({"file_path": str(path), "delimiter": ";"})
        records = list(adapter.read("product"))
        assert [r["entity_id"] for r in records] == [1, 2]
        assert records[1]["name"] == "Second"

    def test_count(self, customers_csv: Path) -> None:
        """Test counting ignores blank rows only."""
        adapter = CsvAdapter({"file_path": str(customers_csv)})
        assert adapter.count("customer") == 5

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test that a missing file raises SourceNotFound."""
        adapter = CsvAdapter({"file_path": str(tmp_path / "missing.csv")})
        with pytest.raises(SourceNotFound):
            adapter.validate()
        with pytest.raises(SourceNotFound):
            list(adapter.read("customer"))
        assert adapter.count("customer") is None

    def test_empty_file(self, tmp_path: Path) -> None:
        """Test that a file without header fails validation."""
        path = tmp_path / "empty.csv"
        path.write_text("", encoding="utf-8")
        adapter = CsvAdapter({"file_path": str(path)})
        with pytest.raises(ValidationFailed, match="Cannot read headers"):
            adapter.validate()

    def test_invalid_utf8(self, tmp_path: Path) -> None:
        """Test that undecodable bytes fail as a lost source."""
        path = tmp_path / "latin1.csv"
        path.write_bytes(b"entity_id,email\n1,a@x.io\n2,b\xff@x.io\n")
        adapter = CsvAdapter({"file_path": str(path)})

        with pytest.raises(ConnectionFailed, match="not valid UTF-8"):
            adapter.validate()
        with pytest.raises(ConnectionFailed):
            adapter.count("customer")

    def test_invalid_utf8_mid_stream(self, tmp_path: Path) -> None:
        """Test that rows before an undecodable chunk are still yielded."""
        path = tmp_path / "mixed.csv"
        good = "".join(f"{i},customer{i:04d}@example.com\n" for i in range(1, 1001))
        path.write_bytes(b"entity_id,email\n" + good.encode() + b"1001,b\xff@x.io\n")
        adapter = CsvAdapter({"file_path": str(path)})

        assert adapter.validate()
        seen = []
        with pytest.raises(ConnectionFailed, match="not valid UTF-8") as exc_info:
            for record in adapter.read("customer"):
                seen.append(record["entity_id"])

        assert seen
        assert "1001" not in seen
        assert exc_info.value.context["config"]["file_path"] == str(path)

    def test_not_configured(self) -> None:
        """Test using an adapter before configure()."""
        adapter = CsvAdapter()
        with pytest.raises(ConfigurationError):
            adapter.validate()

    def test_info(self, customers_csv: Path) -> None:
        adapter = CsvAdapter({"file_path": str(customers_csv)})
        info = adapter.info()
        assert info["code"] == "csv"
        assert info["file_exists"] is True
        assert info["file_size"] > 0
        assert info["file_size_human"].endswith("B")

    def test_supported_entities(self, customers_csv: Path) -> None:
        """Test default and configured entity lists."""
        assert "order" in CsvAdapter({"file_path": str(customers_csv)}).supported_entities()
        adapter = CsvAdapter({"file_path": str(customers_csv), "entities": ["customer"]})
        assert adapter.supported_entities() == ["customer"]


class TestAdapterFactory:
    """Test adapter lookup."""

    def test_create_adapter(self, customers_csv: Path) -> None:
        adapter = create_adapter("csv", {"file_path": str(customers_csv)})
        assert isinstance(adapter, CsvAdapter)
        assert adapter.validate()

    def test_unknown_adapter(self) -> None:
        with pytest.raises(AdapterNotFound, match="ftp"):
            create_adapter("ftp")

    def test_available_adapters(self) -> None:
        assert available_adapters() == {"csv": "CSV File", "sqlite": "SQLite Database", "http": "REST API"}
