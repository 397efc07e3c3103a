"""
CSV source adapter.

Reads records from a CSV file with a header row. Works with any system
that can export to CSV.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Iterator

from datasync.adapters.base import BaseAdapter, RawRecord
from datasync.core.filters import FilterSet
from datasync.exceptions import ConnectionFailed, SourceNotFound, ValidationFailed
from datasync.utils.display import format_bytes
from datasync.utils.logger import get_logger

logger = get_logger(__name__)

BOM = "\ufeff"


class CsvAdapter(BaseAdapter):
    """
    Adapter reading one CSV file per run.

    Example:
        adapter = CsvAdapter({"file_path": "customers.csv"})
        for record in adapter.read("customer", FilterSet(limit=10)):
            ...
    """

    code = "csv"
    label = "CSV File"

    @property
    def file_path(self) -> Path | None:
        value = self._option("file_path") or self._option("source")
        return Path(value) if value else None

    @property
    def delimiter(self) -> str:
        return self._option("delimiter", ",")

    def _open(self) -> Any:
        path = self.file_path
        if path is None:
            raise SourceNotFound("No file path configured")
        if not path.is_file():
            raise SourceNotFound(str(path))
        return path.open(newline="", encoding="utf-8")

    def _reader(self, handle: Any) -> Any:
        return csv.reader(
            handle,
            delimiter=self.delimiter,
            quotechar=self._option("enclosure", '"'),
        )

    def _rows(self, reader: Any) -> Iterator[list[str]]:
        """Iterate parsed rows, turning undecodable or malformed input into ConnectionFailed."""
        try:
            yield from reader
        except UnicodeDecodeError as e:
            raise ConnectionFailed(
                f"{self.file_path} is not valid UTF-8 (near line {reader.line_num + 1}): {e.reason}",
                {"file_path": str(self.file_path)},
            ) from e
        except csv.Error as e:
            raise ConnectionFailed(
                f"Malformed CSV in {self.file_path} at line {reader.line_num}: {e}",
                {"file_path": str(self.file_path)},
            ) from e

    def _read_headers(self, rows: Iterator[list[str]]) -> list[str]:
        headers = next(rows, None)
        if not headers or not any(h.strip() for h in headers):
            raise ValidationFailed(f"Invalid CSV: Cannot read headers from {self.file_path}")
        return [h.removeprefix(BOM).strip() for h in headers]

    def validate(self) -> bool:
        self._ensure_configured()
        with self._open() as handle:
            self._read_headers(self._rows(self._reader(handle)))
        return True

    def read(self, entity_type: str, filters: FilterSet | None = None) -> Iterator[RawRecord]:
        """
        Yield one record per data row.

        Offset is applied before filtering, limit after it. Blank rows and
        rows whose column count does not match the header are skipped.
        """
        self._ensure_configured()
        filters = filters or FilterSet()

        with self._open() as handle:
            rows = self._rows(self._reader(handle))
            headers = self._read_headers(rows)

            row_number = 0
            skipped = 0
            yielded = 0

            for row in rows:
                row_number += 1

                if not any(cell.strip() for cell in row):
                    continue

                if len(row) != len(headers):
                    logger.warning(
                        f"CSV row {row_number} has mismatched column count, skipping "
                        f"(expected {len(headers)}, got {len(row)})"
                    )
                    continue

                if skipped < filters.offset:
                    skipped += 1
                    continue

                record: RawRecord = dict(zip(headers, row))
                if not self.matches(record, filters, entity_type):
                    continue

                if filters.limit is not None and yielded >= filters.limit:
                    break

                record["_csv_row"] = row_number
                if record.get("entity_id") in (None, ""):
                    record["entity_id"] = row_number

                yield record
                yielded += 1

    def count(self, entity_type: str, filters: FilterSet | None = None) -> int | None:
        """Count non-blank data rows, ignoring filters."""
        path = self.file_path
        if path is None or not path.is_file():
            return None

        with path.open(newline="", encoding="utf-8") as handle:
            rows = self._rows(self._reader(handle))
            next(rows, None)
            return sum(1 for row in rows if any(cell.strip() for cell in row))

    def info(self) -> dict[str, Any]:
        info = super().info()
        path = self.file_path
        info["file_path"] = str(path) if path else ""
        info["delimiter"] = self.delimiter
        info["file_exists"] = bool(path and path.is_file())
        if path and path.is_file():
            size = path.stat().st_size
            info["file_size"] = size
            info["file_size_human"] = format_bytes(size)
        return info
