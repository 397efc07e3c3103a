"""Source adapters for DataSync."""

from __future__ import annotations

from typing import Any

from datasync.adapters.base import BaseAdapter, RawRecord, SourceAdapter
from datasync.adapters.csv import CsvAdapter
from datasync.adapters.http import HttpAdapter
from datasync.adapters.sqlite import SQLiteAdapter
from datasync.exceptions import AdapterNotFound

ADAPTERS: dict[str, type[BaseAdapter]] = {
    CsvAdapter.code: CsvAdapter,
    SQLiteAdapter.code: SQLiteAdapter,
    HttpAdapter.code: HttpAdapter,
}


def create_adapter(code: str, config: dict[str, Any] | None = None) -> BaseAdapter:
    """
    Create and configure an adapter by code.

    Raises:
        AdapterNotFound: if no adapter is registered under `code`
    """
    adapter_class = ADAPTERS.get(code)
    if adapter_class is None:
        raise AdapterNotFound(code)
    return adapter_class(config or {})


def available_adapters() -> dict[str, str]:
    """Adapter code -> label."""
    return {code: cls.label for code, cls in ADAPTERS.items()}


__all__ = [
    "ADAPTERS",
    "BaseAdapter",
    "CsvAdapter",
    "HttpAdapter",
    "RawRecord",
    "SQLiteAdapter",
    "SourceAdapter",
    "available_adapters",
    "create_adapter",
]
