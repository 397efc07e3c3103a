"""Shared fixtures for DataSync tests."""

from __future__ import annotations

from typing import Any, Iterator

import pytest

from datasync.adapters.base import BaseAdapter, RawRecord
from datasync.config import EntityConfig, SyncOptions
from datasync.core.delta import DeltaStore
from datasync.core.engine import SyncEngine
from datasync.core.filters import FilterSet
from datasync.core.registry import IdentityRegistry
from datasync.exceptions import ConnectionFailed
from datasync.handlers import HandlerRegistry, RecordTableHandler
from datasync.storage.sqlite import SQLiteStore


class ListAdapter(BaseAdapter):
    """In-memory adapter yielding a fixed list of records."""

    code = "list"
    label = "In-memory list"

    def __init__(
        self,
        records: dict[str, list[RawRecord]] | None = None,
        fail_after: int | None = None,
        valid: bool = True,
    ) -> None:
        super().__init__({"entities": list((records or {}).keys())})
        self.records = records or {}
        self.fail_after = fail_after
        self.valid = valid
        self.reads: list[FilterSet] = []

    def validate(self) -> bool:
        return self.valid

    def read(self, entity_type: str, filters: FilterSet | None = None) -> Iterator[RawRecord]:
        filters = filters or FilterSet()
        self.reads.append(filters)
        yielded = 0
        for index, record in enumerate(self.records.get(entity_type, [])):
            if self.fail_after is not None and index >= self.fail_after:
                raise ConnectionFailed("source went away", {"token": "secret"})
            if not self.matches(record, filters, entity_type):
                continue
            yield dict(record)
            yielded += 1
            if filters.limit is not None and yielded >= filters.limit:
                return

    def count(self, entity_type: str, filters: FilterSet | None = None) -> int | None:
        return len(self.records.get(entity_type, []))


@pytest.fixture
def store() -> Iterator[SQLiteStore]:
    """In-memory target store with the DataSync schema."""
    target = SQLiteStore()
    target.ensure_schema()
    yield target
    target.close()


@pytest.fixture
def registry(store: SQLiteStore) -> IdentityRegistry:
    return IdentityRegistry(store)


@pytest.fixture
def delta(store: SQLiteStore) -> DeltaStore:
    return DeltaStore(store)


@pytest.fixture
def entity_configs() -> dict[str, EntityConfig]:
    return {
        "customer": EntityConfig(
            required_fields=["email"],
            external_ref_field="email",
        ),
        "order": EntityConfig(
            required_fields=["increment_id"],
            external_ref_field="increment_id",
            foreign_keys={
                "customer_id": {
                    "entity_type": "customer",
                    "required": False,
                    "ref_field": "customer_email",
                },
            },
        ),
        "invoice": EntityConfig(
            required_fields=["increment_id"],
            foreign_keys={"order_id": "order"},
        ),
    }


@pytest.fixture
def handlers(store: SQLiteStore, entity_configs: dict[str, EntityConfig]) -> HandlerRegistry:
    return HandlerRegistry(
        [RecordTableHandler(name, config, store) for name, config in entity_configs.items()]
    )


@pytest.fixture
def make_engine(
    handlers: HandlerRegistry,
    registry: IdentityRegistry,
    delta: DeltaStore,
) -> Any:
    """Factory building an engine over the shared store."""

    def factory(
        adapter: BaseAdapter,
        filters: FilterSet | None = None,
        messages: list[str] | None = None,
        **options: Any,
    ) -> SyncEngine:
        return SyncEngine(
            handlers=handlers,
            registry=registry,
            delta=delta,
            adapter=adapter,
            source_system="legacy",
            filters=filters,
            options=SyncOptions(**options),
            on_progress=messages.append if messages is not None else None,
        )

    return factory
