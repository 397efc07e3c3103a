"""
Source adapter contract.

An adapter turns an external source (a file, a database, a REST API)
into a lazy stream of raw records. Adapters only read; all writes go
through entity handlers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterator

from datasync.core.filters import FilterSet
from datasync.exceptions import ConfigurationError

# One source entity: field name -> value
RawRecord = dict[str, Any]

DEFAULT_ENTITIES = (
    "product_attribute",
    "category",
    "product",
    "customer",
    "order",
    "invoice",
    "shipment",
    "creditmemo",
    "review",
    "shopping_cart_rule",
)

# Field holding the natural key matched by FilterSet.natural_key_list
NATURAL_KEY_FIELDS = {
    "order": "increment_id",
    "invoice": "increment_id",
    "shipment": "increment_id",
    "creditmemo": "increment_id",
    "product": "sku",
    "customer": "email",
}


class SourceAdapter(ABC):
    """Interface every source adapter implements."""

    code: str = ""
    label: str = ""

    @abstractmethod
    def supported_entities(self) -> list[str]:
        """Entity types this adapter can read."""

    @abstractmethod
    def configure(self, config: dict[str, Any]) -> None:
        """Apply connection options (paths, URLs, credentials)."""

    @abstractmethod
    def validate(self) -> bool:
        """Check the source is reachable. May raise instead of returning False."""

    @abstractmethod
    def read(self, entity_type: str, filters: FilterSet | None = None) -> Iterator[RawRecord]:
        """Yield records lazily, in source order."""

    @abstractmethod
    def count(self, entity_type: str, filters: FilterSet | None = None) -> int | None:
        """Number of records available, or None when the source cannot tell."""

    @abstractmethod
    def info(self) -> dict[str, Any]:
        """Describe the adapter and its configuration."""


class BaseAdapter(SourceAdapter):
    """
    Shared adapter behavior: configuration bookkeeping and client-side
    filter matching for sources that cannot filter themselves.
    """

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self._config: dict[str, Any] = {}
        self._configured = False
        if config is not None:
            self.configure(config)

    def supported_entities(self) -> list[str]:
        entities = self._config.get("entities")
        return list(entities) if entities else list(DEFAULT_ENTITIES)

    def configure(self, config: dict[str, Any]) -> None:
        self._config = dict(config)
        self._configured = True

    def _option(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def _ensure_configured(self) -> None:
        if not self._configured:
            raise ConfigurationError(
                f"Adapter {self.code} not configured. Call configure() first.",
                context={"adapter": self.code},
            )

    def count(self, entity_type: str, filters: FilterSet | None = None) -> int | None:
        return None

    def info(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "label": self.label,
            "configured": self._configured,
            "supported_entities": self.supported_entities(),
        }

    def natural_key_field(self, entity_type: str) -> str | None:
        """Field compared against FilterSet.natural_key_list for an entity type."""
        return self._option("natural_key_field") or NATURAL_KEY_FIELDS.get(entity_type)

    def matches(self, record: RawRecord, filters: FilterSet, entity_type: str) -> bool:
        """Apply every record-level filter (not limit/offset) to one record."""
        return filters.matches(
            record,
            id_field=self._option("id_field", "entity_id"),
            date_field=self._option("date_field", "created_at"),
            store_field=self._option("store_field", "store_id"),
            natural_key_field=self.natural_key_field(entity_type),
        )
