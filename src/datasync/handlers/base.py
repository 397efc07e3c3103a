"""
Entity handler contract.

A handler knows how one entity type is validated, de-duplicated and
persisted in the target store. The engine drives it record by record
and never touches target tables itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from datasync.core.context import ImportContext
from datasync.core.filters import parse_datetime
from datasync.exceptions import ConfigurationError

if TYPE_CHECKING:
    from datasync.core.registry import IdentityRegistry

TRUE_STRINGS = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ForeignKeySpec:
    """A field holding the source id of another entity type."""

    entity_type: str
    required: bool = True
    ref_field: str | None = None


def normalize_foreign_keys(declared: Mapping[str, Any]) -> dict[str, ForeignKeySpec]:
    """
    Normalize foreign key declarations.

    Accepts `field -> "entity_type"`, `field -> {"entity_type": ..., "required": ...,
    "ref_field": ...}` or `field -> ForeignKeySpec`.
    """
    specs: dict[str, ForeignKeySpec] = {}
    for field, value in declared.items():
        if isinstance(value, ForeignKeySpec):
            specs[field] = value
        elif isinstance(value, str):
            specs[field] = ForeignKeySpec(entity_type=value)
        elif isinstance(value, Mapping) and value.get("entity_type"):
            specs[field] = ForeignKeySpec(
                entity_type=str(value["entity_type"]),
                required=bool(value.get("required", True)),
                ref_field=value.get("ref_field"),
            )
        else:
            raise ConfigurationError(
                f"Invalid foreign key declaration for field '{field}': {value!r}",
                context={"field": field},
            )
    return specs


class EntityHandler(ABC):
    """
    Base class for entity handlers.

    Subclasses set the class attributes and implement find_existing()
    and import_record().
    """

    entity_type: str = ""
    label: str = ""
    id_field: str = "entity_id"
    required_fields: Sequence[str] = ()
    foreign_key_fields: Mapping[str, Any] = MappingProxyType({})
    external_ref_field: str | None = None

    def foreign_keys(self) -> dict[str, ForeignKeySpec]:
        return normalize_foreign_keys(self.foreign_key_fields)

    def validate(self, record: dict[str, Any]) -> list[str]:
        """
        Entity-specific validation. Returns error messages; empty means valid.

        Required fields are checked by the engine before this is called.
        """
        return []

    def warnings(self, record: dict[str, Any]) -> list[str]:
        """Non-fatal issues with a record. Promoted to errors in strict mode."""
        return []

    @abstractmethod
    def find_existing(self, record: dict[str, Any]) -> int | None:
        """Target id of an existing record matching this one, if any."""

    @abstractmethod
    def import_record(
        self,
        record: dict[str, Any],
        registry: "IdentityRegistry",
        context: ImportContext,
    ) -> int:
        """
        Create, update or merge a record and return its target id.

        When record carries `_existing_id`, the existing target record must
        be updated (or merged, per `_action`) instead of creating a new one.
        """

    def external_ref(self, record: dict[str, Any]) -> str | None:
        """Natural key stored in the registry alongside the mapping."""
        if not self.external_ref_field:
            return None
        value = record.get(self.external_ref_field)
        return str(value) if value not in (None, "") else None

    def start_sync(self, context: ImportContext) -> None:
        """Called once before the first record of a run."""

    def finish_sync(self, registry: "IdentityRegistry", context: ImportContext) -> None:
        """Batch post-processing, called once after the stream ends."""

    @staticmethod
    def map_fields(record: dict[str, Any]) -> dict[str, Any]:
        """Drop internal `_`-prefixed fields."""
        return {k: v for k, v in record.items() if not str(k).startswith("_")}

    @staticmethod
    def clean_string(value: Any) -> str:
        return "" if value is None else str(value).strip()

    @staticmethod
    def parse_bool(value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in TRUE_STRINGS
        return bool(value)

    @staticmethod
    def parse_date(value: Any) -> str | None:
        """Normalize a date value to 'YYYY-MM-DD HH:MM:SS', or None."""
        parsed: datetime | None = parse_datetime(value)
        return parsed.strftime("%Y-%m-%d %H:%M:%S") if parsed else None
