"""
Filter set shared by every source adapter.

A FilterSet narrows what an adapter yields: date and id ranges,
pagination, store scope and explicit id or natural-key lists. Adapters
that cannot push a filter down to their source apply it client-side
with FilterSet.matches().
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from datasync.core.fingerprint import fingerprint


def parse_datetime(value: Any) -> datetime | None:
    """Parse a record timestamp into a naive UTC datetime, or None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError:
            return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class FilterSet(BaseModel):
    """Filters applied to a read. Every field is optional."""

    model_config = ConfigDict(extra="forbid")

    date_from: datetime | date | None = Field(
        default=None,
        description="Records with a timestamp on or after this bound",
    )
    date_to: datetime | date | None = Field(
        default=None,
        description="Records with a timestamp on or before this bound (a date covers the whole day)",
    )
    id_from: int | None = Field(default=None, ge=0)
    id_to: int | None = Field(default=None, ge=0)
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)
    store_scope: int | str | list[int | str] | None = Field(
        default=None,
        description="Single store or list of stores",
    )
    entity_ids: list[int] | None = None
    natural_key_list: list[str] | None = None

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def parse_bound(cls, v: Any) -> Any:
        """Keep bare dates as dates so an upper bound covers the whole day."""
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            if len(v) == 10:
                return date.fromisoformat(v)
            return datetime.fromisoformat(v)
        return v

    @model_validator(mode="after")
    def check_ranges(self) -> "FilterSet":
        """Reject inverted id ranges."""
        if self.id_from is not None and self.id_to is not None and self.id_from > self.id_to:
            raise ValueError(f"id_from ({self.id_from}) is greater than id_to ({self.id_to})")
        return self

    def is_empty(self) -> bool:
        """True when no filter narrows the read."""
        return not self.model_dump(exclude_none=True, exclude_defaults=True)

    def stores(self) -> set[str] | None:
        """Store scope as a set of strings, or None when unscoped."""
        if self.store_scope is None:
            return None
        values = self.store_scope if isinstance(self.store_scope, list) else [self.store_scope]
        return {str(v) for v in values}

    def lower_bound(self) -> datetime | None:
        """Inclusive lower timestamp bound."""
        return parse_datetime(self.date_from)

    def upper_bound(self) -> datetime | None:
        """Inclusive upper timestamp bound; a bare date extends to end of day."""
        if self.date_to is None:
            return None
        if isinstance(self.date_to, datetime):
            return parse_datetime(self.date_to)
        return datetime.combine(self.date_to, time.max)

    def matches(
        self,
        record: dict[str, Any],
        id_field: str = "entity_id",
        date_field: str = "created_at",
        store_field: str = "store_id",
        natural_key_field: str | None = None,
    ) -> bool:
        """
        Check a record against every filter except limit and offset.

        Records that lack the filtered field, or whose timestamp cannot be
        parsed, are not excluded by that filter.
        """
        if not self._matches_dates(record.get(date_field)):
            return False

        raw_id = record.get(id_field)
        if raw_id not in (None, ""):
            try:
                record_id = int(raw_id)
            except (TypeError, ValueError):
                record_id = None
            if record_id is not None:
                if self.id_from is not None and record_id < self.id_from:
                    return False
                if self.id_to is not None and record_id > self.id_to:
                    return False
                if self.entity_ids is not None and record_id not in self.entity_ids:
                    return False

        stores = self.stores()
        if stores is not None and record.get(store_field) not in (None, ""):
            if str(record[store_field]) not in stores:
                return False

        if self.natural_key_list is not None and natural_key_field:
            value = record.get(natural_key_field)
            if value not in (None, "") and str(value) not in self.natural_key_list:
                return False

        return True

    def _matches_dates(self, value: Any) -> bool:
        if self.date_from is None and self.date_to is None:
            return True
        record_date = parse_datetime(value)
        if record_date is None:
            return True

        lower = self.lower_bound()
        if lower is not None and record_date < lower:
            return False
        upper = self.upper_bound()
        if upper is not None and record_date > upper:
            return False
        return True

    def with_id_floor(self, floor: int) -> "FilterSet":
        """Copy of this filter set whose id_from is at least `floor`."""
        current = self.id_from if self.id_from is not None else 0
        return self.model_copy(update={"id_from": max(current, floor)})

    def fingerprint(self) -> str:
        """Stable hash of the active filters; selection lists compare as sets."""
        data = self.model_dump(exclude_none=True)
        for key in ("store_scope", "entity_ids", "natural_key_list"):
            if isinstance(data.get(key), list):
                data[key] = set(data[key])
        return fingerprint(data)
