"""Tests for filter sets and fingerprints."""

from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from datasync.core.filters import FilterSet, parse_datetime
from datasync.core.fingerprint import canonicalize, fingerprint


class TestParseDatetime:
    """Test parse_datetime function."""

    def test_iso_string(self) -> None:
        assert parse_datetime("2024-03-01 10:30:00") == datetime(2024, 3, 1, 10, 30)

    def test_aware_is_normalized_to_utc(self) -> None:
        """Test that offsets are converted to naive UTC."""
        value = datetime(2024, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert parse_datetime(value) == datetime(2024, 3, 1, 10, 0)

    def test_date(self) -> None:
        assert parse_datetime(date(2024, 3, 1)) == datetime(2024, 3, 1)

    def test_timestamp(self) -> None:
        assert parse_datetime(0) == datetime(1970, 1, 1)

    @pytest.mark.parametrize("value", [None, "", "not a date", "0000-00-00 00:00:00"])
    def test_unparseable(self, value: object) -> None:
        assert parse_datetime(value) is None


class TestFilterSet:
    """Test FilterSet class."""

    def test_empty(self) -> None:
        """Test that a default filter set narrows nothing."""
        filters = FilterSet()
        assert filters.is_empty()
        assert filters.matches({"entity_id": 5, "created_at": "garbage"})
        assert not FilterSet(limit=5).is_empty()

    def test_date_strings(self) -> None:
        """Test that bare dates stay dates and timestamps become datetimes."""
        filters = FilterSet(date_from="2024-01-01", date_to="2024-01-31 12:00:00")
        assert filters.date_from == date(2024, 1, 1)
        assert filters.date_to == datetime(2024, 1, 31, 12, 0)

    def test_date_to_covers_whole_day(self) -> None:
        """Test that a date-only upper bound is inclusive to end of day."""
        filters = FilterSet(date_to="2024-01-31")
        assert filters.matches({"created_at": "2024-01-31 23:59:59"})
        assert not filters.matches({"created_at": "2024-02-01 00:00:00"})

    def test_date_range(self) -> None:
        filters = FilterSet(date_from="2024-01-10", date_to="2024-01-20")
        assert not filters.matches({"created_at": "2024-01-09 23:00:00"})
        assert filters.matches({"created_at": "2024-01-10"})
        assert filters.matches({"created_at": "2024-01-20T18:00:00"})

    def test_unparseable_record_date_matches(self) -> None:
        """Test that records with bad or missing dates are not excluded."""
        filters = FilterSet(date_from="2024-01-10")
        assert filters.matches({"created_at": "n/a"})
        assert filters.matches({})

    def test_custom_date_field(self) -> None:
        filters = FilterSet(date_from="2024-01-10")
        record = {"created_at": "2024-01-01", "updated_at": "2024-01-15"}
        assert not filters.matches(record)
        assert filters.matches(record, date_field="updated_at")

    def test_id_range(self) -> None:
        filters = FilterSet(id_from=10, id_to=20)
        assert not filters.matches({"entity_id": 9})
        assert filters.matches({"entity_id": "10"})
        assert filters.matches({"entity_id": 20})
        assert not filters.matches({"entity_id": 21})

    def test_inverted_id_range_rejected(self) -> None:
        with pytest.raises(ValidationError, match="greater than"):
            FilterSet(id_from=5, id_to=1)

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            FilterSet(since="2024-01-01")  # type: ignore[call-arg]

    def test_entity_ids(self) -> None:
        filters = FilterSet(entity_ids=[1, 3])
        assert filters.matches({"entity_id": 3})
        assert not filters.matches({"entity_id": 2})

    def test_store_scope(self) -> None:
        """Test single and multiple store scopes."""
        assert FilterSet(store_scope=1).stores() == {"1"}
        filters = FilterSet(store_scope=[1, "2"])
        assert filters.stores() == {"1", "2"}
        assert filters.matches({"store_id": 2})
        assert not filters.matches({"store_id": 3})
        assert filters.matches({"store_id": None})
        assert FilterSet().stores() is None

    def test_natural_keys(self) -> None:
        """Test natural key filtering needs the key field."""
        filters = FilterSet(natural_key_list=["SKU-1"])
        assert filters.matches({"sku": "SKU-1"}, natural_key_field="sku")
        assert not filters.matches({"sku": "SKU-2"}, natural_key_field="sku")
        assert filters.matches({"sku": "SKU-2"})

    def test_with_id_floor(self) -> None:
        """Test raising the lower id bound without lowering it."""
        assert FilterSet().with_id_floor(8).id_from == 8
        assert FilterSet(id_from=20).with_id_floor(8).id_from == 20
        original = FilterSet(limit=3)
        raised = original.with_id_floor(4)
        assert original.id_from is None
        assert raised.limit == 3

    def test_fingerprint_stable(self) -> None:
        """Test that equal filters hash equally and different filters do not."""
        first = FilterSet(date_from="2024-01-01", store_scope=[1, 2])
        second = FilterSet(store_scope=[1, 2], date_from=date(2024, 1, 1))
        assert first.fingerprint() == second.fingerprint()
        assert first.fingerprint() != FilterSet(date_from="2024-01-02").fingerprint()


class TestFingerprint:
    """Test fingerprint helpers."""

    def test_key_order_ignored(self) -> None:
        assert fingerprint({"a": 1, "b": 2}) == fingerprint({"b": 2, "a": 1})

    def test_md5_digest(self) -> None:
        assert len(fingerprint({"a": 1})) == 32

    def test_selection_order_ignored(self) -> None:
        """Test that reordered store and id lists keep the same fingerprint."""
        first = FilterSet(store_scope=[2, 1], entity_ids=[5, 3], natural_key_list=["b", "a"])
        second = FilterSet(store_scope=[1, 2], entity_ids=[3, 5], natural_key_list=["a", "b"])
        assert first.fingerprint() == second.fingerprint()
        assert first.fingerprint() != FilterSet(store_scope=[1]).fingerprint()

    def test_canonicalize(self) -> None:
        """Test conversion of non-JSON values."""
        value = canonicalize({"z": {3, 1}, "d": date(2024, 1, 2), "b": (1, 2)})
        assert value == {"b": [1, 2], "d": "2024-01-02", "z": [1, 3]}
        assert list(value) == ["b", "d", "z"]
