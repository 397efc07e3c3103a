"""
Record table handler.

Generic handler persisting records as JSON payloads in the
datasync_records table of the target store. Each entity type is
described by an EntityConfig (required fields, foreign keys, natural
key, links), so new entity types need configuration rather than code.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from datasync.config import EntityConfig
from datasync.core.context import ImportContext
from datasync.handlers.base import EntityHandler
from datasync.handlers.registry import HandlerRegistry
from datasync.storage.sqlite import SQLiteStore
from datasync.utils.logger import get_logger

if TYPE_CHECKING:
    from datasync.config import Settings
    from datasync.core.registry import IdentityRegistry

logger = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RecordTableHandler(EntityHandler):
    """
    Handler storing one entity type in datasync_records.

    Example:
        handler = RecordTableHandler("customer", EntityConfig(required_fields=["email"]), store)
        handlers = HandlerRegistry([handler])
    """

    def __init__(self, entity_type: str, config: EntityConfig, store: SQLiteStore) -> None:
        self.entity_type = entity_type
        self.label = config.label or entity_type.replace("_", " ").title()
        self.id_field = config.id_field
        self.required_fields = list(config.required_fields)
        self.foreign_key_fields = dict(config.foreign_keys)
        self.external_ref_field = config.external_ref_field
        self.link_fields = dict(config.link_fields)
        self.store = store
        # Target ids written during the current run, for link resolution
        self._imported: list[int] = []

    def warnings(self, record: dict[str, Any]) -> list[str]:
        """Report optional foreign keys that were present but could not be resolved."""
        messages = []
        for field, spec in self.foreign_keys().items():
            if spec.required:
                continue
            original = record.get(f"_original_{field}")
            if record.get(field) is None and original not in (None, ""):
                messages.append(
                    f"Unresolved optional foreign key {field} = {original} "
                    f"({spec.entity_type} not in registry)"
                )
        return messages

    def find_existing(self, record: dict[str, Any]) -> int | None:
        """Match by (source system, source id) first, then by natural key."""
        source_system = record.get("_source_system", "")
        try:
            source_id = int(record.get(self.id_field))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            source_id = None

        if source_id is not None:
            row = self.store.query_one(
                """
                SELECT record_id FROM datasync_records
                WHERE entity_type = ? AND source_system = ? AND source_id = ?
                ORDER BY record_id LIMIT 1
                """,
                (self.entity_type, source_system, source_id),
            )
            if row:
                return int(row["record_id"])

        natural_key = self.external_ref(record)
        if natural_key is not None:
            row = self.store.query_one(
                """
                SELECT record_id FROM datasync_records
                WHERE entity_type = ? AND natural_key = ?
                ORDER BY record_id LIMIT 1
                """,
                (self.entity_type, natural_key),
            )
            if row:
                return int(row["record_id"])

        return None

    def import_record(
        self,
        record: dict[str, Any],
        registry: "IdentityRegistry",
        context: ImportContext,
    ) -> int:
        payload = self.map_fields(record)
        existing_id = record.get("_existing_id")

        if existing_id is not None:
            target_id = self._apply_existing(int(existing_id), payload, record.get("_action", "update"))
        else:
            target_id = self.store.insert(
                """
                INSERT INTO datasync_records
                    (entity_type, source_system, source_id, natural_key,
                     payload, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    self.entity_type,
                    context.source_system,
                    self._source_id(record),
                    self.external_ref(record),
                    json.dumps(payload, default=str),
                    _now(),
                    _now(),
                ),
            )
            if not context.suppress_notifications:
                logger.info(f"New {self.entity_type} #{target_id}")

        self._imported.append(target_id)
        return target_id

    def _source_id(self, record: dict[str, Any]) -> int | None:
        try:
            return int(record.get(self.id_field))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None

    def _apply_existing(self, record_id: int, payload: dict[str, Any], action: str) -> int:
        """Update or merge into an existing stored record."""
        current = self.get(record_id) or {}

        if action == "merge":
            for key, value in payload.items():
                if value not in (None, ""):
                    current[key] = value
        else:
            current.update(payload)

        natural_key = None
        if self.external_ref_field:
            value = current.get(self.external_ref_field)
            natural_key = str(value) if value not in (None, "") else None

        self.store.execute_sql(
            """
            UPDATE datasync_records
            SET payload = ?, natural_key = ?, updated_at = ?
            WHERE record_id = ?
            """,
            (json.dumps(current, default=str), natural_key, _now(), record_id),
        )
        return record_id

    def start_sync(self, context: ImportContext) -> None:
        # An aborted run never reaches finish_sync
        self._imported = []

    def finish_sync(self, registry: "IdentityRegistry", context: ImportContext) -> None:
        """Resolve link fields now that every record of the batch exists."""
        imported, self._imported = self._imported, []
        if not self.link_fields:
            return

        for record_id in dict.fromkeys(imported):
            payload = self.get(record_id)
            if payload is None:
                continue

            changed = False
            for field, linked_type in self.link_fields.items():
                value = payload.get(field)
                if value in (None, ""):
                    continue
                try:
                    target_id = registry.resolve(context.source_system, linked_type, int(value))
                except (TypeError, ValueError):
                    target_id = None
                if target_id is None:
                    logger.warning(
                        f"{self.entity_type} #{record_id}: cannot link {field} = {value} "
                        f"({linked_type} not in registry)"
                    )
                    continue
                payload[f"{field}_target_id"] = target_id
                changed = True

            if changed:
                self.store.execute_sql(
                    "UPDATE datasync_records SET payload = ?, updated_at = ? WHERE record_id = ?",
                    (json.dumps(payload, default=str), _now(), record_id),
                )

    def get(self, record_id: int) -> dict[str, Any] | None:
        """Stored payload of a record."""
        row = self.store.query_one(
            "SELECT payload FROM datasync_records WHERE record_id = ? AND entity_type = ?",
            (record_id, self.entity_type),
        )
        return json.loads(row["payload"]) if row else None

    def count(self, source_system: str | None = None) -> int:
        sql = "SELECT COUNT(*) AS count FROM datasync_records WHERE entity_type = ?"
        params: list[Any] = [self.entity_type]
        if source_system is not None:
            sql += " AND source_system = ?"
            params.append(source_system)
        row = self.store.query_one(sql, params)
        return int(row["count"]) if row else 0


def build_handlers(settings: "Settings", store: SQLiteStore) -> HandlerRegistry:
    """Create a record table handler for every configured entity type."""
    return HandlerRegistry(
        [
            RecordTableHandler(entity_type, config, store)
            for entity_type, config in settings.entities.items()
        ]
    )
