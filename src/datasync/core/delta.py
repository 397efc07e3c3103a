"""
Delta Store - incremental sync checkpoints.

Keeps one row per (source system, entity type) recording when the pair
was last synced, the highest source id imported so far, running counts
and a fingerprint of the filters the last run used. The only write path
is update_from_result(), called once per completed run.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from datasync.core.filters import FilterSet
from datasync.core.result import SyncResult
from datasync.storage.sqlite import SQLiteStore
from datasync.utils.logger import get_logger

logger = get_logger(__name__)

# Error messages kept in last_error
LAST_ERROR_LIMIT = 5


@dataclass
class DeltaState:
    """Checkpoint for one (source system, entity type) pair."""

    source_system: str
    entity_type: str
    adapter_code: str
    last_sync_at: str
    last_entity_id: int | None = None
    last_updated_at: str | None = None
    sync_count: int = 0
    error_count: int = 0
    last_error: str | None = None
    config_hash: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "DeltaState":
        """Create from a datasync_delta row."""
        return cls(
            source_system=row["source_system"],
            entity_type=row["entity_type"],
            adapter_code=row["adapter_code"],
            last_sync_at=row["last_sync_at"],
            last_entity_id=row["last_entity_id"],
            last_updated_at=row["last_updated_at"],
            sync_count=int(row["sync_count"] or 0),
            error_count=int(row["error_count"] or 0),
            last_error=row["last_error"],
            config_hash=row["config_hash"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "adapter": self.adapter_code,
            "last_sync": self.last_sync_at,
            "last_entity_id": self.last_entity_id,
            "count": self.sync_count,
            "errors": self.error_count,
        }


class DeltaStore:
    """
    Checkpoint persistence for incremental syncs.

    Example:
        delta = DeltaStore(store)
        since = delta.get_last_synced_id("legacy", "order")
        ...
        delta.update_from_result("legacy", "order", "csv", result, filters)
    """

    def __init__(self, store: SQLiteStore) -> None:
        self.store = store

    def load_state(self, source_system: str, entity_type: str) -> DeltaState | None:
        """Load the checkpoint for a pair, or None if it was never synced."""
        row = self.store.query_one(
            "SELECT * FROM datasync_delta WHERE source_system = ? AND entity_type = ?",
            (source_system, entity_type),
        )
        return DeltaState.from_row(row) if row else None

    def get_last_sync_time(self, source_system: str, entity_type: str) -> str | None:
        state = self.load_state(source_system, entity_type)
        return state.last_sync_at if state else None

    def get_last_synced_id(self, source_system: str, entity_type: str) -> int | None:
        state = self.load_state(source_system, entity_type)
        return state.last_entity_id if state else None

    def update_from_result(
        self,
        source_system: str,
        entity_type: str,
        adapter_code: str,
        result: SyncResult,
        filters: FilterSet | None = None,
    ) -> DeltaState:
        """
        Fold a completed run into the checkpoint.

        The high-water mark never moves backwards; counts accumulate.

        Returns:
            The stored state
        """
        previous = self.load_state(source_system, entity_type)
        now = datetime.now(timezone.utc).isoformat()

        highest = previous.last_entity_id if previous else None
        imported = result.max_imported_id()
        if imported is not None and (highest is None or imported > highest):
            highest = imported

        state = DeltaState(
            source_system=source_system,
            entity_type=entity_type,
            adapter_code=adapter_code,
            last_sync_at=now,
            last_entity_id=highest,
            last_updated_at=now,
            sync_count=(previous.sync_count if previous else 0) + result.success_count,
            error_count=(previous.error_count if previous else 0) + result.error_count,
            last_error=(
                "\n".join(result.error_messages[:LAST_ERROR_LIMIT])
                if result.has_errors
                else None
            ),
            config_hash=filters.fingerprint() if filters is not None else None,
        )

        self.store.execute_sql(
            """
            INSERT INTO datasync_delta
                (source_system, entity_type, adapter_code, last_sync_at,
                 last_entity_id, last_updated_at, sync_count, error_count,
                 last_error, config_hash)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (source_system, entity_type) DO UPDATE SET
                adapter_code = excluded.adapter_code,
                last_sync_at = excluded.last_sync_at,
                last_entity_id = excluded.last_entity_id,
                last_updated_at = excluded.last_updated_at,
                sync_count = excluded.sync_count,
                error_count = excluded.error_count,
                last_error = excluded.last_error,
                config_hash = excluded.config_hash
            """,
            (
                state.source_system,
                state.entity_type,
                state.adapter_code,
                state.last_sync_at,
                state.last_entity_id,
                state.last_updated_at,
                state.sync_count,
                state.error_count,
                state.last_error,
                state.config_hash,
            ),
        )
        logger.debug(
            f"Checkpoint {source_system}:{entity_type} at id {state.last_entity_id} "
            f"({state.sync_count} synced, {state.error_count} errors)"
        )
        return state

    def has_config_changed(
        self,
        source_system: str,
        entity_type: str,
        filters: FilterSet,
    ) -> bool:
        """True when the filters differ from the last run's, or the pair was never synced."""
        state = self.load_state(source_system, entity_type)
        if state is None:
            return True
        return state.config_hash != filters.fingerprint()

    def reset(self, source_system: str, entity_type: str | None = None) -> int:
        """
        Delete checkpoints to force a full resync.

        Returns:
            Number of checkpoints removed
        """
        if entity_type is None:
            removed = self.store.execute_sql(
                "DELETE FROM datasync_delta WHERE source_system = ?",
                (source_system,),
            )
        else:
            removed = self.store.execute_sql(
                "DELETE FROM datasync_delta WHERE source_system = ? AND entity_type = ?",
                (source_system, entity_type),
            )
        logger.info(f"Reset {removed} checkpoint(s) for {source_system}")
        return removed

    def get_states_for_source(self, source_system: str) -> dict[str, DeltaState]:
        """All checkpoints of a source system, keyed by entity type."""
        rows = self.store.query(
            "SELECT * FROM datasync_delta WHERE source_system = ? ORDER BY entity_type",
            (source_system,),
        )
        return {row["entity_type"]: DeltaState.from_row(row) for row in rows}
