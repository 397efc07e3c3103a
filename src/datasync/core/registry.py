"""
Identity Registry - cross-system id mappings.

Maps (source system, entity type, source id) to the id the record was
given in the target store, so that foreign keys in later records can be
translated. Lookups go through a RegistryCache owned by the registry
instance; its lifetime is one logical run.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from datasync.storage.sqlite import SQLiteStore
from datasync.utils.logger import get_logger

logger = get_logger(__name__)

# SQLite's default limit on host parameters is 999
MAX_IN_PARAMS = 500

CacheKey = tuple[str, str, int]


@dataclass
class RegistryMapping:
    """One stored source -> target mapping."""

    source_system: str
    entity_type: str
    source_id: int
    target_id: int
    external_ref: str | None = None
    synced_at: str = ""
    metadata: dict[str, Any] | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "RegistryMapping":
        """Create from a datasync_registry row."""
        return cls(
            source_system=row["source_system"],
            entity_type=row["entity_type"],
            source_id=int(row["source_id"]),
            target_id=int(row["target_id"]),
            external_ref=row["external_ref"],
            synced_at=row["synced_at"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else None,
        )


class RegistryCache:
    """In-memory cache of resolved mappings, keyed by the composite tuple."""

    def __init__(self) -> None:
        self._entries: dict[CacheKey, int] = {}

    def get(self, key: CacheKey) -> int | None:
        return self._entries.get(key)

    def put(self, key: CacheKey, target_id: int) -> None:
        self._entries[key] = target_id

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class IdentityRegistry:
    """
    Source -> target identity registry backed by the target store.

    Example:
        registry = IdentityRegistry(store)
        registry.register("legacy", "customer", 42, 1001, external_ref="a@b.c")
        registry.resolve("legacy", "customer", 42)  # 1001
    """

    def __init__(self, store: SQLiteStore, cache: RegistryCache | None = None) -> None:
        """
        Initialize the registry.

        Args:
            store: Target store holding the datasync_registry table
            cache: Optional cache to share; a fresh one is created otherwise
        """
        self.store = store
        self.cache = cache if cache is not None else RegistryCache()

    def resolve(self, source_system: str, entity_type: str, source_id: int) -> int | None:
        """Return the target id for a source id, or None when unmapped."""
        key = (source_system, entity_type, int(source_id))
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        row = self.store.query_one(
            """
            SELECT target_id FROM datasync_registry
            WHERE source_system = ? AND entity_type = ? AND source_id = ?
            """,
            key,
        )
        if row is None:
            return None

        target_id = int(row["target_id"])
        self.cache.put(key, target_id)
        return target_id

    def resolve_many(
        self,
        source_system: str,
        entity_type: str,
        source_ids: Iterable[int],
    ) -> dict[int, int]:
        """
        Resolve several source ids at once.

        Returns:
            Map of source id -> target id; unmapped ids are absent
        """
        resolved: dict[int, int] = {}
        uncached: list[int] = []

        for source_id in dict.fromkeys(int(s) for s in source_ids):
            cached = self.cache.get((source_system, entity_type, source_id))
            if cached is not None:
                resolved[source_id] = cached
            else:
                uncached.append(source_id)

        for start in range(0, len(uncached), MAX_IN_PARAMS):
            chunk = uncached[start:start + MAX_IN_PARAMS]
            placeholders = ", ".join("?" for _ in chunk)
            rows = self.store.query(
                f"""
                SELECT source_id, target_id FROM datasync_registry
                WHERE source_system = ? AND entity_type = ?
                AND source_id IN ({placeholders})
                """,
                (source_system, entity_type, *chunk),
            )
            for row in rows:
                source_id = int(row["source_id"])
                target_id = int(row["target_id"])
                resolved[source_id] = target_id
                self.cache.put((source_system, entity_type, source_id), target_id)

        return resolved

    def register(
        self,
        source_system: str,
        entity_type: str,
        source_id: int,
        target_id: int,
        external_ref: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Create or update the mapping for a source id."""
        self.store.execute_sql(
            """
            INSERT INTO datasync_registry
                (source_system, entity_type, source_id, target_id,
                 external_ref, synced_at, metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (source_system, entity_type, source_id) DO UPDATE SET
                target_id = excluded.target_id,
                external_ref = excluded.external_ref,
                synced_at = excluded.synced_at,
                metadata = excluded.metadata
            """,
            (
                source_system,
                entity_type,
                int(source_id),
                int(target_id),
                external_ref,
                datetime.now(timezone.utc).isoformat(),
                json.dumps(metadata) if metadata else None,
            ),
        )
        self.cache.put((source_system, entity_type, int(source_id)), int(target_id))
        logger.debug(f"Registered {source_system}:{entity_type}:{source_id} -> {target_id}")

    def resolve_by_external_ref(
        self,
        entity_type: str,
        external_ref: str,
        source_system: str | None = None,
    ) -> int | None:
        """Find a target id by natural key, optionally limited to one source system."""
        sql = "SELECT target_id FROM datasync_registry WHERE entity_type = ? AND external_ref = ?"
        params: list[Any] = [entity_type, str(external_ref)]
        if source_system is not None:
            sql += " AND source_system = ?"
            params.append(source_system)
        sql += " ORDER BY registry_id LIMIT 1"

        row = self.store.query_one(sql, params)
        return int(row["target_id"]) if row else None

    def resolve_reverse(self, source_system: str, entity_type: str, target_id: int) -> int | None:
        """Find the source id a target id was imported from."""
        row = self.store.query_one(
            """
            SELECT source_id FROM datasync_registry
            WHERE source_system = ? AND entity_type = ? AND target_id = ?
            ORDER BY registry_id LIMIT 1
            """,
            (source_system, entity_type, int(target_id)),
        )
        return int(row["source_id"]) if row else None

    def exists(self, source_system: str, entity_type: str, source_id: int) -> bool:
        return self.resolve(source_system, entity_type, source_id) is not None

    def get_mapping(
        self,
        source_system: str,
        entity_type: str,
        source_id: int,
    ) -> RegistryMapping | None:
        """Load the full stored mapping, bypassing the cache."""
        row = self.store.query_one(
            """
            SELECT * FROM datasync_registry
            WHERE source_system = ? AND entity_type = ? AND source_id = ?
            """,
            (source_system, entity_type, int(source_id)),
        )
        return RegistryMapping.from_row(row) if row else None

    def get_stats(self, source_system: str) -> dict[str, int]:
        """Mapping counts per entity type for a source system."""
        rows = self.store.query(
            """
            SELECT entity_type, COUNT(*) AS count FROM datasync_registry
            WHERE source_system = ?
            GROUP BY entity_type ORDER BY entity_type
            """,
            (source_system,),
        )
        return {row["entity_type"]: int(row["count"]) for row in rows}

    def count(self, source_system: str | None = None, entity_type: str | None = None) -> int:
        clauses = []
        params: list[Any] = []
        if source_system is not None:
            clauses.append("source_system = ?")
            params.append(source_system)
        if entity_type is not None:
            clauses.append("entity_type = ?")
            params.append(entity_type)

        sql = "SELECT COUNT(*) AS count FROM datasync_registry"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        row = self.store.query_one(sql, params)
        return int(row["count"]) if row else 0

    def preload_cache(self, source_system: str, entity_type: str, source_ids: Iterable[int]) -> None:
        """Warm the cache for a batch of source ids."""
        self.resolve_many(source_system, entity_type, source_ids)

    def clear_cache(self) -> None:
        self.cache.clear()
