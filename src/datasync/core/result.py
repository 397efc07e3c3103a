"""
Sync Result - outcome of one sync() call.

Collects one outcome per processed record plus an error list, and
derives counts, throughput and a human-readable summary from them.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Action(str, Enum):
    """Outcome recorded for a successfully processed record."""

    CREATED = "created"
    UPDATED = "updated"
    MERGED = "merged"
    SKIPPED = "skipped"
    WOULD_CREATE = "would_create"
    WOULD_UPDATE = "would_update"
    WOULD_MERGE = "would_merge"

    @property
    def is_dry_run(self) -> bool:
        return self.value.startswith("would_")

    @property
    def is_import(self) -> bool:
        """True for outcomes that wrote to the target store."""
        return self in (Action.CREATED, Action.UPDATED, Action.MERGED)


@dataclass
class RecordOutcome:
    """A successful (or skipped) record."""

    source_id: int
    target_id: int | None
    action: Action
    reason: str | None = None


@dataclass
class RecordError:
    """A record that failed."""

    source_id: int
    message: str
    cause: BaseException | None = None


@dataclass
class SyncResult:
    """
    Result of a sync run.

    Example:
        result = SyncResult(entity_type="customer", source_system="legacy")
        result.add_created(1, 1001)
        result.add_error(2, "Missing email")
        result.finish()
        print(result.summary())
    """

    entity_type: str = ""
    source_system: str = ""
    outcomes: list[RecordOutcome] = field(default_factory=list)
    errors: list[RecordError] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)
    end_time: float = 0.0
    dry_run: bool = False

    def add_created(self, source_id: int, target_id: int) -> "SyncResult":
        return self.add_success(source_id, target_id, Action.CREATED)

    def add_updated(self, source_id: int, target_id: int) -> "SyncResult":
        return self.add_success(source_id, target_id, Action.UPDATED)

    def add_merged(self, source_id: int, target_id: int) -> "SyncResult":
        return self.add_success(source_id, target_id, Action.MERGED)

    def add_skipped(
        self,
        source_id: int,
        target_id: int | None = None,
        reason: str = "skipped",
    ) -> "SyncResult":
        """Record a record that was deliberately not imported."""
        self.outcomes.append(
            RecordOutcome(source_id, target_id, Action.SKIPPED, reason)
        )
        return self

    def add_success(
        self,
        source_id: int,
        target_id: int | None,
        action: Action | str = Action.CREATED,
    ) -> "SyncResult":
        """Record a success with an explicit action."""
        self.outcomes.append(RecordOutcome(source_id, target_id, Action(action)))
        return self

    def add_error(
        self,
        source_id: int,
        message: str,
        cause: BaseException | None = None,
    ) -> "SyncResult":
        self.errors.append(RecordError(source_id, message, cause))
        return self

    def add_exception(self, source_id: int, exc: BaseException) -> "SyncResult":
        """Record an error from an exception, keeping it as the cause."""
        message = getattr(exc, "message", None) or str(exc)
        return self.add_error(source_id, message, exc)

    def finish(self) -> "SyncResult":
        """Mark the run as complete."""
        self.end_time = time.time()
        return self

    def count(self, action: Action) -> int:
        return sum(1 for o in self.outcomes if o.action == action)

    @property
    def total(self) -> int:
        """Records processed, successes and errors alike."""
        return len(self.outcomes) + len(self.errors)

    @property
    def success_count(self) -> int:
        return len(self.outcomes)

    @property
    def created(self) -> int:
        return self.count(Action.CREATED)

    @property
    def updated(self) -> int:
        return self.count(Action.UPDATED)

    @property
    def merged(self) -> int:
        return self.count(Action.MERGED)

    @property
    def skipped(self) -> int:
        return self.count(Action.SKIPPED)

    @property
    def would_create(self) -> int:
        return self.count(Action.WOULD_CREATE)

    @property
    def would_update(self) -> int:
        return self.count(Action.WOULD_UPDATE)

    @property
    def would_merge(self) -> int:
        return self.count(Action.WOULD_MERGE)

    @property
    def is_dry_run(self) -> bool:
        """True for dry runs, including ones where every record failed."""
        return self.dry_run or any(o.action.is_dry_run for o in self.outcomes)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def is_success(self) -> bool:
        """True when no errors were recorded."""
        return not self.errors

    @property
    def error_messages(self) -> list[str]:
        return [f"ID {e.source_id}: {e.message}" for e in self.errors]

    @property
    def duration_seconds(self) -> float:
        """Wall-clock duration; still running results use the current time."""
        end = self.end_time or time.time()
        return end - self.start_time

    @property
    def records_per_second(self) -> float:
        duration = self.duration_seconds
        if duration > 0:
            return self.total / duration
        return 0.0

    def max_imported_id(self) -> int | None:
        """Highest source id that was created, updated or merged."""
        ids = [o.source_id for o in self.outcomes if o.action.is_import]
        return max(ids) if ids else None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        data: dict[str, Any] = {
            "entity_type": self.entity_type,
            "source_system": self.source_system,
            "total": self.total,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "duration_seconds": round(self.duration_seconds, 2),
            "records_per_second": round(self.records_per_second, 2),
            "is_dry_run": self.is_dry_run,
        }

        if self.is_dry_run:
            data["would_create"] = self.would_create
            data["would_update"] = self.would_update
            data["would_merge"] = self.would_merge
        else:
            data["created"] = self.created
            data["updated"] = self.updated
            data["merged"] = self.merged
            data["skipped"] = self.skipped
        return data

    def summary(self) -> str:
        """One-line summary of the run."""
        data = self.to_dict()

        if self.is_dry_run:
            return (
                f"Validated {data['total']} records in {data['duration_seconds']:.2f}s. "
                f"Would create: {data['would_create']}, "
                f"Would update: {data['would_update']}, "
                f"Would merge: {data['would_merge']}, "
                f"Errors: {data['error_count']}"
            )

        parts = [
            f"Synced {data['total']} records in {data['duration_seconds']:.2f}s "
            f"({data['records_per_second']:.1f}/s)"
        ]

        actions = []
        for key in ("created", "updated", "merged", "skipped", "error_count"):
            if data[key] > 0:
                label = "Errors" if key == "error_count" else key.capitalize()
                actions.append(f"{label}: {data[key]}")
        if actions:
            parts.append(", ".join(actions))

        return ". ".join(parts)

    def merge(self, other: "SyncResult") -> "SyncResult":
        """Fold another result's outcomes and errors into this one."""
        self.outcomes.extend(other.outcomes)
        self.errors.extend(other.errors)
        self.dry_run = self.dry_run or other.dry_run
        return self
