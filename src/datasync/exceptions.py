"""
DataSync exception hierarchy.

Every error raised by the engine, adapters and handlers derives from
DataSyncError so callers can tell sync failures apart from programming
errors. Only ConnectionFailed is fatal to a running sync; every other
kind is recorded against the record that caused it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datasync.core.result import SyncResult


class DataSyncError(Exception):
    """Base exception for all DataSync errors."""

    code = "general"

    def __init__(
        self,
        message: str,
        entity_type: str | None = None,
        source_id: int | None = None,
        source_system: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.entity_type = entity_type
        self.source_id = source_id
        self.source_system = source_system
        self.context = context or {}
        # Set by the engine when a run aborts, so partial progress stays visible
        self.result: SyncResult | None = None

    def log_details(self) -> dict[str, Any]:
        """Get full error details for structured logging."""
        return {
            "message": self.message,
            "code": self.code,
            "entity_type": self.entity_type,
            "source_id": self.source_id,
            "source_system": self.source_system,
            "context": self.context,
        }


class ConfigurationError(DataSyncError):
    """Raised when the engine or an adapter is not configured correctly."""

    code = "configuration_error"


class AdapterNotFound(DataSyncError):
    """Raised when no adapter is registered under a code."""

    code = "adapter_not_found"

    def __init__(self, adapter_code: str) -> None:
        super().__init__(
            f"Adapter not found: {adapter_code}",
            context={"adapter": adapter_code},
        )


class EntityHandlerNotFound(DataSyncError):
    """Raised when no entity handler is registered for an entity type."""

    code = "entity_not_found"

    def __init__(self, entity_type: str) -> None:
        super().__init__(
            f"Entity handler not found: {entity_type}",
            entity_type=entity_type,
        )


class SourceNotFound(DataSyncError):
    """Raised when a source file or database does not exist."""

    code = "source_not_found"

    def __init__(self, path: str) -> None:
        super().__init__(f"Source not found: {path}", context={"path": path})


class ConnectionFailed(DataSyncError):
    """Raised when a source or target connection is lost. Aborts the run."""

    code = "connection_failed"

    def __init__(self, message: str, config: dict[str, Any] | None = None) -> None:
        safe = {
            k: v
            for k, v in (config or {}).items()
            if k not in ("password", "pass", "api_key", "token")
        }
        super().__init__(f"Connection failed: {message}", context={"config": safe})


class ValidationFailed(DataSyncError):
    """Raised when a record fails required-field or handler validation."""

    code = "validation_failed"

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        entity_type: str | None = None,
        source_id: int | None = None,
        source_system: str | None = None,
    ) -> None:
        super().__init__(
            message,
            entity_type=entity_type,
            source_id=source_id,
            source_system=source_system,
        )
        self.errors = errors or []


class FKResolutionFailed(DataSyncError):
    """Raised when a required foreign key has no registry mapping."""

    code = "fk_resolution_failed"

    def __init__(
        self,
        entity_type: str,
        field: str,
        value: Any,
        source_system: str,
    ) -> None:
        super().__init__(
            f"Foreign key resolution failed: {entity_type}.{field} = {value} "
            f"not found in registry for system '{source_system}'",
            entity_type=entity_type,
            source_system=source_system,
            context={"fk_field": field, "fk_value": value},
        )
        self.field = field


class DuplicateEntity(DataSyncError):
    """Raised under the `error` duplicate policy when a record already exists."""

    code = "duplicate_entity"

    def __init__(
        self,
        entity_type: str,
        source_id: int,
        existing_id: int,
        source_system: str | None = None,
    ) -> None:
        super().__init__(
            f"Duplicate {entity_type} found: source #{source_id} already exists "
            f"as #{existing_id}. Use --on-duplicate update|skip|merge to handle duplicates.",
            entity_type=entity_type,
            source_id=source_id,
            source_system=source_system,
            context={"existing_id": existing_id},
        )
        self.existing_id = existing_id


class ImportFailed(DataSyncError):
    """Wraps any exception raised inside a handler's import."""

    code = "import_failed"

    def __init__(
        self,
        entity_type: str,
        source_id: int,
        source_system: str,
        reason: str,
    ) -> None:
        super().__init__(
            f"Import failed for {entity_type} #{source_id} from {source_system}: {reason}",
            entity_type=entity_type,
            source_id=source_id,
            source_system=source_system,
        )
