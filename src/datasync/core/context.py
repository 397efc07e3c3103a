"""
Import context.

Handlers receive an ImportContext with every import call. While the
context is active, handlers should suppress side effects meant for
interactive use of the target system (notification mails, reindexing,
cache invalidation). The context is opened per sync() call and is
always released, however the run ends.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator


@dataclass
class ImportContext:
    """State shared between the engine and the handler for one run."""

    source_system: str
    entity_type: str
    dry_run: bool = False
    strict: bool = False
    entity_options: dict[str, Any] = field(default_factory=dict)
    suppress_notifications: bool = True
    active: bool = False

    def option(self, name: str, default: Any = None) -> Any:
        """Look up an entity-specific option."""
        return self.entity_options.get(name, default)


@contextmanager
def import_mode(
    source_system: str,
    entity_type: str,
    *,
    dry_run: bool = False,
    strict: bool = False,
    entity_options: dict[str, Any] | None = None,
) -> Generator[ImportContext, None, None]:
    """
    Open an import context for one run.

    Example:
        with import_mode("legacy", "customer") as context:
            handler.import_record(record, registry, context)
    """
    context = ImportContext(
        source_system=source_system,
        entity_type=entity_type,
        dry_run=dry_run,
        strict=strict,
        entity_options=dict(entity_options or {}),
        active=True,
    )
    try:
        yield context
    finally:
        context.active = False
        context.suppress_notifications = False
