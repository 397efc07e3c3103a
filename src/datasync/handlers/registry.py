"""Entity type -> handler map, resolved once at startup."""

from __future__ import annotations

import re
from typing import Iterator

from datasync.exceptions import ConfigurationError, EntityHandlerNotFound
from datasync.handlers.base import EntityHandler

ENTITY_TYPE_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


class HandlerRegistry:
    """
    Handlers keyed by entity type.

    Example:
        handlers = HandlerRegistry([CustomerHandler(), OrderHandler()])
        handler = handlers.get("customer")
    """

    def __init__(self, handlers: list[EntityHandler] | None = None) -> None:
        self._handlers: dict[str, EntityHandler] = {}
        for handler in handlers or []:
            self.register(handler)

    def register(self, handler: EntityHandler) -> None:
        """Add a handler; replaces any handler registered for the same type."""
        entity_type = handler.entity_type
        if not ENTITY_TYPE_PATTERN.match(entity_type or ""):
            raise ConfigurationError(
                f"Invalid entity type: {entity_type!r}. "
                "Use lowercase letters, digits and underscores.",
                entity_type=entity_type,
            )
        self._handlers[entity_type] = handler

    def get(self, entity_type: str) -> EntityHandler:
        """
        Handler for an entity type.

        Raises:
            EntityHandlerNotFound: if none is registered
        """
        handler = self._handlers.get(entity_type)
        if handler is None:
            raise EntityHandlerNotFound(entity_type)
        return handler

    def entity_types(self) -> list[str]:
        return list(self._handlers)

    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._handlers

    def __iter__(self) -> Iterator[EntityHandler]:
        return iter(self._handlers.values())

    def __len__(self) -> int:
        return len(self._handlers)
