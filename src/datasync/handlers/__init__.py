"""Entity handlers for DataSync."""

from datasync.handlers.base import EntityHandler, ForeignKeySpec, normalize_foreign_keys
from datasync.handlers.registry import HandlerRegistry
from datasync.handlers.table import RecordTableHandler, build_handlers

__all__ = [
    "EntityHandler",
    "ForeignKeySpec",
    "HandlerRegistry",
    "RecordTableHandler",
    "build_handlers",
    "normalize_foreign_keys",
]
