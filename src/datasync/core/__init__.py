"""Core sync engine components for DataSync."""

from datasync.core.context import ImportContext, import_mode
from datasync.core.delta import DeltaState, DeltaStore
from datasync.core.filters import FilterSet
from datasync.core.registry import IdentityRegistry, RegistryCache, RegistryMapping
from datasync.core.result import Action, SyncResult

__all__ = [
    "Action",
    "DeltaState",
    "DeltaStore",
    "FilterSet",
    "IdentityRegistry",
    "ImportContext",
    "RegistryCache",
    "RegistryMapping",
    "SyncResult",
    "import_mode",
]
