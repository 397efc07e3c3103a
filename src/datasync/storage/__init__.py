"""Target datastore for DataSync."""

from datasync.storage.sqlite import SQLiteStore, open_store

__all__ = ["SQLiteStore", "open_store"]
