"""DataSync - cross-system record migration and incremental synchronization."""

__version__ = "1.0.0"
__author__ = "DataSync Contributors"

from datasync.config import DuplicatePolicy, Settings

__all__ = ["DuplicatePolicy", "Settings", "__version__"]
