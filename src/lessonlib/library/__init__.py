"""Library sources, remote sync, catalog search and the service facade."""

from lessonlib.library.catalog_index import CatalogIndex
from lessonlib.library.library_service import LibraryService
from lessonlib.library.source_registry import SourceRegistry
from lessonlib.library.sync_coordinator import SyncCoordinator

__all__ = ["CatalogIndex", "LibraryService", "SourceRegistry", "SyncCoordinator"]
