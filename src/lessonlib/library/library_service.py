"""Library service facade.

Single entry point for UI and CLI layers: browse and search the merged
catalog, manage remote sources and their syncs, and prepare lessons for
study through the cached processing pipeline.

Example:
    >>> service = LibraryService.from_config_file("library_sources.json")
    >>> service.initialize()
    >>> service.sync_all_remote_sources()
    >>> prepared = service.prepare_lesson_for_learning("greetings")
"""

import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from loguru import logger

from constants import LIBRARY_SOURCES_FILE
from lessonlib.cache.cache_engine import CacheEngine, EventCallback
from lessonlib.library.catalog_index import DEFAULT_PAGE_SIZE, CatalogIndex
from lessonlib.library.config import load_sources_file
from lessonlib.library.source_registry import SourceRegistry
from lessonlib.library.sync_coordinator import SyncCoordinator
from lessonlib.models import (
    CacheConfig,
    CacheStatus,
    LessonSearchFilters,
    LibrarySource,
    PaginatedLessons,
    SourceState,
    SourceType,
    SyncResult,
)
from lessonlib.utils.http_client import JsonFetcher
from pipeline.processor import ProcessingPipeline
from pipeline.validators.lesson_validator import SchemaValidator
from pipeline.validators.schema import (
    Difficulty,
    Lesson,
    LessonLoadOptions,
    PreparedLesson,
)


def _serialize_prepared(prepared: PreparedLesson) -> Dict[str, Any]:
    return prepared.model_dump(by_alias=True, mode="json")


class LibraryService:
    """Facade over the source registry, sync coordinator, catalog and pipeline."""

    def __init__(
        self,
        sources: Optional[Iterable[LibrarySource]] = None,
        cache_config: Optional[Union[CacheConfig, Mapping]] = None,
        fetcher: Optional[JsonFetcher] = None,
        clock: Callable[[], float] = time.time,
        diagnostics: Optional[EventCallback] = None,
        validator: Optional[SchemaValidator] = None,
    ):
        """Initialize the service. No I/O happens until initialize().

        Args:
            sources: Library sources to register
            cache_config: Prepared-lesson cache settings (default: env defaults)
            fetcher: JSON fetcher for remote sources (default: HttpClient)
            clock: Time source for the cache (injectable for tests)
            diagnostics: Optional callback receiving (event, payload) for sync
                and cache events
            validator: Lesson validator (default: SchemaValidator())
        """
        self._diagnostics = diagnostics
        self.validator = validator or SchemaValidator()
        self.registry = SourceRegistry(sources, validator=self.validator)
        self.cache: CacheEngine[PreparedLesson] = CacheEngine(
            name="prepared_lessons",
            config=cache_config,
            clock=clock,
            serializer=_serialize_prepared,
            deserializer=PreparedLesson.model_validate,
            on_event=diagnostics,
        )
        self.pipeline = ProcessingPipeline(cache=self.cache)
        self.sync = SyncCoordinator(self.registry, fetcher=fetcher, on_event=diagnostics)
        self.catalog = CatalogIndex(self.registry)

        self.registry.add_listener(self._invalidate_prepared)

    @classmethod
    def from_config_file(
        cls, path: Optional[Union[str, Path]] = None, **kwargs: Any
    ) -> "LibraryService":
        """Build a service from a JSON sources file.

        Args:
            path: Sources file (default: LIBRARY_SOURCES_FILE)
            **kwargs: Passed to the constructor

        Raises:
            ValueError: If no path is configured or the file is malformed
            FileNotFoundError: If the file does not exist
        """
        path = path or LIBRARY_SOURCES_FILE
        if not path:
            raise ValueError("No sources file given and LIBRARY_SOURCES_FILE is not set")
        return cls(sources=load_sources_file(path), **kwargs)

    def initialize(self, sync_remote: bool = False) -> None:
        """Load local sources; optionally sync remote ones right away."""
        self.registry.initialize()
        if sync_remote:
            self.sync_all_remote_sources()

    # ------------------------------------------------------------------
    # Libraries
    # ------------------------------------------------------------------

    def get_available_libraries(self) -> List[LibrarySource]:
        return self.registry.get_available_libraries()

    def get_library_by_id(self, library_id: str) -> Optional[LibrarySource]:
        return self.registry.get_library_by_id(library_id)

    def get_loading_state(self, library_id: str) -> Optional[SourceState]:
        """Loading status of a source, or None if it is unknown."""
        return self.registry.get_loading_state(library_id)

    def refresh_library(self, library_id: str) -> bool:
        """Reload a local source or re-sync a remote one."""
        source = self.registry.get_library_by_id(library_id)
        if source is None:
            return False
        if source.type == SourceType.REMOTE:
            return self.sync_remote_source(library_id).success
        return self.registry.refresh_library(library_id)

    def add_remote_source(self, source: Union[LibrarySource, Mapping]) -> LibrarySource:
        """Register a remote source (synced on the next sync call).

        Raises:
            ValueError: If the source is not remote or its id is taken
        """
        if not isinstance(source, LibrarySource):
            source = LibrarySource.model_validate(source)
        return self.registry.add_remote_source(source)

    def remove_remote_source(self, library_id: str) -> bool:
        source = self.registry.get_library_by_id(library_id)
        if source is None or source.type != SourceType.REMOTE:
            return False
        return self.registry.remove_source(library_id)

    def sync_remote_source(self, library_id: str) -> SyncResult:
        return self.sync.sync_remote_source(library_id)

    def sync_all_remote_sources(self) -> List[SyncResult]:
        return self.sync.sync_all_remote_sources()

    # ------------------------------------------------------------------
    # Lessons
    # ------------------------------------------------------------------

    def get_lessons(self, library_id: Optional[str] = None) -> List[Lesson]:
        return self.registry.get_lessons(library_id)

    def get_lesson_by_id(self, lesson_id: str) -> Optional[Lesson]:
        return self.registry.get_lesson_by_id(lesson_id)

    def search_lessons(
        self,
        query: str = "",
        filters: Optional[Union[LessonSearchFilters, dict]] = None,
    ) -> List[Lesson]:
        return self.catalog.search(query, filters)

    def search_lessons_page(
        self,
        query: str = "",
        filters: Optional[Union[LessonSearchFilters, dict]] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> PaginatedLessons:
        """One page of ``search_lessons`` results.

        Raises:
            ValueError: If page or page_size is below 1
        """
        return self.catalog.search_page(query, filters, page=page, page_size=page_size)

    def get_lessons_by_category(self, category: str) -> List[Lesson]:
        return self.catalog.get_lessons_by_category(category)

    def get_lessons_by_difficulty(self, difficulty: Union[Difficulty, str]) -> List[Lesson]:
        return self.catalog.get_lessons_by_difficulty(difficulty)

    def prepare_lesson_for_learning(
        self,
        lesson_id: str,
        options: Optional[Union[LessonLoadOptions, Mapping]] = None,
    ) -> Optional[PreparedLesson]:
        """Prepare a lesson for study.

        Returns:
            The PreparedLesson, or None if no lesson has this id

        Raises:
            Exception: Whatever a pipeline stage raised (nothing is cached)
        """
        lesson = self.registry.get_lesson_by_id(lesson_id)
        if lesson is None:
            logger.warning(f"Lesson not found: {lesson_id}")
            return None

        if options is None:
            options = LessonLoadOptions()
        elif not isinstance(options, LessonLoadOptions):
            options = LessonLoadOptions.model_validate(options)

        return self.pipeline.prepare(lesson, options)

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def get_cache_status(self) -> CacheStatus:
        return self.cache.status()

    def set_cache_config(self, config: Union[CacheConfig, Mapping]) -> CacheConfig:
        """Reconfigure the prepared-lesson cache.

        Raises:
            pydantic.ValidationError: If the configuration is invalid
        """
        return self.cache.configure(config)

    def clear_cache(self) -> None:
        self.cache.clear()
        self.sync.document_cache.clear()

    def close(self) -> None:
        self.cache.close()
        self.sync.document_cache.close()

    def _invalidate_prepared(self, source_id: str, changed_ids: List[str]) -> None:
        # Entries built from the lesson that now wins the merge stay valid.
        removed = 0
        for lesson_id in changed_ids:
            lesson = self.registry.get_lesson_by_id(lesson_id)
            current = f"{lesson_id}:{lesson.fingerprint}:" if lesson is not None else None
            for key in self.cache.keys():
                if key.startswith(f"{lesson_id}:") and not (current and key.startswith(current)):
                    removed += self.cache.invalidate(key)
        if removed:
            logger.info(
                f"Invalidated {removed} prepared lessons after changes in {source_id}"
            )
        if self._diagnostics is not None:
            self._diagnostics(
                "lessons.changed",
                {"source_id": source_id, "lesson_ids": changed_ids, "invalidated": removed},
            )
