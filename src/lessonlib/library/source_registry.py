"""Registry of lesson sources and the merged lesson catalog.

Each source owns a lesson map keyed by lesson id. The merged catalog picks,
for every lesson id, the copy from the winning source:

1. Higher source priority wins
2. On equal priority, the more recently updated lesson wins
3. Remaining ties go to the source with the smaller id

All mutations of a source's lessons go through ``replace_source_lessons``,
which holds that source's lock and swaps the whole map in one assignment,
so readers see either the old or the new set, never a mix.
"""

import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, Field

from lessonlib.library.manifest import ManifestError, parse_manifest, with_category
from lessonlib.models import (
    LibrarySource,
    SourceLoadStatus,
    SourceMetadata,
    SourceState,
    SourceType,
)
from pipeline.utils.file_io import read_json
from pipeline.validators.lesson_validator import SchemaValidator
from pipeline.validators.schema import Lesson, utc_now_timestamp

ChangeListener = Callable[[str, List[str]], None]


class LessonChanges(BaseModel):
    """Lesson ids affected by one replacement of a source's lesson set."""

    added: List[str] = Field(default_factory=list)
    updated: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)

    @property
    def changed_ids(self) -> List[str]:
        return sorted(set(self.added) | set(self.updated) | set(self.removed))


class SourceRegistry:
    """Holds library sources and their validated lessons."""

    def __init__(
        self,
        sources: Optional[Iterable[LibrarySource]] = None,
        validator: Optional[SchemaValidator] = None,
    ):
        self.validator = validator or SchemaValidator()

        self._lock = threading.RLock()
        self._sources: Dict[str, LibrarySource] = {}
        self._lessons: Dict[str, Dict[str, Lesson]] = {}
        self._source_locks: Dict[str, threading.Lock] = {}
        self._states: Dict[str, SourceState] = {}
        self._listeners: List[ChangeListener] = []
        self._version = 0
        self._merged: Optional[Tuple[int, Dict[str, Lesson]]] = None
        self._initialized = False

        for source in sources or []:
            self._register(source)

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    @property
    def version(self) -> int:
        """Incremented on every change to sources or lessons."""
        with self._lock:
            return self._version

    def initialize(self) -> None:
        """Load every enabled local source; remote sources stay pending.

        Idempotent. A local source whose manifest cannot be read is kept with
        an empty lesson set.
        """
        with self._lock:
            if self._initialized:
                return
            self._initialized = True
            sources = list(self._sources.values())

        for source in sources:
            if source.type == SourceType.LOCAL and source.enabled:
                self.mark_loading(source.id)
                try:
                    lessons = self.load_local_manifest(source)
                except (OSError, ValueError) as e:
                    logger.error(f"Failed to load local source {source.id}: {e}")
                    self.mark_failed(source.id, str(e))
                    continue
                self.replace_source_lessons(source.id, lessons)
                self.mark_loaded(source.id)
            elif source.type == SourceType.REMOTE:
                logger.info(f"Registered remote source {source.id} (pending sync)")

        logger.info(
            f"Source registry initialized: {len(sources)} sources, "
            f"{len(self.get_lessons())} lessons"
        )

    def add_remote_source(self, source: LibrarySource) -> LibrarySource:
        """Register a remote source. No network I/O happens here.

        Raises:
            ValueError: If the source is not remote or its id is taken
        """
        if source.type != SourceType.REMOTE:
            raise ValueError(f"Source {source.id} is not a remote source")
        if not source.config.url:
            raise ValueError(f"Remote source {source.id} has no url")

        with self._lock:
            if source.id in self._sources:
                raise ValueError(f"Library source already exists: {source.id}")
            self._register(source)

        logger.info(f"Added remote source {source.id} ({source.config.url})")
        return source

    def remove_source(self, source_id: str) -> bool:
        with self._lock:
            if source_id not in self._sources:
                return False
            del self._sources[source_id]
            removed = sorted(self._lessons.pop(source_id, {}).keys())
            self._source_locks.pop(source_id, None)
            self._states.pop(source_id, None)
            self._version += 1

        logger.info(f"Removed source {source_id} ({len(removed)} lessons)")
        self._notify(source_id, removed)
        return True

    def get_available_libraries(self) -> List[LibrarySource]:
        """Enabled sources, highest priority first, then by id."""
        with self._lock:
            sources = [s for s in self._sources.values() if s.enabled]
        return sorted(sources, key=lambda s: (-s.priority, s.id))

    def get_library_by_id(self, source_id: str) -> Optional[LibrarySource]:
        with self._lock:
            return self._sources.get(source_id)

    def get_sources(self) -> List[LibrarySource]:
        """Every registered source in registration order."""
        with self._lock:
            return list(self._sources.values())

    def priority_of(self, source_id: Optional[str]) -> int:
        with self._lock:
            source = self._sources.get(source_id) if source_id else None
            return source.priority if source else 0

    def update_source_metadata(self, source_id: str, metadata: SourceMetadata) -> None:
        with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                return
            config = source.config.model_copy(update={"metadata": metadata})
            self._sources[source_id] = source.model_copy(update={"config": config})
            self._version += 1

    def add_listener(self, listener: ChangeListener) -> None:
        """Call ``listener(source_id, changed_lesson_ids)`` after each change."""
        with self._lock:
            self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Loading state
    # ------------------------------------------------------------------

    def get_loading_state(self, source_id: str) -> Optional[SourceState]:
        with self._lock:
            return self._states.get(source_id)

    def mark_loading(self, source_id: str) -> None:
        self._update_state(source_id, status=SourceLoadStatus.LOADING)

    def mark_loaded(self, source_id: str) -> None:
        self._update_state(
            source_id,
            status=SourceLoadStatus.LOADED,
            last_loaded=utc_now_timestamp(),
            error=None,
        )

    def mark_failed(self, source_id: str, message: str) -> None:
        self._update_state(source_id, status=SourceLoadStatus.ERROR, error=message)

    def _update_state(self, source_id: str, **changes) -> None:
        with self._lock:
            state = self._states.get(source_id)
            if state is not None:
                self._states[source_id] = state.model_copy(update=changes)

    def _register(self, source: LibrarySource) -> None:
        self._sources[source.id] = source
        self._lessons[source.id] = {}
        self._source_locks[source.id] = threading.Lock()
        self._states[source.id] = SourceState()
        self._version += 1

    # ------------------------------------------------------------------
    # Lessons
    # ------------------------------------------------------------------

    def get_lessons(self, library_id: Optional[str] = None) -> List[Lesson]:
        """Merged catalog, or the lessons whose winning source is ``library_id``.

        Ordered by descending source priority, then ascending lesson id.
        """
        merged = self._merged_catalog()
        lessons = [
            lesson
            for lesson in merged.values()
            if library_id is None or lesson.library_id == library_id
        ]
        return self.sort_lessons(lessons)

    def get_lesson_by_id(self, lesson_id: str) -> Optional[Lesson]:
        return self._merged_catalog().get(lesson_id)

    def get_source_lessons(self, source_id: str) -> List[Lesson]:
        """Every lesson a source holds, whether or not it wins the merge."""
        with self._lock:
            lessons = self._lessons.get(source_id, {})
        return sorted(lessons.values(), key=lambda lesson: lesson.id)

    def sort_lessons(self, lessons: Iterable[Lesson]) -> List[Lesson]:
        with self._lock:
            priorities = {sid: s.priority for sid, s in self._sources.items()}
        return sorted(
            lessons, key=lambda lesson: (-priorities.get(lesson.library_id, 0), lesson.id)
        )

    def replace_source_lessons(
        self,
        source_id: str,
        lessons: Iterable[Lesson],
        should_commit: Optional[Callable[[], bool]] = None,
    ) -> Optional[LessonChanges]:
        """Atomically replace a source's lesson set.

        Args:
            source_id: Source to replace
            lessons: The complete new lesson set
            should_commit: Checked under the source lock; returning False
                abandons the replacement

        Returns:
            The changes applied, or None if the source is unknown or the
            commit was abandoned
        """
        with self._lock:
            source_lock = self._source_locks.get(source_id)
        if source_lock is None:
            logger.warning(f"Ignoring lessons for unknown source {source_id}")
            return None

        tagged = {
            lesson.id: lesson.model_copy(update={"library_id": source_id})
            for lesson in lessons
        }

        with source_lock:
            if should_commit is not None and not should_commit():
                logger.warning(f"Abandoned lesson replacement for source {source_id}")
                return None

            with self._lock:
                if source_id not in self._sources:
                    return None
                previous = self._lessons.get(source_id, {})
                self._lessons[source_id] = tagged
                self._version += 1

        changes = LessonChanges(
            added=sorted(set(tagged) - set(previous)),
            removed=sorted(set(previous) - set(tagged)),
            updated=sorted(
                lesson_id
                for lesson_id in set(tagged) & set(previous)
                if tagged[lesson_id] != previous[lesson_id]
            ),
        )
        logger.debug(
            f"Replaced lessons for {source_id}: {len(changes.added)} added, "
            f"{len(changes.updated)} updated, {len(changes.removed)} removed"
        )
        if changes.changed_ids:
            self._notify(source_id, changes.changed_ids)
        return changes

    def refresh_library(self, source_id: str) -> bool:
        """Reload a local source from its manifest.

        Returns:
            True if reloaded; False for unknown or remote sources and for
            manifests that cannot be read (the previous lessons are kept)
        """
        source = self.get_library_by_id(source_id)
        if source is None or source.type != SourceType.LOCAL:
            return False

        self.mark_loading(source_id)
        try:
            lessons = self.load_local_manifest(source)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to refresh local source {source_id}: {e}")
            self.mark_failed(source_id, str(e))
            return False

        self.replace_source_lessons(source_id, lessons)
        self.mark_loaded(source_id)
        categories = sorted(
            {lesson.metadata.category for lesson in lessons if lesson.metadata.category}
        )
        self.update_source_metadata(
            source_id,
            source.config.metadata.model_copy(
                update={
                    "last_updated": utc_now_timestamp(),
                    "total_lessons": len(lessons),
                    "categories": categories,
                }
            ),
        )
        return True

    def load_local_manifest(self, source: LibrarySource) -> List[Lesson]:
        """Read and validate every lesson listed in a local manifest.

        Invalid lessons are skipped with a warning.

        Raises:
            OSError: If the manifest cannot be read
            ValueError: If the manifest is not JSON or has an unknown shape
        """
        if not source.config.manifest_path:
            raise ManifestError(f"Local source {source.id} has no manifestPath")

        manifest_path = Path(source.config.manifest_path)
        entries = parse_manifest(read_json(manifest_path))

        lessons = []
        for entry in entries:
            if entry.is_reference:
                if entry.url and not entry.path:
                    logger.warning(
                        f"Skipping remote lesson reference {entry.url} in local source {source.id}"
                    )
                    continue
                try:
                    document = read_json(manifest_path.parent / entry.path)
                except (OSError, ValueError) as e:
                    logger.warning(
                        f"Skipping unreadable lesson file {entry.path} in {source.id}: {e}"
                    )
                    continue
            else:
                document = entry.document

            lesson, result = self.validator.accept(with_category(document, entry.category))
            if lesson is None:
                logger.warning(
                    f"Skipping invalid lesson in {source.id}: {'; '.join(result.error_messages)}"
                )
                continue
            lessons.append(lesson)

        logger.info(f"Loaded {len(lessons)} lessons from {manifest_path}")
        return lessons

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def _merged_catalog(self) -> Dict[str, Lesson]:
        with self._lock:
            if self._merged is not None and self._merged[0] == self._version:
                return self._merged[1]

            merged: Dict[str, Tuple[LibrarySource, Lesson]] = {}
            for source_id, lessons in self._lessons.items():
                source = self._sources[source_id]
                if not source.enabled:
                    continue
                for lesson_id, lesson in lessons.items():
                    current = merged.get(lesson_id)
                    if current is None or self._wins(source, lesson, *current):
                        merged[lesson_id] = (source, lesson)

            catalog = {lesson_id: lesson for lesson_id, (_, lesson) in merged.items()}
            self._merged = (self._version, catalog)
            return catalog

    @staticmethod
    def _wins(
        source: LibrarySource,
        lesson: Lesson,
        other_source: LibrarySource,
        other_lesson: Lesson,
    ) -> bool:
        if source.priority != other_source.priority:
            return source.priority > other_source.priority
        updated = lesson.metadata.updated_datetime
        other_updated = other_lesson.metadata.updated_datetime
        if updated != other_updated:
            return updated > other_updated
        return source.id < other_source.id

    def _notify(self, source_id: str, changed_ids: List[str]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(source_id, changed_ids)
