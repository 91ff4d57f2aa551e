"""Search and browse index over the merged lesson catalog.

The index is rebuilt lazily whenever the registry version changes. Text
search is a casefolded substring match over title, description and content;
Chinese text matches on raw characters.
"""

import threading
from typing import Dict, List, Optional, Tuple, Union

from loguru import logger

from lessonlib.library.source_registry import SourceRegistry
from lessonlib.models import LessonSearchFilters, PaginatedLessons
from pipeline.validators.schema import Difficulty, Lesson

DEFAULT_PAGE_SIZE = 20


def lesson_categories(lesson: Lesson) -> List[str]:
    """A lesson's categories: metadata.category when set, otherwise its tags."""
    if lesson.metadata.category:
        return [lesson.metadata.category]
    return list(lesson.metadata.tags)


class CatalogIndex:
    def __init__(self, registry: SourceRegistry):
        self.registry = registry
        self._lock = threading.Lock()
        self._built_version: Optional[int] = None
        self._lessons: List[Lesson] = []
        self._search_text: Dict[str, str] = {}

    def _snapshot(self) -> Tuple[List[Lesson], Dict[str, str]]:
        version = self.registry.version
        with self._lock:
            if self._built_version != version:
                lessons = self.registry.get_lessons()
                self._search_text = {
                    lesson.id: "\n".join(
                        (lesson.title, lesson.description, lesson.content)
                    ).casefold()
                    for lesson in lessons
                }
                self._lessons = lessons
                self._built_version = version
                logger.debug(f"Rebuilt catalog index: {len(lessons)} lessons (v{version})")
            return self._lessons, self._search_text

    def search(
        self,
        query: str = "",
        filters: Optional[Union[LessonSearchFilters, dict]] = None,
    ) -> List[Lesson]:
        """Search the catalog.

        Args:
            query: Text to look for; empty or whitespace matches everything
            filters: Optional filters, ANDed across fields and ORed within one

        Returns:
            Matching lessons ordered by descending source priority, then id
        """
        if isinstance(filters, dict):
            filters = LessonSearchFilters.model_validate(filters)

        lessons, search_text = self._snapshot()
        needle = (query or "").strip().casefold()

        results = [
            lesson
            for lesson in lessons
            if (not needle or needle in search_text[lesson.id])
            and (filters is None or self.matches(lesson, filters))
        ]
        logger.debug(f"Search {query!r} matched {len(results)} lessons")
        return results

    def search_page(
        self,
        query: str = "",
        filters: Optional[Union[LessonSearchFilters, dict]] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> PaginatedLessons:
        """Search and return one page of the results.

        Pages are 1-based. A page past the end is empty with ``has_more``
        False.

        Raises:
            ValueError: If page or page_size is below 1
        """
        if page < 1:
            raise ValueError(f"page must be at least 1, got {page}")
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {page_size}")

        results = self.search(query, filters)
        start = (page - 1) * page_size
        has_more = start + page_size < len(results)
        return PaginatedLessons(
            lessons=results[start : start + page_size],
            total_count=len(results),
            page=page,
            page_size=page_size,
            has_more=has_more,
            next_page=page + 1 if has_more else None,
        )

    def get_lessons_by_category(self, category: str) -> List[Lesson]:
        return self.search(filters=LessonSearchFilters(categories=[category]))

    def get_lessons_by_difficulty(self, difficulty: Union[Difficulty, str]) -> List[Lesson]:
        """Lessons at one difficulty; an unknown difficulty matches nothing."""
        try:
            level = Difficulty(difficulty)
        except ValueError:
            logger.warning(f"Unknown difficulty {difficulty!r}")
            return []
        return self.search(filters=LessonSearchFilters(difficulties=[level]))

    @staticmethod
    def matches(lesson: Lesson, filters: LessonSearchFilters) -> bool:
        metadata = lesson.metadata

        if filters.categories and not set(filters.categories) & set(lesson_categories(lesson)):
            return False
        if filters.difficulties and metadata.difficulty not in filters.difficulties:
            return False
        if filters.has_vocabulary is not None and bool(metadata.vocabulary) != filters.has_vocabulary:
            return False
        if filters.tags and not set(filters.tags) & set(metadata.tags):
            return False
        if filters.libraries and lesson.library_id not in filters.libraries:
            return False
        if filters.min_estimated_time is not None and metadata.estimated_time < filters.min_estimated_time:
            return False
        if filters.max_estimated_time is not None and metadata.estimated_time > filters.max_estimated_time:
            return False
        return True
