"""Lesson processing pipeline.

Assembles a ``PreparedLesson`` from a validated ``Lesson`` in five stages:

1. Segmentation (sentence / phrase / character / word)
2. Pinyin annotation (skipped when include_pinyin is False)
3. Vocabulary mapping
4. Flashcard generation (skipped when include_flashcards is False)
5. Quiz generation (skipped when include_quizzes is False)

Each stage is pure. When a cache is attached and ``cache_result`` is set,
results are single-flighted through ``cache.get_or_load`` under the key
``"<lesson_id>:<fingerprint>:<options_hash>"``, so an edited lesson never
reads an artifact built from its previous content.
"""

import logging
from typing import Any, Optional

from pipeline.enrichers.pinyin import PinyinEnricher
from pipeline.enrichers.segmentation import TextSegmenter
from pipeline.enrichers.vocabulary import VocabularyEnricher
from pipeline.generators.flashcard_generator import FlashcardGenerator
from pipeline.generators.quiz_generator import QuizGenerator
from pipeline.validators.schema import Lesson, LessonLoadOptions, PreparedLesson

logger = logging.getLogger(__name__)


def prepared_cache_key(lesson: Lesson, options: LessonLoadOptions) -> str:
    return f"{lesson.id}:{lesson.fingerprint}:{options.options_hash}"


class ProcessingPipeline:
    """Turns lessons into study-ready prepared lessons."""

    def __init__(
        self,
        cache: Optional[Any] = None,
        segmenter: Optional[TextSegmenter] = None,
        quiz_generator: Optional[QuizGenerator] = None,
    ):
        """Initialize the pipeline.

        Args:
            cache: Object exposing ``get_or_load(key, loader)``, typically a
                CacheEngine of PreparedLesson (default: no caching)
            segmenter: Text segmenter (default: TextSegmenter())
            quiz_generator: Quiz generator (default: QuizGenerator())
        """
        self.cache = cache
        self.segmenter = segmenter or TextSegmenter()
        self.pinyin_enricher = PinyinEnricher()
        self.vocabulary_enricher = VocabularyEnricher()
        self.flashcard_generator = FlashcardGenerator()
        self.quiz_generator = quiz_generator or QuizGenerator()

    def prepare(
        self, lesson: Lesson, options: Optional[LessonLoadOptions] = None
    ) -> PreparedLesson:
        """Prepare a lesson, going through the cache when enabled."""
        options = options or LessonLoadOptions()
        if self.cache is None or not options.cache_result:
            return self.build(lesson, options)

        key = prepared_cache_key(lesson, options)
        return self.cache.get_or_load(key, lambda: self.build(lesson, options))

    def build(self, lesson: Lesson, options: LessonLoadOptions) -> PreparedLesson:
        """Run every stage for one lesson without touching the cache."""
        logger.info(
            f"Preparing lesson {lesson.id} (options {options.options_hash})",
            extra={"lesson_id": lesson.id, "options_hash": options.options_hash},
        )

        segmented = self.segmenter.segment(
            lesson,
            strategy=options.segmentation_strategy,
            segment_text=options.segment_text,
        )

        pinyin_content = ""
        if options.include_pinyin:
            segmented = self.pinyin_enricher.run(segmented, lesson)
            pinyin_content = PinyinEnricher.join(segmented)

        segmented = self.vocabulary_enricher.run(segmented, lesson)

        flashcards = []
        if options.include_flashcards:
            flashcards = self.flashcard_generator.generate(
                lesson, include_pinyin=options.include_pinyin
            )

        quiz_questions = []
        if options.include_quizzes:
            quiz_questions = self.quiz_generator.generate(
                lesson, segmented, include_pinyin=options.include_pinyin
            )

        return PreparedLesson(
            **dict(lesson),
            segmented_content=segmented,
            pinyin_content=pinyin_content,
            flashcards=flashcards,
            quiz_questions=quiz_questions,
            options_hash=options.options_hash,
        )
