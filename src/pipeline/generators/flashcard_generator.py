"""Flashcard generation from lesson vocabulary."""

import logging
from typing import List

from pipeline.enrichers.vocabulary import match_word
from pipeline.utils.logging_config import pipeline_stage_logger
from pipeline.utils.romanization import get_chinese_pinyin
from pipeline.validators.schema import Flashcard, Lesson

logger = logging.getLogger(__name__)


class FlashcardGenerator:
    """Builds one reversible word-to-definition card per vocabulary entry."""

    stage_name = "flashcards"

    def generate(self, lesson: Lesson, include_pinyin: bool = True) -> List[Flashcard]:
        with pipeline_stage_logger(self.stage_name, lesson_id=lesson.id) as log:
            cards = []
            for index, entry in enumerate(lesson.metadata.vocabulary):
                word = match_word(entry)
                cards.append(
                    Flashcard(
                        id=f"{lesson.id}-card-{index}",
                        lesson_id=lesson.id,
                        front=word,
                        back=entry.definition,
                        pinyin=get_chinese_pinyin(word) if include_pinyin else None,
                        reversible=True,
                        source_word=entry.word,
                    )
                )
            log.debug(f"Generated {len(cards)} flashcards for lesson {lesson.id}")
        return cards
