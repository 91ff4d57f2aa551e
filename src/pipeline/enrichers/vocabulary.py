"""Vocabulary mapping stage.

Every occurrence of every vocabulary word inside a segment becomes a
``VocabularyHighlight`` whose offsets index into the full lesson content.
Sense markers (本1, 会2) are removed before matching.
"""

import logging
from typing import List

from pipeline.enrichers.base import BaseEnricher
from pipeline.utils.romanization import clean_sense_marker
from pipeline.validators.schema import (
    Lesson,
    SegmentedText,
    TextSegment,
    VocabularyEntry,
    VocabularyHighlight,
)

logger = logging.getLogger(__name__)


def find_occurrences(text: str, word: str) -> List[int]:
    """Return start offsets of every non-overlapping occurrence of ``word``."""
    if not word:
        return []
    positions = []
    start = text.find(word)
    while start != -1:
        positions.append(start)
        start = text.find(word, start + len(word))
    return positions


def match_word(entry: VocabularyEntry) -> str:
    """The form of a vocabulary word used for matching in lesson text."""
    return clean_sense_marker(entry.word) or entry.word


class VocabularyEnricher(BaseEnricher):
    stage_name = "vocabulary"

    def enrich(self, segmented: SegmentedText, lesson: Lesson) -> SegmentedText:
        vocabulary = lesson.metadata.vocabulary
        if not vocabulary:
            return segmented

        segments = [
            self._highlight(segment, vocabulary) for segment in segmented.segments
        ]
        return segmented.model_copy(update={"segments": segments})

    @staticmethod
    def _highlight(
        segment: TextSegment, vocabulary: List[VocabularyEntry]
    ) -> TextSegment:
        highlights = []
        for entry in vocabulary:
            word = match_word(entry)
            for offset in find_occurrences(segment.text, word):
                start = segment.start_index + offset
                highlights.append(
                    VocabularyHighlight(
                        word=word,
                        definition=entry.definition,
                        start_index=start,
                        end_index=start + len(word),
                    )
                )

        # Reading order; longer words first where two start together
        highlights.sort(key=lambda h: (h.start_index, -(h.end_index - h.start_index)))
        return segment.model_copy(update={"vocabulary": highlights})
