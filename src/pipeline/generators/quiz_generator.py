"""Quiz generation from lesson vocabulary.

Two question types are produced:

1. Multiple choice: "What does X mean?" with the correct definition and three
   distractors (other definitions from the lesson first, then a fixed pool of
   common English words).
2. Fill in the blank: the first segment containing the word, with the word
   blanked out.

Option order is shuffled with a ``random.Random`` seeded by lesson id and
word, so the same lesson always yields the same quiz.
"""

import logging
import random
from typing import List, Optional

from pipeline.enrichers.vocabulary import match_word
from pipeline.utils.logging_config import pipeline_stage_logger
from pipeline.utils.romanization import get_chinese_pinyin
from pipeline.validators.schema import (
    Lesson,
    QuizQuestion,
    QuizQuestionType,
    SegmentedText,
    VocabularyEntry,
)

logger = logging.getLogger(__name__)

DISTRACTOR_COUNT = 3
BLANK = "_____"

COMMON_TRANSLATIONS = [
    "water", "food", "house", "car", "book", "school", "friend", "family",
    "work", "time", "money", "love", "good", "bad", "big", "small",
    "hot", "cold", "new", "old", "today", "tomorrow", "yesterday",
]


class QuizGenerator:
    stage_name = "quizzes"

    def __init__(self, distractor_pool: Optional[List[str]] = None):
        self.distractor_pool = distractor_pool or COMMON_TRANSLATIONS

    def generate(
        self,
        lesson: Lesson,
        segmented: SegmentedText,
        include_pinyin: bool = True,
    ) -> List[QuizQuestion]:
        """Generate quiz questions for a lesson.

        Args:
            lesson: Lesson whose vocabulary drives the quiz
            segmented: Segmented lesson text used for fill-in-the-blank
            include_pinyin: Mention pinyin in explanations

        Returns:
            Multiple-choice questions (one per entry) followed by
            fill-in-the-blank questions (one per entry found in the text)
        """
        vocabulary = lesson.metadata.vocabulary
        with pipeline_stage_logger(self.stage_name, lesson_id=lesson.id) as log:
            questions = [
                self.multiple_choice(lesson, entry, include_pinyin)
                for entry in vocabulary
            ]
            for entry in vocabulary:
                question = self.fill_in_blank(lesson, entry, segmented)
                if question is not None:
                    questions.append(question)
            log.debug(f"Generated {len(questions)} quiz questions for lesson {lesson.id}")
        return questions

    def multiple_choice(
        self, lesson: Lesson, entry: VocabularyEntry, include_pinyin: bool = True
    ) -> QuizQuestion:
        word = match_word(entry)
        correct = entry.definition

        candidates = [
            other.definition
            for other in lesson.metadata.vocabulary
            if other.definition != correct
        ] + [w for w in self.distractor_pool if w != correct]

        distractors: List[str] = []
        for candidate in candidates:
            if candidate not in distractors:
                distractors.append(candidate)
            if len(distractors) == DISTRACTOR_COUNT:
                break

        options = [correct, *distractors]
        self._rng(lesson.id, entry.word).shuffle(options)

        reading = f" ({get_chinese_pinyin(word)})" if include_pinyin else ""
        return QuizQuestion(
            id=f"{lesson.id}-mc-{entry.word}",
            lesson_id=lesson.id,
            type=QuizQuestionType.MULTIPLE_CHOICE,
            question=f'What does "{word}" mean?',
            options=options,
            correct_answer=correct,
            explanation=f'"{word}"{reading} means "{correct}"',
            source_word=entry.word,
        )

    def fill_in_blank(
        self, lesson: Lesson, entry: VocabularyEntry, segmented: SegmentedText
    ) -> Optional[QuizQuestion]:
        word = match_word(entry)
        segment = next((s for s in segmented.segments if word in s.text), None)
        if segment is None:
            return None

        others = [
            match_word(other)
            for other in lesson.metadata.vocabulary
            if match_word(other) != word
        ]
        options = [word]
        for other in others:
            if other not in options and len(options) <= DISTRACTOR_COUNT:
                options.append(other)
        self._rng(lesson.id, entry.word).shuffle(options)

        return QuizQuestion(
            id=f"{lesson.id}-fib-{entry.word}",
            lesson_id=lesson.id,
            type=QuizQuestionType.FILL_IN_BLANK,
            question=segment.text.replace(word, BLANK),
            options=options,
            correct_answer=word,
            explanation=f'The missing word is "{word}" ({entry.definition})',
            source_word=entry.word,
        )

    @staticmethod
    def _rng(lesson_id: str, word: str) -> random.Random:
        return random.Random(f"{lesson_id}:{word}")
