"""Text segmentation for lesson content.

Segments carry ``start_index``/``end_index`` offsets into the full content so
later stages (vocabulary highlights, reader UIs) can map back to the source
text. ``content[segment.start_index:segment.end_index] == segment.text``
always holds.
"""

import logging
from typing import Iterable, List, Tuple

import jieba

from pipeline.utils.logging_config import pipeline_stage_logger
from pipeline.validators.schema import (
    Lesson,
    SegmentationStrategy,
    SegmentedText,
    TextSegment,
)

logger = logging.getLogger(__name__)

SENTENCE_DELIMITERS = frozenset("。！？；!?;")
PHRASE_DELIMITERS = SENTENCE_DELIMITERS | frozenset("，、：,:")

Span = Tuple[int, int]


def _split_after(text: str, delimiters: frozenset) -> List[Span]:
    """Split ``text`` into spans ending after each delimiter or at a newline."""
    spans = []
    start = 0
    for i, char in enumerate(text):
        if char in delimiters:
            spans.append((start, i + 1))
            start = i + 1
        elif char == "\n":
            spans.append((start, i))
            start = i + 1
    spans.append((start, len(text)))
    return spans


def _character_spans(text: str) -> List[Span]:
    return [(i, i + 1) for i, char in enumerate(text) if not char.isspace()]


def _word_spans(text: str) -> List[Span]:
    # jieba.tokenize yields (word, start, end) covering the whole text
    return [(start, end) for _, start, end in jieba.tokenize(text)]


def _trim(text: str, spans: Iterable[Span]) -> List[Span]:
    """Strip surrounding whitespace from each span and drop empty ones."""
    trimmed = []
    for start, end in spans:
        while start < end and text[start].isspace():
            start += 1
        while end > start and text[end - 1].isspace():
            end -= 1
        if start < end:
            trimmed.append((start, end))
    return trimmed


class TextSegmenter:
    """Splits lesson content into ordered segments.

    Strategies:
    - sentence: after 。！？；!?; and at newlines
    - phrase: sentence delimiters plus ，、：,:
    - character: one segment per non-whitespace character
    - word: jieba word segmentation
    """

    stage_name = "segmentation"

    def spans(self, text: str, strategy: SegmentationStrategy) -> List[Span]:
        if strategy == SegmentationStrategy.SENTENCE:
            raw = _split_after(text, SENTENCE_DELIMITERS)
        elif strategy == SegmentationStrategy.PHRASE:
            raw = _split_after(text, PHRASE_DELIMITERS)
        elif strategy == SegmentationStrategy.CHARACTER:
            raw = _character_spans(text)
        elif strategy == SegmentationStrategy.WORD:
            raw = _word_spans(text)
        else:
            raise ValueError(f"Unknown segmentation strategy: {strategy}")
        return _trim(text, raw)

    def segment(
        self,
        lesson: Lesson,
        strategy: SegmentationStrategy = SegmentationStrategy.SENTENCE,
        segment_text: bool = True,
    ) -> SegmentedText:
        """Segment the lesson's content.

        Args:
            lesson: Lesson to segment
            strategy: Segmentation strategy
            segment_text: When False the whole content becomes one segment

        Returns:
            SegmentedText with segments in reading order
        """
        content = lesson.content
        with pipeline_stage_logger(
            self.stage_name, lesson_id=lesson.id, strategy=strategy.value
        ) as log:
            if segment_text:
                spans = self.spans(content, strategy)
            else:
                spans = [(0, len(content))]

            segments = [
                TextSegment(
                    id=f"{lesson.id}-seg-{index}",
                    text=content[start:end],
                    start_index=start,
                    end_index=end,
                )
                for index, (start, end) in enumerate(spans)
            ]
            log.debug(f"Split lesson {lesson.id} into {len(segments)} segments")

        return SegmentedText(segments=segments, full_text=content, strategy=strategy)
