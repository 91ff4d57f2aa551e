"""Pinyin annotation stage."""

from pipeline.enrichers.base import BaseEnricher
from pipeline.utils.romanization import get_chinese_pinyin
from pipeline.validators.schema import Lesson, SegmentedText


class PinyinEnricher(BaseEnricher):
    """Adds tone-marked pinyin to every segment."""

    stage_name = "pinyin"

    def __init__(self, tone_marks: bool = True):
        self.tone_marks = tone_marks

    def enrich(self, segmented: SegmentedText, lesson: Lesson) -> SegmentedText:
        segments = [
            segment.model_copy(
                update={"pinyin": get_chinese_pinyin(segment.text, self.tone_marks)}
            )
            for segment in segmented.segments
        ]
        return segmented.model_copy(update={"segments": segments})

    @staticmethod
    def join(segmented: SegmentedText) -> str:
        """Join segment pinyin into the lesson-level pinyin string."""
        return " ".join(
            segment.pinyin for segment in segmented.segments if segment.pinyin
        )
