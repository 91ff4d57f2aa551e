"""Base enricher abstract class for segment enrichment stages.

Enrichers take the segmented lesson text and return a new ``SegmentedText``
with one more layer of annotation (pinyin, vocabulary highlights). They are
pure: the input segments are never modified.
"""

import logging
from abc import ABC, abstractmethod

from pipeline.utils.logging_config import pipeline_stage_logger
from pipeline.validators.schema import Lesson, SegmentedText

logger = logging.getLogger(__name__)


class BaseEnricher(ABC):
    """Abstract base class for segment enrichers.

    Subclasses must implement:
    - stage_name (property): Name used in stage logs
    - enrich(): Return annotated segments

    Provides:
    - run(): enrich() wrapped in the pipeline stage logger
    """

    @property
    @abstractmethod
    def stage_name(self) -> str:
        pass

    @abstractmethod
    def enrich(self, segmented: SegmentedText, lesson: Lesson) -> SegmentedText:
        """Annotate segments for one lesson.

        Args:
            segmented: Output of the previous stage
            lesson: The lesson being prepared

        Returns:
            New SegmentedText with this stage's annotation added
        """
        pass

    def run(self, segmented: SegmentedText, lesson: Lesson) -> SegmentedText:
        with pipeline_stage_logger(self.stage_name, lesson_id=lesson.id) as log:
            result = self.enrich(segmented, lesson)
            log.debug(
                f"{self.stage_name}: annotated {len(result.segments)} segments"
            )
            return result
