"""Segmentation and segment enrichment stages (pinyin, vocabulary)."""

from pipeline.enrichers.pinyin import PinyinEnricher
from pipeline.enrichers.segmentation import TextSegmenter
from pipeline.enrichers.vocabulary import VocabularyEnricher

__all__ = ["PinyinEnricher", "TextSegmenter", "VocabularyEnricher"]
