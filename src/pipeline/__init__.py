"""
Lesson Processing Pipeline

This package turns validated Chinese lesson documents into study-ready
artifacts: segmented text, pinyin annotation, vocabulary highlights,
flashcards and quizzes. It also owns the lesson document schema and the
validator every loader goes through.

**Key Dependencies**: pydantic, pypinyin, jieba
"""

__version__ = "0.1.0"

from pipeline.processor import ProcessingPipeline, prepared_cache_key
from pipeline.validators.lesson_validator import LessonValidationError, SchemaValidator

__all__ = [
    "__version__",
    "LessonValidationError",
    "ProcessingPipeline",
    "SchemaValidator",
    "prepared_cache_key",
]
