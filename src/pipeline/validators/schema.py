"""Pydantic models for lesson documents and prepared-lesson artifacts.

Lesson documents travel as camelCase JSON; Python attributes are snake_case.
Every model validates by alias or by field name and serializes with
``model_dump(by_alias=True, mode="json")``.
"""

import hashlib
import json
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, BeforeValidator, Field, StrictStr, field_validator
from pydantic.alias_generators import to_camel

LESSON_MODEL_CONFIG = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "frozen": True,
    "extra": "ignore",
}

LESSON_ID_PATTERN = r"^[A-Za-z0-9_-]+$"
TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
CONTENT_MAX_LENGTH = 10_000
WORD_MAX_LENGTH = 50
DEFINITION_MAX_LENGTH = 200
ESTIMATED_TIME_MIN = 1
ESTIMATED_TIME_MAX = 300


def _require_number(value: Any) -> Any:
    # bool is an int subclass; JSON true/false is not a count
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a number")
    return value


Number = Annotated[float, BeforeValidator(_require_number)]


def format_timestamp(value: datetime) -> str:
    """Format a datetime in the canonical lesson form ``YYYY-MM-DDTHH:MM:SS.sssZ``.

    Naive datetimes are taken as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def utc_now_timestamp() -> str:
    return format_timestamp(datetime.now(UTC))


# ============================================================================
# Enums
# ============================================================================


class Difficulty(str, Enum):
    """Lesson difficulty level."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class SegmentationStrategy(str, Enum):
    """How lesson content is split into segments."""

    SENTENCE = "sentence"
    PHRASE = "phrase"
    CHARACTER = "character"
    WORD = "word"


class QuizQuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    FILL_IN_BLANK = "fill_in_blank"


# ============================================================================
# Lesson documents
# ============================================================================


class VocabularyEntry(BaseModel):
    """A vocabulary word with its English definition.

    Pinyin and part of speech are derived at use time and never stored.
    """

    word: str = Field(..., min_length=1, max_length=WORD_MAX_LENGTH, strict=True)
    definition: str = Field(
        ..., min_length=1, max_length=DEFINITION_MAX_LENGTH, strict=True
    )

    model_config = LESSON_MODEL_CONFIG


class LessonMetadata(BaseModel):
    """Lesson metadata block.

    Validation Rules:
    - tags is a non-empty list of strings
    - characterCount is a positive number (booleans rejected)
    - source is a non-blank string; book is a string or null but must be present
    - estimatedTime is a number of minutes in [1, 300]
    - createdAt/updatedAt round-trip exactly through canonical ISO formatting
    """

    difficulty: Difficulty
    tags: List[StrictStr] = Field(..., min_length=1)
    character_count: Number = Field(..., gt=0)
    source: str = Field(..., min_length=1, strict=True)
    book: Optional[StrictStr]
    vocabulary: List[VocabularyEntry]
    grammar_points: List[str] = Field(default_factory=list)
    cultural_notes: List[str] = Field(default_factory=list)
    estimated_time: Number = Field(..., ge=ESTIMATED_TIME_MIN, le=ESTIMATED_TIME_MAX)
    created_at: str = Field(..., strict=True)
    updated_at: str = Field(..., strict=True)
    category: Optional[str] = None

    model_config = LESSON_MODEL_CONFIG

    @field_validator("source")
    @classmethod
    def validate_source_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("source must not be blank")
        return v

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_canonical_timestamp(cls, v: str) -> str:
        try:
            parsed = datetime.fromisoformat(v)
        except ValueError:
            raise ValueError("must be a valid ISO 8601 date string")
        if parsed.tzinfo is None or format_timestamp(parsed) != v:
            raise ValueError(
                "must be a canonical ISO 8601 date string (YYYY-MM-DDTHH:MM:SS.sssZ)"
            )
        return v

    @property
    def updated_datetime(self) -> datetime:
        return datetime.fromisoformat(self.updated_at)


class Lesson(BaseModel):
    """A validated lesson document.

    Immutable once validated; a newer version replaces it by ``id``.
    ``library_id`` is assigned by the source registry.
    """

    id: str = Field(..., min_length=1, pattern=LESSON_ID_PATTERN, strict=True)
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH, strict=True)
    description: str = Field(
        ..., min_length=1, max_length=DESCRIPTION_MAX_LENGTH, strict=True
    )
    content: str = Field(..., min_length=1, max_length=CONTENT_MAX_LENGTH, strict=True)
    metadata: LessonMetadata
    library_id: Optional[str] = None

    model_config = LESSON_MODEL_CONFIG

    def to_document(self) -> dict:
        """Serialize to the camelCase wire form."""
        return self.model_dump(by_alias=True, mode="json")

    @property
    def fingerprint(self) -> str:
        """Short content hash; changes whenever any lesson field changes."""
        payload = self.model_dump(mode="json", include=set(Lesson.model_fields))
        digest = hashlib.sha256(
            json.dumps(payload, sort_keys=True, ensure_ascii=False).encode("utf-8")
        ).hexdigest()
        return digest[:12]


# ============================================================================
# Validation results
# ============================================================================


class ValidationIssue(BaseModel):
    """One validation error or warning, addressed by a dotted/bracket path."""

    field: str
    message: str
    value: Any = None

    model_config = {"frozen": True}


class ValidationResult(BaseModel):
    """Outcome of validating one document. Fresh per call."""

    valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)

    @property
    def error_messages(self) -> List[str]:
        return [f"{issue.field}: {issue.message}" for issue in self.errors]


# ============================================================================
# Prepared lesson artifacts
# ============================================================================


class VocabularyHighlight(BaseModel):
    """A vocabulary occurrence; offsets index into the full lesson content."""

    word: str
    definition: str
    start_index: int = Field(..., ge=0)
    end_index: int = Field(..., ge=0)

    model_config = LESSON_MODEL_CONFIG


class TextSegment(BaseModel):
    id: str
    text: str
    start_index: int = Field(..., ge=0)
    end_index: int = Field(..., ge=0)
    pinyin: Optional[str] = None
    vocabulary: List[VocabularyHighlight] = Field(default_factory=list)

    model_config = LESSON_MODEL_CONFIG


class SegmentedText(BaseModel):
    segments: List[TextSegment]
    full_text: str
    strategy: SegmentationStrategy

    model_config = LESSON_MODEL_CONFIG


class Flashcard(BaseModel):
    """Study card generated from one vocabulary entry."""

    id: str
    lesson_id: str
    front: str
    back: str
    pinyin: Optional[str] = None
    reversible: bool = True
    source_word: str

    model_config = LESSON_MODEL_CONFIG

    def reversed(self) -> "Flashcard":
        """Return the back-to-front version of this card."""
        return self.model_copy(
            update={"id": f"{self.id}-reversed", "front": self.back, "back": self.front}
        )


class QuizQuestion(BaseModel):
    id: str
    lesson_id: str
    type: QuizQuestionType
    question: str
    options: List[str] = Field(default_factory=list)
    correct_answer: str
    explanation: str = ""
    source_word: str

    model_config = LESSON_MODEL_CONFIG


class LessonLoadOptions(BaseModel):
    """Options controlling which artifacts the processing pipeline builds."""

    include_flashcards: bool = True
    include_quizzes: bool = True
    include_pinyin: bool = True
    segment_text: bool = True
    cache_result: bool = True
    segmentation_strategy: SegmentationStrategy = SegmentationStrategy.SENTENCE

    model_config = LESSON_MODEL_CONFIG

    @property
    def options_hash(self) -> str:
        """Stable hash of every option that changes the prepared output."""
        payload = self.model_dump(mode="json", exclude={"cache_result"})
        digest = hashlib.sha256(
            json.dumps(payload, sort_keys=True).encode("utf-8")
        ).hexdigest()
        return digest[:12]


class PreparedLesson(Lesson):
    """A lesson with all study artifacts assembled."""

    segmented_content: SegmentedText
    pinyin_content: str = ""
    flashcards: List[Flashcard] = Field(default_factory=list)
    quiz_questions: List[QuizQuestion] = Field(default_factory=list)
    options_hash: str
    prepared_at: str = Field(default_factory=utc_now_timestamp)
