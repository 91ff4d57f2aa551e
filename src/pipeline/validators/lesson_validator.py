"""Lesson document validation, cleaning and legacy migration.

Every lesson entering the library passes through ``SchemaValidator.accept``:
legacy fields are back-filled, the document is validated against the
``Lesson`` model (reporting every violation, not just the first), and the
deprecated vocabulary fields are stripped.
"""

import copy
import logging
from collections.abc import Mapping
from typing import Any, List, Optional, Tuple, Union

from pydantic import ValidationError

from pipeline.utils.character_utils import count_chinese_characters
from pipeline.validators.schema import Lesson, ValidationIssue, ValidationResult

logger = logging.getLogger(__name__)

DEPRECATED_VOCABULARY_FIELDS = ("pinyin", "partOfSpeech")
CHARACTER_COUNT_TOLERANCE = 5
UNKNOWN_SOURCE = "Unknown Source"


class LessonValidationError(ValueError):
    """Raised when a lesson document cannot be turned into a valid Lesson."""

    def __init__(self, result: ValidationResult, lesson_id: Optional[str] = None):
        self.result = result
        self.lesson_id = lesson_id
        details = "; ".join(result.error_messages) or "invalid lesson"
        prefix = f"Lesson '{lesson_id}' is invalid" if lesson_id else "Lesson is invalid"
        super().__init__(f"{prefix}: {details}")


def format_error_path(loc: Tuple[Union[str, int], ...]) -> str:
    """Render a pydantic error location as a dotted/bracket path.

    Example:
        >>> format_error_path(("metadata", "vocabulary", 0, "word"))
        'metadata.vocabulary[0].word'
    """
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif path:
            path += f".{part}"
        else:
            path = str(part)
    return path or "lesson"


class SchemaValidator:
    """Validates lesson documents and migrates legacy ones."""

    def validate(self, document: Any) -> ValidationResult:
        """Validate a lesson document.

        Args:
            document: Parsed JSON document (camelCase keys)

        Returns:
            ValidationResult with every error found plus advisory warnings
        """
        if not isinstance(document, Mapping):
            return ValidationResult(
                valid=False,
                errors=[
                    ValidationIssue(
                        field="lesson",
                        message="Lesson must be an object",
                        value=document,
                    )
                ],
            )

        errors: List[ValidationIssue] = []
        try:
            Lesson.model_validate(document)
        except ValidationError as e:
            for error in e.errors():
                errors.append(
                    ValidationIssue(
                        field=format_error_path(error["loc"]),
                        message=error["msg"],
                        value=None if error["type"] == "missing" else error.get("input"),
                    )
                )

        warnings = self._deprecated_field_warnings(document)
        warnings.extend(self._character_count_warnings(document))

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def clean(
        self,
        lesson: Union[Lesson, Mapping],
        warnings: Optional[List[ValidationIssue]] = None,
    ) -> Lesson:
        """Return a new Lesson with deprecated vocabulary fields removed.

        The input is never modified. Each stripped field is logged and, when
        ``warnings`` is given, appended to it.

        Raises:
            LessonValidationError: If the document is not a valid lesson
        """
        if isinstance(lesson, Lesson):
            return lesson.model_copy()

        if not isinstance(lesson, Mapping):
            raise LessonValidationError(self.validate(lesson))

        stripped = self._deprecated_field_warnings(lesson)
        for issue in stripped:
            logger.info(
                f"Removing deprecated field {issue.field} from lesson {lesson.get('id')}"
            )
        if warnings is not None:
            warnings.extend(stripped)

        document = copy.deepcopy(dict(lesson))
        metadata = document.get("metadata")
        if isinstance(metadata, dict) and isinstance(metadata.get("vocabulary"), list):
            metadata["vocabulary"] = [
                {k: v for k, v in entry.items() if k not in DEPRECATED_VOCABULARY_FIELDS}
                if isinstance(entry, Mapping)
                else entry
                for entry in metadata["vocabulary"]
            ]

        try:
            return Lesson.model_validate(document)
        except ValidationError:
            raise LessonValidationError(
                self.validate(document), lesson_id=document.get("id")
            ) from None

    def migrate_legacy(self, document: Union[Lesson, Mapping]) -> Lesson:
        """Back-fill fields missing from older lesson documents, then clean.

        Raises:
            LessonValidationError: If the document is still invalid afterwards
        """
        if isinstance(document, Lesson):
            document = document.to_document()
        return self.clean(self.backfill(document))

    def accept(self, document: Any) -> Tuple[Optional[Lesson], ValidationResult]:
        """Back-fill, validate and clean a document in one step.

        Returns:
            (lesson, result); lesson is None when the result is invalid
        """
        if not isinstance(document, Mapping):
            return None, self.validate(document)

        migrated = self.backfill(document)
        result = self.validate(migrated)
        if not result.valid:
            logger.warning(
                f"Rejected lesson {migrated.get('id')!r}: {'; '.join(result.error_messages)}"
            )
            return None, result

        for issue in result.warnings:
            logger.warning(f"Lesson {migrated.get('id')}: {issue.field}: {issue.message}")

        return self.clean(migrated), result

    def backfill(self, document: Mapping) -> dict:
        """Return a copy of ``document`` with legacy defaults filled in."""
        migrated = copy.deepcopy(dict(document))
        legacy_vocabulary = migrated.pop("vocabulary", None)

        metadata = migrated.setdefault("metadata", {})
        if not isinstance(metadata, dict):
            return migrated

        if not metadata.get("source"):
            metadata["source"] = UNKNOWN_SOURCE
        metadata.setdefault("book", None)

        if "vocabulary" not in metadata:
            metadata["vocabulary"] = (
                legacy_vocabulary if isinstance(legacy_vocabulary, list) else []
            )
        if isinstance(metadata["vocabulary"], list):
            metadata["vocabulary"] = [
                self._migrate_vocabulary_entry(entry) for entry in metadata["vocabulary"]
            ]

        metadata.setdefault("grammarPoints", [])
        metadata.setdefault("culturalNotes", [])

        content = migrated.get("content")
        if "characterCount" not in metadata and isinstance(content, str):
            metadata["characterCount"] = count_chinese_characters(content)

        return migrated

    @staticmethod
    def _migrate_vocabulary_entry(entry: Any) -> Any:
        if not isinstance(entry, dict):
            return entry
        if "definition" not in entry and "translation" in entry:
            entry = dict(entry)
            entry["definition"] = entry.pop("translation")
        return entry

    @staticmethod
    def _deprecated_field_warnings(document: Mapping) -> List[ValidationIssue]:
        metadata = document.get("metadata")
        if not isinstance(metadata, Mapping):
            return []
        vocabulary = metadata.get("vocabulary")
        if not isinstance(vocabulary, list):
            return []

        warnings = []
        for index, entry in enumerate(vocabulary):
            if not isinstance(entry, Mapping):
                continue
            for field_name in DEPRECATED_VOCABULARY_FIELDS:
                if field_name in entry:
                    warnings.append(
                        ValidationIssue(
                            field=f"metadata.vocabulary[{index}].{field_name}",
                            message=(
                                f"Field '{field_name}' is deprecated and will be "
                                "removed; it is generated at runtime"
                            ),
                            value=entry[field_name],
                        )
                    )
        return warnings

    @staticmethod
    def _character_count_warnings(document: Mapping) -> List[ValidationIssue]:
        content = document.get("content")
        metadata = document.get("metadata")
        if not isinstance(content, str) or not isinstance(metadata, Mapping):
            return []

        declared = metadata.get("characterCount")
        if isinstance(declared, bool) or not isinstance(declared, (int, float)):
            return []

        actual = count_chinese_characters(content)
        if abs(actual - declared) <= CHARACTER_COUNT_TOLERANCE:
            return []

        return [
            ValidationIssue(
                field="metadata.characterCount",
                message=(
                    f"Character count mismatch: declared {declared}, "
                    f"found {actual} Chinese characters"
                ),
                value=declared,
            )
        ]
