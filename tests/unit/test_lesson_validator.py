"""Unit tests for SchemaValidator."""

import copy

import pytest

from conftest import make_lesson_doc
from pipeline.validators.lesson_validator import (
    LessonValidationError,
    SchemaValidator,
    format_error_path,
)
from pipeline.validators.schema import Lesson


@pytest.fixture
def validator():
    return SchemaValidator()


class TestValidate:
    """Test document validation."""

    def test_valid_document(self, validator):
        result = validator.validate(make_lesson_doc())
        assert result.valid
        assert result.errors == []
        assert result.warnings == []

    @pytest.mark.parametrize("document", [None, "lesson", 42, ["a"]])
    def test_non_object_document(self, validator, document):
        result = validator.validate(document)
        assert not result.valid
        assert len(result.errors) == 1
        assert result.errors[0].field == "lesson"

    def test_reports_every_error(self, validator):
        doc = make_lesson_doc(
            "bad id",
            title="",
            metadata={"difficulty": "expert", "estimatedTime": 0},
        )
        result = validator.validate(doc)
        fields = {issue.field for issue in result.errors}
        assert not result.valid
        assert {"id", "title", "metadata.difficulty", "metadata.estimatedTime"} <= fields

    def test_vocabulary_error_path(self, validator):
        doc = make_lesson_doc(
            metadata={"vocabulary": [{"word": "", "definition": "hello"}]}
        )
        result = validator.validate(doc)
        assert [issue.field for issue in result.errors] == ["metadata.vocabulary[0].word"]
        assert result.errors[0].value == ""

    def test_missing_field_value_is_none(self, validator):
        doc = make_lesson_doc()
        del doc["title"]
        result = validator.validate(doc)
        assert result.errors[0].field == "title"
        assert result.errors[0].value is None

    def test_deprecated_vocabulary_fields_warn(self, validator):
        doc = make_lesson_doc(
            metadata={
                "vocabulary": [
                    {"word": "你好", "definition": "hello", "pinyin": "nǐhǎo", "partOfSpeech": "interjection"},
                    {"word": "名字", "definition": "name", "pinyin": "míngzi"},
                ]
            }
        )
        result = validator.validate(doc)
        assert result.valid
        assert [w.field for w in result.warnings] == [
            "metadata.vocabulary[0].pinyin",
            "metadata.vocabulary[0].partOfSpeech",
            "metadata.vocabulary[1].pinyin",
        ]

    def test_character_count_mismatch_warns(self, validator):
        result = validator.validate(make_lesson_doc(metadata={"characterCount": 30}))
        assert result.valid
        assert [w.field for w in result.warnings] == ["metadata.characterCount"]

    def test_character_count_within_tolerance(self, validator):
        result = validator.validate(make_lesson_doc(metadata={"characterCount": 17}))
        assert result.warnings == []

    def test_results_are_fresh_per_call(self, validator):
        first = validator.validate("bad")
        second = validator.validate("bad")
        assert first is not second
        assert first.errors is not second.errors


class TestFormatErrorPath:
    def test_nested_path(self):
        assert format_error_path(("metadata", "vocabulary", 2, "definition")) == (
            "metadata.vocabulary[2].definition"
        )

    def test_empty_path(self):
        assert format_error_path(()) == "lesson"


class TestClean:
    """Test clean() purity and deprecated field stripping."""

    def test_strips_deprecated_fields(self, validator):
        doc = make_lesson_doc(
            metadata={"vocabulary": [{"word": "你好", "definition": "hello", "pinyin": "nǐhǎo"}]}
        )
        original = copy.deepcopy(doc)
        warnings = []

        lesson = validator.clean(doc, warnings)

        assert isinstance(lesson, Lesson)
        assert "pinyin" not in lesson.to_document()["metadata"]["vocabulary"][0]
        assert [w.field for w in warnings] == ["metadata.vocabulary[0].pinyin"]
        assert doc == original

    def test_clean_lesson_returns_new_object(self, validator, greetings_lesson):
        cleaned = validator.clean(greetings_lesson)
        assert cleaned == greetings_lesson
        assert cleaned is not greetings_lesson

    def test_clean_invalid_document_raises(self, validator):
        with pytest.raises(LessonValidationError) as exc_info:
            validator.clean(make_lesson_doc(title=""))
        assert not exc_info.value.result.valid
        assert isinstance(exc_info.value, ValueError)


class TestMigrateLegacy:
    """Test back-filling of legacy lesson documents."""

    def legacy_doc(self):
        doc = make_lesson_doc()
        metadata = doc["metadata"]
        for key in ("source", "book", "vocabulary", "grammarPoints", "culturalNotes", "characterCount"):
            del metadata[key]
        doc["vocabulary"] = [{"word": "你好", "translation": "hello", "pinyin": "nǐhǎo"}]
        return doc

    def test_backfills_missing_fields(self, validator):
        doc = self.legacy_doc()
        original = copy.deepcopy(doc)

        lesson = validator.migrate_legacy(doc)

        assert lesson.metadata.source == "Unknown Source"
        assert lesson.metadata.book is None
        assert lesson.metadata.character_count == 12
        assert lesson.metadata.grammar_points == []
        assert lesson.metadata.cultural_notes == []
        assert [(v.word, v.definition) for v in lesson.metadata.vocabulary] == [("你好", "hello")]
        assert doc == original

    @pytest.mark.parametrize("source", [None, ""])
    def test_blank_source_is_backfilled(self, validator, source):
        doc = self.legacy_doc()
        doc["metadata"]["source"] = source
        assert validator.migrate_legacy(doc).metadata.source == "Unknown Source"

    def test_missing_vocabulary_defaults_to_empty(self, validator):
        doc = self.legacy_doc()
        del doc["vocabulary"]
        assert validator.migrate_legacy(doc).metadata.vocabulary == []

    def test_migrating_a_clean_lesson_is_a_no_op(self, validator):
        doc = make_lesson_doc(
            metadata={"vocabulary": [{"word": "你好", "definition": "hello", "pinyin": "nǐhǎo"}]}
        )
        cleaned = validator.clean(doc)

        assert validator.migrate_legacy(cleaned) == cleaned
        assert validator.migrate_legacy(validator.migrate_legacy(cleaned)) == cleaned

    def test_still_invalid_raises(self, validator):
        doc = self.legacy_doc()
        doc["metadata"]["difficulty"] = "impossible"
        with pytest.raises(LessonValidationError):
            validator.migrate_legacy(doc)


class TestAccept:
    def test_accepts_valid_document(self, validator):
        lesson, result = validator.accept(make_lesson_doc())
        assert result.valid
        assert lesson.id == "greetings"

    def test_rejects_invalid_document(self, validator):
        lesson, result = validator.accept(make_lesson_doc(metadata={"difficulty": "expert"}))
        assert lesson is None
        assert not result.valid

    def test_rejects_non_object(self, validator):
        lesson, result = validator.accept([1, 2, 3])
        assert lesson is None
        assert result.errors[0].field == "lesson"

    def test_accepts_legacy_document(self, validator):
        doc = make_lesson_doc()
        del doc["metadata"]["source"]
        lesson, result = validator.accept(doc)
        assert result.valid
        assert lesson.metadata.source == "Unknown Source"
