"""Shared fixtures: lesson documents and local library sources."""

import copy
import json
from pathlib import Path

import pytest

from lessonlib.models import CacheConfig, LibrarySource, SourceConfig, SourceType
from pipeline.validators.schema import Lesson

GREETINGS_DOC = {
    "id": "greetings",
    "title": "Basic Greetings",
    "description": "Learn how to greet people and introduce yourself.",
    "content": "你好！我叫李明。你叫什么名字？",
    "metadata": {
        "difficulty": "beginner",
        "tags": ["greetings", "introductions"],
        "characterCount": 12,
        "source": "Integrated Chinese",
        "book": "Level 1 Part 1",
        "vocabulary": [
            {"word": "你好", "definition": "hello"},
            {"word": "名字", "definition": "name"},
        ],
        "grammarPoints": ["叫 for names"],
        "culturalNotes": [],
        "estimatedTime": 10,
        "createdAt": "2024-01-01T00:00:00.000Z",
        "updatedAt": "2024-01-01T00:00:00.000Z",
    },
}


def make_lesson_doc(lesson_id: str = "greetings", **overrides) -> dict:
    """Return a valid lesson document; ``metadata`` overrides are merged."""
    doc = copy.deepcopy(GREETINGS_DOC)
    doc["id"] = lesson_id
    metadata_overrides = overrides.pop("metadata", {})
    doc.update(overrides)
    doc["metadata"].update(metadata_overrides)
    return doc


def make_lesson(lesson_id: str = "greetings", **overrides) -> Lesson:
    return Lesson.model_validate(make_lesson_doc(lesson_id, **overrides))


def write_local_source(
    directory: Path,
    source_id: str,
    documents: list,
    priority: int = 0,
    enabled: bool = True,
) -> LibrarySource:
    """Write a ``{"lessons": [...]}`` manifest and return its LibrarySource."""
    directory.mkdir(parents=True, exist_ok=True)
    manifest_path = directory / f"{source_id}-manifest.json"
    manifest_path.write_text(
        json.dumps({"lessons": documents}, ensure_ascii=False), encoding="utf-8"
    )
    return LibrarySource(
        id=source_id,
        name=source_id.title(),
        type=SourceType.LOCAL,
        enabled=enabled,
        priority=priority,
        config=SourceConfig(manifest_path=str(manifest_path)),
    )


def remote_source(source_id: str, url: str, priority: int = 0, timeout=None) -> LibrarySource:
    return LibrarySource(
        id=source_id,
        name=source_id.title(),
        type=SourceType.REMOTE,
        priority=priority,
        config=SourceConfig(url=url, timeout=timeout),
    )


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def greetings_doc():
    return make_lesson_doc()


@pytest.fixture
def greetings_lesson():
    return make_lesson()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_cache_config(tmp_path):
    """In-memory cache config with no background thread."""
    return CacheConfig(
        max_size=10,
        default_ttl=60,
        cleanup_interval=0,
        persist_to_disk=False,
        cache_dir=str(tmp_path / "cache"),
    )
