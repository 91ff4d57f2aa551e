"""Unit tests for sources file loading."""

import json
from pathlib import Path

import pytest

from lessonlib.library.config import load_sources_file, parse_sources
from lessonlib.models import SourceType


def write_sources(tmp_path, data):
    path = tmp_path / "library_sources.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestSourcesFile:
    def test_load_sources(self, tmp_path):
        path = write_sources(
            tmp_path,
            {
                "sources": [
                    {
                        "id": "core",
                        "name": "Core Lessons",
                        "type": "local",
                        "priority": 10,
                        "config": {"manifestPath": "lessons/manifest.json"},
                    },
                    {
                        "id": "community",
                        "name": "Community",
                        "type": "remote",
                        "config": {"url": "https://example.org/manifest.json", "timeout": 5},
                    },
                ]
            },
        )

        core, community = load_sources_file(path)

        assert core.type == SourceType.LOCAL
        assert core.priority == 10
        assert Path(core.config.manifest_path) == tmp_path / "lessons" / "manifest.json"
        assert community.type == SourceType.REMOTE
        assert community.enabled is True
        assert community.config.timeout == 5

    def test_absolute_manifest_path_kept(self, tmp_path):
        manifest = str(tmp_path / "elsewhere.json")
        sources = parse_sources(
            {"sources": [{"id": "a", "name": "A", "type": "local", "config": {"manifestPath": manifest}}]},
            base_dir=tmp_path / "other",
        )
        assert sources[0].config.manifest_path == manifest

    @pytest.mark.parametrize("data", [[], {"sources": "nope"}, {"libraries": []}])
    def test_malformed_file(self, data):
        with pytest.raises(ValueError):
            parse_sources(data)

    def test_invalid_source_type(self):
        with pytest.raises(ValueError):
            parse_sources({"sources": [{"id": "a", "name": "A", "type": "ftp"}]})

    def test_duplicate_ids(self):
        source = {"id": "a", "name": "A", "type": "remote", "config": {"url": "https://x"}}
        with pytest.raises(ValueError, match="Duplicate"):
            parse_sources({"sources": [source, source]})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_sources_file(tmp_path / "missing.json")
