"""Lesson manifest parsing shared by local and remote sources.

Accepted manifest shapes::

    [ <entry>, ... ]
    {"lessons": [ <entry>, ... ]}
    {"categories": [{"id": "greetings", "lessons": [ <entry>, ... ]}, ...]}

An entry is either an inline lesson document or a reference
``{"path": "lessons/greetings.json"}`` / ``{"url": "https://..."}``
(optionally with ``version`` or ``updatedAt`` for cache keying). Lessons
listed under a category get ``metadata.category`` back-filled.
"""

import copy
from typing import Any, List, Optional

from pydantic import BaseModel


class ManifestEntry(BaseModel):
    """One lesson listed in a manifest."""

    document: Any = None
    path: Optional[str] = None
    url: Optional[str] = None
    version: Optional[str] = None
    category: Optional[str] = None

    @property
    def is_reference(self) -> bool:
        return self.path is not None or self.url is not None

    @property
    def reference(self) -> str:
        return self.url or self.path or ""


class ManifestError(ValueError):
    """Raised when a manifest has none of the accepted shapes."""


def _entry(raw: Any, category: Optional[str]) -> ManifestEntry:
    if isinstance(raw, dict) and ("path" in raw or "url" in raw) and "content" not in raw:
        version = raw.get("version") or raw.get("updatedAt")
        return ManifestEntry(
            path=raw.get("path"),
            url=raw.get("url"),
            version=str(version) if version is not None else None,
            category=category,
        )
    return ManifestEntry(document=raw, category=category)


def parse_manifest(manifest: Any) -> List[ManifestEntry]:
    """Flatten a manifest into its lesson entries.

    Raises:
        ManifestError: If the manifest shape is not recognized
    """
    if isinstance(manifest, list):
        return [_entry(raw, None) for raw in manifest]

    if isinstance(manifest, dict):
        if isinstance(manifest.get("lessons"), list):
            return [_entry(raw, None) for raw in manifest["lessons"]]

        if isinstance(manifest.get("categories"), list):
            entries = []
            for category in manifest["categories"]:
                if not isinstance(category, dict) or not isinstance(category.get("lessons"), list):
                    raise ManifestError("Each manifest category needs a 'lessons' list")
                category_id = category.get("id")
                entries.extend(_entry(raw, category_id) for raw in category["lessons"])
            return entries

    raise ManifestError(
        "Manifest must be a list of lessons or an object with 'lessons' or 'categories'"
    )


def manifest_version(manifest: Any) -> Optional[str]:
    if isinstance(manifest, dict) and manifest.get("version") is not None:
        return str(manifest["version"])
    return None


def with_category(document: Any, category: Optional[str]) -> Any:
    """Return a copy of ``document`` with metadata.category back-filled."""
    if category is None or not isinstance(document, dict):
        return document
    metadata = document.get("metadata")
    if not isinstance(metadata, dict) or metadata.get("category"):
        return document
    document = copy.deepcopy(document)
    document["metadata"]["category"] = category
    return document
