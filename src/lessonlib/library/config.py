"""Loading library source definitions from a JSON sources file.

File format::

    {
      "sources": [
        {"id": "core", "name": "Core Lessons", "type": "local", "priority": 10,
         "config": {"manifestPath": "lessons/manifest.json"}},
        {"id": "community", "name": "Community", "type": "remote", "priority": 5,
         "config": {"url": "https://example.org/manifest.json", "timeout": 10}}
      ]
    }

Relative ``manifestPath`` values are resolved against the sources file.
"""

from pathlib import Path
from typing import List, Union

from loguru import logger

from lessonlib.models import LibrarySource, SourceType
from pipeline.utils.file_io import read_json


def parse_sources(data: object, base_dir: Union[str, Path, None] = None) -> List[LibrarySource]:
    """Build LibrarySource objects from a decoded sources document.

    Raises:
        ValueError: If the document is malformed or source ids repeat
    """
    if not isinstance(data, dict) or not isinstance(data.get("sources"), list):
        raise ValueError('Sources file must be an object with a "sources" list')

    sources = [LibrarySource.model_validate(item) for item in data["sources"]]

    seen = set()
    for source in sources:
        if source.id in seen:
            raise ValueError(f"Duplicate library source id: {source.id}")
        seen.add(source.id)

    if base_dir is None:
        return sources

    resolved = []
    for source in sources:
        manifest_path = source.config.manifest_path
        if source.type == SourceType.LOCAL and manifest_path and not Path(manifest_path).is_absolute():
            config = source.config.model_copy(
                update={"manifest_path": str(Path(base_dir) / manifest_path)}
            )
            source = source.model_copy(update={"config": config})
        resolved.append(source)
    return resolved


def load_sources_file(path: Union[str, Path]) -> List[LibrarySource]:
    """Read and parse a sources file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid JSON or is malformed
    """
    path = Path(path)
    sources = parse_sources(read_json(path), base_dir=path.parent)
    logger.info(f"Loaded {len(sources)} library sources from {path}")
    return sources
