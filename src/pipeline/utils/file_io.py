"""File I/O utilities for lesson manifests, lesson documents and cache files.

JSON files may optionally be gzip-compressed (``.gz`` suffix).
"""

import gzip
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Union

logger = logging.getLogger(__name__)


def read_json(file_path: Union[str, Path]) -> Any:
    """Read a JSON (or gzip-compressed JSON) file.

    Args:
        file_path: Path to JSON file; a ``.gz`` suffix selects gzip decoding

    Returns:
        Parsed JSON value

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file contains invalid JSON
    """
    file_path = Path(file_path)
    logger.debug(f"Reading JSON from {file_path}")

    if file_path.suffix == ".gz":
        with gzip.open(file_path, "rt", encoding="utf-8") as f:
            return json.load(f)

    with open(file_path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_json(
    data: Any,
    file_path: Union[str, Path],
    indent: int = 2,
    ensure_ascii: bool = False,
) -> None:
    """Write data to a JSON file atomically.

    The payload is written to a temporary file in the target directory and
    then moved into place, so readers never observe a half-written file.
    Creates parent directories if they don't exist. A ``.gz`` suffix selects
    gzip compression.

    Args:
        data: JSON-serializable data
        file_path: Path to output file
        indent: Number of spaces for indentation (default: 2)
        ensure_ascii: If False, non-ASCII characters are preserved (default: False)
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(data, indent=indent, ensure_ascii=ensure_ascii)

    fd, tmp_name = tempfile.mkstemp(dir=file_path.parent, suffix=".tmp")
    try:
        if file_path.suffix == ".gz":
            with os.fdopen(fd, "wb") as raw, gzip.GzipFile(fileobj=raw, mode="wb") as f:
                f.write(payload.encode("utf-8"))
        else:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
        os.replace(tmp_name, file_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.debug(f"Wrote JSON to {file_path}")
