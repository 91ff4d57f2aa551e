"""
Shared utilities for the lesson processing pipeline.

- character_utils.py: CJK character detection and counting
- file_io.py: JSON reading and atomic writing (optionally gzip-compressed)
- logging_config.py: Structured JSON logging and the pipeline stage logger
- romanization.py: Pinyin generation with pypinyin
"""

__all__ = [
    "character_utils",
    "file_io",
    "logging_config",
    "romanization",
]
