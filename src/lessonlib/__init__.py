"""
Lesson Library Service

Unified catalog over local and remote Chinese lesson sources, with a
TTL/LRU prepared-lesson cache, concurrent remote sync with per-source
failure isolation, and the facade used by UI and CLI layers.

**Key Dependencies**: pydantic, requests, loguru, python-dotenv
"""

__version__ = "0.1.0"

from lessonlib.library.library_service import LibraryService

__all__ = ["__version__", "LibraryService"]
