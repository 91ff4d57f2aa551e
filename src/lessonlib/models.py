"""Pydantic models for library sources, sync results, cache and search.

Lesson documents and prepared-lesson artifacts live in
``pipeline.validators.schema``; this module holds the library-side models.
"""

from enum import Enum
from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from constants import (
    CACHE_CLEANUP_INTERVAL,
    CACHE_COMPRESSION_ENABLED,
    CACHE_DEFAULT_TTL,
    CACHE_DIR,
    CACHE_MAX_SIZE,
    CACHE_PERSIST_TO_DISK,
)
from pipeline.validators.schema import Difficulty, Lesson

T = TypeVar("T")

CAMEL_CONFIG = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "extra": "ignore",
}

FROZEN_CAMEL_CONFIG = {**CAMEL_CONFIG, "frozen": True}


# ============================================================================
# Enums
# ============================================================================


class SourceType(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class SyncErrorType(str, Enum):
    """Why a sync (or one lesson within it) failed."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    PARSING = "parsing"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"


class SourceLoadStatus(str, Enum):
    PENDING = "pending"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


# ============================================================================
# Library sources
# ============================================================================


class SourceMetadata(BaseModel):
    """Last-known facts about a source, refreshed on every successful sync."""

    version: Optional[str] = None
    last_updated: Optional[str] = None
    total_lessons: int = 0
    categories: List[str] = Field(default_factory=list)

    model_config = CAMEL_CONFIG


class SourceConfig(BaseModel):
    """Where a source's manifest lives and how to reach it.

    Local sources set ``manifest_path``; remote sources set ``url``.
    ``timeout`` overrides the global sync deadline for this source (seconds).
    """

    manifest_path: Optional[str] = None
    url: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    metadata: SourceMetadata = Field(default_factory=SourceMetadata)
    timeout: Optional[float] = Field(default=None, gt=0)
    headers: Dict[str, str] = Field(default_factory=dict)

    model_config = CAMEL_CONFIG


class LibrarySource(BaseModel):
    """A named lesson source. Higher ``priority`` wins on lesson id conflicts."""

    id: str = Field(..., min_length=1)
    name: str
    type: SourceType
    enabled: bool = True
    priority: int = 0
    config: SourceConfig = Field(default_factory=SourceConfig)

    model_config = CAMEL_CONFIG


class SourceState(BaseModel):
    """Loading state of one source.

    ``last_loaded`` is the time of the last successful load and survives
    later failures; ``error`` holds the message of the most recent failure.
    """

    status: SourceLoadStatus = SourceLoadStatus.PENDING
    last_loaded: Optional[str] = None
    error: Optional[str] = None

    model_config = FROZEN_CAMEL_CONFIG

    @property
    def is_loading(self) -> bool:
        return self.status == SourceLoadStatus.LOADING


# ============================================================================
# Sync results
# ============================================================================


class SyncError(BaseModel):
    type: SyncErrorType
    message: str
    lesson_id: Optional[str] = None

    model_config = FROZEN_CAMEL_CONFIG


class SyncResult(BaseModel):
    """Outcome of synchronizing one remote source.

    ``duration`` is the wall-clock time in seconds spent on this source only.
    ``warnings`` lists lessons that were skipped because they failed
    validation; they do not make the sync unsuccessful.
    """

    source_id: str
    success: bool
    timestamp: str
    duration: float = 0.0
    errors: List[SyncError] = Field(default_factory=list)
    warnings: List[SyncError] = Field(default_factory=list)
    lessons_processed: int = 0
    lessons_added: int = 0
    lessons_updated: int = 0
    lessons_removed: int = 0

    model_config = FROZEN_CAMEL_CONFIG


# ============================================================================
# Cache
# ============================================================================


class CacheConfig(BaseModel):
    """Cache limits and persistence settings.

    ``default_ttl`` is in seconds, ``cleanup_interval`` in minutes (0 disables
    the background sweeper).
    """

    max_size: int = Field(default=CACHE_MAX_SIZE, ge=1)
    default_ttl: float = Field(default=CACHE_DEFAULT_TTL, gt=0, alias="defaultTTL")
    cleanup_interval: float = Field(default=CACHE_CLEANUP_INTERVAL, ge=0)
    persist_to_disk: bool = CACHE_PERSIST_TO_DISK
    compression_enabled: bool = CACHE_COMPRESSION_ENABLED
    cache_dir: str = CACHE_DIR

    model_config = FROZEN_CAMEL_CONFIG


class CacheEntry(BaseModel, Generic[T]):
    """One cached value. Stale once ``now > expires_at``."""

    key: str
    value: T
    created_at: float
    expires_at: float
    last_accessed_at: float

    model_config = {"arbitrary_types_allowed": True}

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class CacheStatus(BaseModel):
    total_items: int
    hit_rate: float
    size_bytes_estimate: int
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    oldest_item: Optional[float] = None
    newest_item: Optional[float] = None

    model_config = FROZEN_CAMEL_CONFIG


# ============================================================================
# Search
# ============================================================================


class LessonSearchFilters(BaseModel):
    """Catalog search filters: AND across fields, OR within a field.

    Empty lists and None values do not filter.
    """

    categories: List[str] = Field(default_factory=list)
    difficulties: List[Difficulty] = Field(default_factory=list)
    has_vocabulary: Optional[bool] = None
    tags: List[str] = Field(default_factory=list)
    libraries: List[str] = Field(default_factory=list)
    min_estimated_time: Optional[float] = None
    max_estimated_time: Optional[float] = None

    model_config = FROZEN_CAMEL_CONFIG

    @property
    def is_empty(self) -> bool:
        return (
            not self.categories
            and not self.difficulties
            and self.has_vocabulary is None
            and not self.tags
            and not self.libraries
            and self.min_estimated_time is None
            and self.max_estimated_time is None
        )


class PaginatedLessons(BaseModel):
    """One page of search results. ``next_page`` is None on the last page."""

    lessons: List[Lesson] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 20
    has_more: bool = False
    next_page: Optional[int] = None

    model_config = FROZEN_CAMEL_CONFIG
