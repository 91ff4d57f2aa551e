"""Concurrent synchronization of remote lesson sources.

Each remote source is synced in its own worker thread with its own deadline
(``config.timeout`` or the global ``SYNC_TIMEOUT_SECONDS``). A failing or
slow source never affects its siblings: its failure is recorded in its
``SyncResult`` and the others complete normally. A sync that misses its
deadline is reported as a timeout and its late result is never committed.

Lesson documents referenced from a manifest are fetched through a document
cache. Versioned entries are keyed by URL plus version and reused across
syncs; unversioned ones are keyed per sync round, so concurrent syncs that
share a document fetch it once while a later sync always re-fetches it.
"""

import itertools
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from loguru import logger

from constants import SYNC_TIMEOUT_SECONDS
from lessonlib.cache.cache_engine import CacheEngine, EventCallback
from lessonlib.library.manifest import (
    ManifestEntry,
    ManifestError,
    manifest_version,
    parse_manifest,
    with_category,
)
from lessonlib.library.source_registry import SourceRegistry
from lessonlib.models import (
    LibrarySource,
    SourceType,
    SyncError,
    SyncErrorType,
    SyncResult,
)
from lessonlib.utils.http_client import FetchError, HttpClient, JsonFetcher
from pipeline.validators.schema import utc_now_timestamp

DOCUMENT_CACHE_CONFIG = {"max_size": 500, "persist_to_disk": False, "cleanup_interval": 0}


def _failure(
    source_id: str, error_type: SyncErrorType, message: str, duration: float = 0.0
) -> SyncResult:
    return SyncResult(
        source_id=source_id,
        success=False,
        timestamp=utc_now_timestamp(),
        duration=duration,
        errors=[SyncError(type=error_type, message=message)],
    )


class SyncCoordinator:
    """Fetches remote manifests and commits their lessons to the registry."""

    def __init__(
        self,
        registry: SourceRegistry,
        fetcher: Optional[JsonFetcher] = None,
        document_cache: Optional[CacheEngine] = None,
        timeout: float = SYNC_TIMEOUT_SECONDS,
        on_event: Optional[EventCallback] = None,
    ):
        """Initialize the coordinator.

        Args:
            registry: Registry whose remote sources are synced
            fetcher: ``fetcher(url, timeout=..., headers=...)`` returning
                decoded JSON and raising FetchError (default: HttpClient)
            document_cache: Cache for referenced lesson documents
            timeout: Default per-source deadline in seconds
            on_event: Optional diagnostics callback receiving (event, payload)
        """
        self.registry = registry
        self.fetcher = fetcher or HttpClient().fetch_json
        self.document_cache = document_cache or CacheEngine(
            name="remote_documents", config=DOCUMENT_CACHE_CONFIG
        )
        self.timeout = timeout
        self._on_event = on_event
        self._rounds = itertools.count(1)

    def sync_remote_source(self, source_id: str) -> SyncResult:
        """Sync one remote source. Never raises."""
        source = self.registry.get_library_by_id(source_id)
        if source is None or not source.enabled or source.type != SourceType.REMOTE:
            logger.warning(f"Cannot sync {source_id}: not an enabled remote source")
            return _failure(
                source_id,
                SyncErrorType.NOT_FOUND,
                f"No enabled remote source with id {source_id}",
            )
        return self._run([source])[0]

    def sync_all_remote_sources(self) -> List[SyncResult]:
        """Sync every enabled remote source in parallel. Never raises.

        Returns:
            One result per source, in registration order
        """
        sources = [
            source
            for source in self.registry.get_sources()
            if source.type == SourceType.REMOTE and source.enabled
        ]
        if not sources:
            return []

        logger.info(f"Syncing {len(sources)} remote sources")
        results = self._run(sources)
        succeeded = sum(1 for result in results if result.success)
        logger.info(f"Remote sync finished: {succeeded}/{len(results)} succeeded")
        return results

    def deadline_for(self, source: LibrarySource) -> float:
        return source.config.timeout or self.timeout

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def _run(self, sources: List[LibrarySource]) -> List[SyncResult]:
        executor = ThreadPoolExecutor(
            max_workers=len(sources), thread_name_prefix="source-sync"
        )
        started = time.monotonic()
        round_id = next(self._rounds)
        jobs = []
        for source in sources:
            self.registry.mark_loading(source.id)
            cancel = threading.Event()
            future = executor.submit(self._sync_source, source, cancel, round_id)
            jobs.append((source, cancel, future, started + self.deadline_for(source)))

        results = []
        try:
            for source, cancel, future, deadline_at in jobs:
                remaining = max(0.0, deadline_at - time.monotonic())
                try:
                    result = future.result(timeout=remaining)
                except FutureTimeoutError:
                    cancel.set()
                    deadline = self.deadline_for(source)
                    logger.error(f"Sync of {source.id} timed out after {deadline}s")
                    result = _failure(
                        source.id,
                        SyncErrorType.TIMEOUT,
                        f"Sync timed out after {deadline}s",
                        duration=deadline,
                    )
                except Exception as e:
                    logger.exception(f"Sync of {source.id} failed unexpectedly")
                    result = _failure(
                        source.id,
                        SyncErrorType.NETWORK,
                        f"Unexpected sync failure: {e}",
                        duration=time.monotonic() - started,
                    )
                self._record_state(result)
                self._emit_result(result)
                results.append(result)
        finally:
            # Timed-out workers are abandoned, not joined
            executor.shutdown(wait=False, cancel_futures=True)
            self.document_cache.invalidate_prefix(f"round-{round_id}:")
        return results

    # ------------------------------------------------------------------
    # One source
    # ------------------------------------------------------------------

    def _sync_source(
        self, source: LibrarySource, cancel: threading.Event, round_id: int
    ) -> SyncResult:
        started = time.monotonic()
        url = source.config.url or ""
        timeout = self.deadline_for(source)
        headers = source.config.headers

        def elapsed() -> float:
            return time.monotonic() - started

        try:
            manifest = self.fetcher(url, timeout=timeout, headers=headers)
            entries = parse_manifest(manifest)
        except FetchError as e:
            logger.warning(f"Failed to fetch manifest for {source.id}: {e}")
            return _failure(source.id, SyncErrorType(e.kind), str(e), elapsed())
        except ManifestError as e:
            logger.warning(f"Invalid manifest for {source.id}: {e}")
            return _failure(source.id, SyncErrorType.PARSING, str(e), elapsed())

        lessons = []
        warnings: List[SyncError] = []
        for entry in entries:
            if cancel.is_set():
                logger.warning(f"Abandoning sync of {source.id} after deadline")
                return _failure(
                    source.id, SyncErrorType.TIMEOUT, "Sync abandoned after deadline", elapsed()
                )

            try:
                document = self._load_document(entry, url, timeout, headers, round_id)
            except FetchError as e:
                warnings.append(SyncError(type=SyncErrorType(e.kind), message=str(e)))
                continue

            lesson, result = self.registry.validator.accept(
                with_category(document, entry.category)
            )
            if lesson is None:
                lesson_id = document.get("id") if isinstance(document, dict) else None
                warnings.append(
                    SyncError(
                        type=SyncErrorType.VALIDATION,
                        message="; ".join(result.error_messages),
                        lesson_id=lesson_id if isinstance(lesson_id, str) else None,
                    )
                )
                continue
            lessons.append(lesson)

        changes = self.registry.replace_source_lessons(
            source.id, lessons, should_commit=lambda: not cancel.is_set()
        )
        if changes is None:
            return _failure(
                source.id, SyncErrorType.TIMEOUT, "Sync abandoned after deadline", elapsed()
            )

        categories = sorted(
            {lesson.metadata.category for lesson in lessons if lesson.metadata.category}
        )
        self.registry.update_source_metadata(
            source.id,
            source.config.metadata.model_copy(
                update={
                    "version": manifest_version(manifest) or source.config.metadata.version,
                    "last_updated": utc_now_timestamp(),
                    "total_lessons": len(lessons),
                    "categories": categories,
                }
            ),
        )

        logger.info(
            f"Synced {source.id}: {len(lessons)} lessons "
            f"({len(changes.added)} added, {len(changes.updated)} updated, "
            f"{len(changes.removed)} removed, {len(warnings)} skipped)"
        )
        return SyncResult(
            source_id=source.id,
            success=True,
            timestamp=utc_now_timestamp(),
            duration=elapsed(),
            warnings=warnings,
            lessons_processed=len(entries),
            lessons_added=len(changes.added),
            lessons_updated=len(changes.updated),
            lessons_removed=len(changes.removed),
        )

    def _load_document(
        self,
        entry: ManifestEntry,
        manifest_url: str,
        timeout: float,
        headers: Dict[str, str],
        round_id: int,
    ) -> Any:
        if not entry.is_reference:
            return entry.document

        document_url = urljoin(manifest_url, entry.reference)
        if entry.version:
            cache_key = f"{document_url}#{entry.version}"
        else:
            cache_key = f"round-{round_id}:{document_url}"
        return self.document_cache.get_or_load(
            cache_key,
            lambda: self.fetcher(document_url, timeout=timeout, headers=headers),
        )

    def _record_state(self, result: SyncResult) -> None:
        if result.success:
            self.registry.mark_loaded(result.source_id)
        else:
            message = "; ".join(error.message for error in result.errors)
            self.registry.mark_failed(result.source_id, message)

    def _emit_result(self, result: SyncResult) -> None:
        if self._on_event is None:
            return
        event = "sync.completed" if result.success else "sync.failed"
        self._on_event(event, result.model_dump(mode="json"))
