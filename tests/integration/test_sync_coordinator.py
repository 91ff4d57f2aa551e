"""Integration tests for concurrent remote source synchronization.

Remote sources are served by an in-process fetcher, so these tests exercise
the thread fan-out, deadlines and registry commits without network access.
"""

import threading
import time

import pytest

from conftest import make_lesson_doc, remote_source
from lessonlib.library.source_registry import SourceRegistry
from lessonlib.library.sync_coordinator import SyncCoordinator
from lessonlib.models import (
    LibrarySource,
    SourceConfig,
    SourceLoadStatus,
    SourceType,
    SyncErrorType,
)
from lessonlib.utils.http_client import FetchError


class FakeFetcher:
    """Serves JSON by URL; a route may be data, an exception or a callable."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, url, timeout=None, headers=None):
        with self._lock:
            self.calls.append(url)
        if url not in self.routes:
            raise FetchError(f"HTTP 404 for {url}", kind="not_found", url=url)
        route = self.routes[url]
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route()
        return route


@pytest.fixture
def release():
    """Event that unblocks hanging fetches at teardown."""
    event = threading.Event()
    yield event
    event.set()


def coordinator_for(sources, routes, timeout=5.0, events=None):
    registry = SourceRegistry(sources)
    registry.initialize()
    fetcher = FakeFetcher(routes)
    on_event = (lambda event, payload: events.append((event, payload))) if events is not None else None
    coordinator = SyncCoordinator(registry, fetcher=fetcher, timeout=timeout, on_event=on_event)
    return registry, fetcher, coordinator


class TestSyncAll:
    def test_unreachable_source_does_not_affect_sibling(self):
        registry, _, coordinator = coordinator_for(
            [
                remote_source("good", "https://good.example/manifest.json"),
                remote_source("down", "https://down.example/manifest.json"),
            ],
            {
                "https://good.example/manifest.json": {"lessons": [make_lesson_doc()]},
                "https://down.example/manifest.json": FetchError(
                    "Connection refused", kind="network", url="https://down.example/manifest.json"
                ),
            },
        )

        results = coordinator.sync_all_remote_sources()

        assert [r.source_id for r in results] == ["good", "down"]
        good, down = results
        assert good.success
        assert good.lessons_added == 1
        assert not down.success
        assert down.errors[0].type == SyncErrorType.NETWORK
        assert registry.get_lesson_by_id("greetings").library_id == "good"

    def test_no_remote_sources(self):
        _, _, coordinator = coordinator_for([], {})
        assert coordinator.sync_all_remote_sources() == []

    def test_disabled_sources_are_skipped(self):
        disabled = remote_source("off", "https://off.example/m.json").model_copy(
            update={"enabled": False}
        )
        _, fetcher, coordinator = coordinator_for([disabled], {})

        assert coordinator.sync_all_remote_sources() == []
        assert fetcher.calls == []

    def test_slow_source_times_out_alone(self, release):
        def hang():
            release.wait(timeout=10)
            return {"lessons": [make_lesson_doc("late")]}

        registry, _, coordinator = coordinator_for(
            [
                remote_source("slow", "https://slow.example/m.json", timeout=0.2),
                remote_source("fast", "https://fast.example/m.json"),
            ],
            {
                "https://slow.example/m.json": hang,
                "https://fast.example/m.json": {"lessons": [make_lesson_doc()]},
            },
        )

        started = time.monotonic()
        slow, fast = coordinator.sync_all_remote_sources()
        elapsed = time.monotonic() - started

        assert not slow.success
        assert slow.errors[0].type == SyncErrorType.TIMEOUT
        assert fast.success
        assert elapsed < 5

        release.set()
        time.sleep(0.2)
        assert registry.get_lesson_by_id("late") is None
        assert registry.get_lesson_by_id("greetings") is not None

    def test_unexpected_worker_error_is_network_failure(self):
        _, _, coordinator = coordinator_for(
            [remote_source("broken", "https://broken.example/m.json")],
            {"https://broken.example/m.json": RuntimeError("socket closed")},
        )

        [result] = coordinator.sync_all_remote_sources()

        assert not result.success
        assert result.errors[0].type == SyncErrorType.NETWORK


class TestSyncOne:
    @pytest.mark.parametrize("source_id", ["unknown", "off", "local"])
    def test_not_found(self, tmp_path, source_id):
        manifest = tmp_path / "m.json"
        manifest.write_text('{"lessons": []}', encoding="utf-8")
        sources = [
            remote_source("off", "https://off.example/m.json").model_copy(update={"enabled": False}),
            LibrarySource(
                id="local",
                name="Local",
                type=SourceType.LOCAL,
                config=SourceConfig(manifest_path=str(manifest)),
            ),
        ]
        _, fetcher, coordinator = coordinator_for(sources, {})

        result = coordinator.sync_remote_source(source_id)

        assert not result.success
        assert result.errors[0].type == SyncErrorType.NOT_FOUND
        assert fetcher.calls == []

    def test_invalid_lessons_become_warnings(self):
        registry, _, coordinator = coordinator_for(
            [remote_source("remote", "https://r.example/m.json")],
            {
                "https://r.example/m.json": [
                    make_lesson_doc("good"),
                    make_lesson_doc("bad", metadata={"difficulty": "expert"}),
                ]
            },
        )

        result = coordinator.sync_remote_source("remote")

        assert result.success
        assert result.lessons_processed == 2
        assert result.lessons_added == 1
        assert [w.type for w in result.warnings] == [SyncErrorType.VALIDATION]
        assert result.warnings[0].lesson_id == "bad"
        assert [lesson.id for lesson in registry.get_lessons()] == ["good"]

    def test_unrecognized_manifest_is_parsing_error(self):
        _, _, coordinator = coordinator_for(
            [remote_source("remote", "https://r.example/m.json")],
            {"https://r.example/m.json": {"unexpected": True}},
        )

        result = coordinator.sync_remote_source("remote")

        assert result.errors[0].type == SyncErrorType.PARSING

    def test_missing_manifest_is_not_found(self):
        _, _, coordinator = coordinator_for(
            [remote_source("remote", "https://r.example/m.json")], {}
        )
        assert coordinator.sync_remote_source("remote").errors[0].type == SyncErrorType.NOT_FOUND

    def test_resync_reports_changes_and_updates_metadata(self):
        manifest = {
            "version": "1",
            "categories": [{"id": "daily-life", "lessons": [make_lesson_doc("a"), make_lesson_doc("b")]}],
        }
        registry, _, coordinator = coordinator_for(
            [remote_source("remote", "https://r.example/m.json")],
            {"https://r.example/m.json": lambda: manifest},
        )
        coordinator.sync_remote_source("remote")

        manifest = {
            "version": "2",
            "lessons": [make_lesson_doc("a", title="Revised"), make_lesson_doc("c")],
        }
        result = coordinator.sync_remote_source("remote")

        assert (result.lessons_added, result.lessons_updated, result.lessons_removed) == (1, 1, 1)
        metadata = registry.get_library_by_id("remote").config.metadata
        assert metadata.version == "2"
        assert metadata.total_lessons == 2
        assert metadata.last_updated is not None


class TestDocumentReferences:
    def test_relative_references_are_resolved(self):
        registry, fetcher, coordinator = coordinator_for(
            [remote_source("remote", "https://r.example/library/manifest.json")],
            {
                "https://r.example/library/manifest.json": {
                    "lessons": [{"path": "lessons/greetings.json", "version": "3"}]
                },
                "https://r.example/library/lessons/greetings.json": make_lesson_doc(),
            },
        )

        assert coordinator.sync_remote_source("remote").success
        assert registry.get_lesson_by_id("greetings") is not None
        assert "https://r.example/library/lessons/greetings.json" in fetcher.calls

    def test_shared_documents_fetched_once(self):
        shared = "https://cdn.example/lessons/greetings.json"
        registry, fetcher, coordinator = coordinator_for(
            [
                remote_source("a", "https://a.example/m.json"),
                remote_source("b", "https://b.example/m.json"),
            ],
            {
                "https://a.example/m.json": {"lessons": [{"url": shared, "version": "1"}]},
                "https://b.example/m.json": {"lessons": [{"url": shared, "version": "1"}]},
                shared: make_lesson_doc(),
            },
        )

        results = coordinator.sync_all_remote_sources()

        assert all(result.success for result in results)
        assert fetcher.calls.count(shared) == 1
        assert len(registry.get_source_lessons("a")) == 1
        assert len(registry.get_source_lessons("b")) == 1

    def test_unversioned_document_refetched_on_resync(self):
        document_url = "https://r.example/library/greetings.json"
        document = make_lesson_doc()
        registry, fetcher, coordinator = coordinator_for(
            [remote_source("remote", "https://r.example/library/manifest.json")],
            {
                "https://r.example/library/manifest.json": {
                    "lessons": [{"path": "greetings.json"}]
                },
                document_url: lambda: document,
            },
        )
        coordinator.sync_remote_source("remote")

        document = make_lesson_doc(title="Updated Greetings")
        result = coordinator.sync_remote_source("remote")

        assert result.success
        assert result.lessons_updated == 1
        assert fetcher.calls.count(document_url) == 2
        assert registry.get_lesson_by_id("greetings").title == "Updated Greetings"
        assert coordinator.document_cache.keys() == []

    def test_versioned_document_reused_across_syncs(self):
        document_url = "https://r.example/library/greetings.json"
        _, fetcher, coordinator = coordinator_for(
            [remote_source("remote", "https://r.example/library/manifest.json")],
            {
                "https://r.example/library/manifest.json": {
                    "lessons": [{"path": "greetings.json", "version": "3"}]
                },
                document_url: make_lesson_doc(),
            },
        )

        coordinator.sync_remote_source("remote")
        coordinator.sync_remote_source("remote")

        assert fetcher.calls.count(document_url) == 1

    def test_missing_document_is_a_warning(self):
        _, _, coordinator = coordinator_for(
            [remote_source("remote", "https://r.example/m.json")],
            {
                "https://r.example/m.json": {
                    "lessons": [{"path": "missing.json"}, make_lesson_doc()]
                }
            },
        )

        result = coordinator.sync_remote_source("remote")

        assert result.success
        assert result.lessons_added == 1
        assert [w.type for w in result.warnings] == [SyncErrorType.NOT_FOUND]


class TestLoadingState:
    def test_pending_then_loaded(self):
        registry, _, coordinator = coordinator_for(
            [remote_source("remote", "https://r.example/m.json")],
            {"https://r.example/m.json": {"lessons": [make_lesson_doc()]}},
        )
        assert registry.get_loading_state("remote").status == SourceLoadStatus.PENDING

        coordinator.sync_remote_source("remote")

        state = registry.get_loading_state("remote")
        assert state.status == SourceLoadStatus.LOADED
        assert state.last_loaded is not None
        assert state.error is None

    def test_pending_then_error(self):
        registry, _, coordinator = coordinator_for(
            [remote_source("remote", "https://r.example/m.json")], {}
        )

        result = coordinator.sync_remote_source("remote")

        state = registry.get_loading_state("remote")
        assert state.status == SourceLoadStatus.ERROR
        assert state.error == result.errors[0].message
        assert state.last_loaded is None

    def test_loading_while_sync_runs(self):
        seen = []
        registry = None

        def observe():
            seen.append(registry.get_loading_state("remote").status)
            return []

        registry, _, coordinator = coordinator_for(
            [remote_source("remote", "https://r.example/m.json")],
            {"https://r.example/m.json": observe},
        )

        coordinator.sync_remote_source("remote")

        assert seen == [SourceLoadStatus.LOADING]
        assert registry.get_loading_state("remote").status == SourceLoadStatus.LOADED

    def test_timeout_is_an_error(self, release):
        def hang():
            release.wait(timeout=10)
            return []

        registry, _, coordinator = coordinator_for(
            [remote_source("slow", "https://slow.example/m.json", timeout=0.2)],
            {"https://slow.example/m.json": hang},
        )

        coordinator.sync_remote_source("slow")

        assert registry.get_loading_state("slow").status == SourceLoadStatus.ERROR


class TestEvents:
    def test_completed_and_failed_events(self):
        events = []
        _, _, coordinator = coordinator_for(
            [
                remote_source("good", "https://good.example/m.json"),
                remote_source("bad", "https://bad.example/m.json"),
            ],
            {"https://good.example/m.json": []},
            events=events,
        )

        coordinator.sync_all_remote_sources()

        assert [(event, payload["source_id"]) for event, payload in events] == [
            ("sync.completed", "good"),
            ("sync.failed", "bad"),
        ]
