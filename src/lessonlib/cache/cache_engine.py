"""In-memory TTL + LRU cache with single-flight loading.

Entries expire ``default_ttl`` seconds after they are written; expired
entries read as absent. When the cache is full, expired entries are dropped
first, then the least-recently-accessed entry is evicted.

``get_or_load`` guarantees at most one concurrent load per key: callers that
arrive while a load is running wait on the same ``Future`` and receive the
same value (or the same exception). Failed loads are never cached.

Optional persistence writes every change through to
``<cache_dir>/<name>.json`` (``.json.gz`` when compression is enabled) and
hydrates from it at startup, skipping expired entries.
"""

import json
import threading
import time
from collections import OrderedDict
from collections.abc import Mapping
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

from loguru import logger

from lessonlib.models import CacheConfig, CacheEntry, CacheStatus
from pipeline.utils.file_io import read_json, write_json

T = TypeVar("T")

EventCallback = Callable[[str, Dict[str, Any]], None]


def _identity(value: Any) -> Any:
    return value


class CacheEngine(Generic[T]):
    """Thread-safe TTL/LRU cache."""

    def __init__(
        self,
        name: str = "cache",
        config: Optional[Union[CacheConfig, Mapping]] = None,
        clock: Callable[[], float] = time.time,
        serializer: Callable[[T], Any] = _identity,
        deserializer: Callable[[Any], T] = _identity,
        on_event: Optional[EventCallback] = None,
    ):
        """Initialize the cache.

        Args:
            name: Cache name, used for the persistence file name
            config: CacheConfig or a mapping of its fields (default: env defaults)
            clock: Returns the current time in seconds (injectable for tests)
            serializer: Converts a value to JSON-compatible data for persistence
            deserializer: Inverse of serializer, used when hydrating from disk
            on_event: Optional diagnostics callback receiving (event, payload)
        """
        self.name = name
        self.config = self._coerce_config(config)
        self._clock = clock
        self._serializer = serializer
        self._deserializer = deserializer
        self._on_event = on_event

        self._lock = threading.RLock()
        self._persist_lock = threading.Lock()
        self._entries: "OrderedDict[str, CacheEntry[T]]" = OrderedDict()
        self._in_flight: Dict[str, Future] = {}

        self.hits = 0
        self.misses = 0
        self.evictions = 0

        self._stop_event = threading.Event()
        self._cleanup_thread: Optional[threading.Thread] = None

        if self.config.persist_to_disk:
            self._hydrate()
        self._start_cleanup_thread()

    @staticmethod
    def _coerce_config(config: Optional[Union[CacheConfig, Mapping]]) -> CacheConfig:
        if config is None:
            return CacheConfig()
        if isinstance(config, CacheConfig):
            return config
        return CacheConfig.model_validate(config)

    # ------------------------------------------------------------------
    # Reads and writes
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._lookup(key)
            return entry.value if entry is not None else None

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        """Store a value for ``ttl`` seconds (default: config.default_ttl)."""
        with self._lock:
            evicted = self._store(key, value, ttl)
        self._emit_evictions(evicted)
        self._persist()

    def get_or_load(
        self, key: str, loader: Callable[[], T], ttl: Optional[float] = None
    ) -> T:
        """Return the cached value or load it, running at most one loader per key.

        Raises:
            Exception: Whatever the loader raised; the key stays absent
        """
        with self._lock:
            entry = self._lookup(key)
            if entry is not None:
                return entry.value

            future = self._in_flight.get(key)
            is_owner = future is None
            if is_owner:
                future = Future()
                self._in_flight[key] = future

        if not is_owner:
            logger.debug(f"[{self.name}] Waiting for in-flight load of {key}")
            return future.result()

        try:
            value = loader()
        except BaseException as e:
            with self._lock:
                self._in_flight.pop(key, None)
            future.set_exception(e)
            logger.warning(f"[{self.name}] Load failed for {key}: {e}")
            self._emit("cache.load_failed", {"cache": self.name, "key": key, "error": str(e)})
            raise

        with self._lock:
            evicted = self._store(key, value, ttl)
            self._in_flight.pop(key, None)
        future.set_result(value)

        self._emit_evictions(evicted)
        self._persist()
        return value

    def invalidate(self, key: str) -> bool:
        """Remove one key. Returns True if it was present."""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        if removed:
            logger.debug(f"[{self.name}] Invalidated {key}")
            self._persist()
        return removed

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``. Returns the count removed."""
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.debug(f"[{self.name}] Invalidated {len(keys)} entries with prefix {prefix}")
            self._persist()
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info(f"[{self.name}] Cache cleared")
        self._persist()

    def cleanup_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        with self._lock:
            removed = self._remove_expired(self._clock())
        if removed:
            logger.debug(f"[{self.name}] Removed {removed} expired entries")
            self._persist()
        return removed

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------
    # Status and configuration
    # ------------------------------------------------------------------

    def status(self) -> CacheStatus:
        with self._lock:
            entries = list(self._entries.values())
            hits, misses, evictions = self.hits, self.misses, self.evictions

        lookups = hits + misses
        created = [entry.created_at for entry in entries]
        return CacheStatus(
            total_items=len(entries),
            hit_rate=hits / lookups if lookups else 0.0,
            size_bytes_estimate=len(
                json.dumps(self._serialize_entries(entries), ensure_ascii=False, default=str)
                .encode("utf-8")
            ),
            hits=hits,
            misses=misses,
            evictions=evictions,
            oldest_item=min(created) if created else None,
            newest_item=max(created) if created else None,
        )

    def configure(self, config: Union[CacheConfig, Mapping]) -> CacheConfig:
        """Apply a new configuration.

        Shrinking ``max_size`` evicts least-recently-used entries immediately.

        Raises:
            pydantic.ValidationError: If the configuration is invalid
        """
        new_config = self._coerce_config(config)
        old_interval = self.config.cleanup_interval

        with self._lock:
            self.config = new_config
            evicted = []
            while len(self._entries) > new_config.max_size:
                key, _ = self._entries.popitem(last=False)
                self.evictions += 1
                evicted.append(key)

        logger.info(
            f"[{self.name}] Reconfigured: max_size={new_config.max_size}, "
            f"default_ttl={new_config.default_ttl}s, "
            f"cleanup_interval={new_config.cleanup_interval}min"
        )
        self._emit_evictions(evicted)

        if new_config.cleanup_interval != old_interval:
            self._stop_cleanup_thread()
            self._start_cleanup_thread()
        self._persist()
        return new_config

    def close(self) -> None:
        """Stop the cleanup thread and flush to disk."""
        self._stop_cleanup_thread()
        self._persist()

    # ------------------------------------------------------------------
    # Internals (call with self._lock held)
    # ------------------------------------------------------------------

    def _lookup(self, key: str) -> Optional[CacheEntry[T]]:
        entry = self._entries.get(key)
        now = self._clock()
        if entry is None:
            self.misses += 1
            return None
        if entry.is_expired(now):
            del self._entries[key]
            self.misses += 1
            return None

        entry.last_accessed_at = now
        self._entries.move_to_end(key)
        self.hits += 1
        return entry

    def _store(self, key: str, value: T, ttl: Optional[float]) -> List[str]:
        now = self._clock()
        ttl = self.config.default_ttl if ttl is None else ttl
        self._entries.pop(key, None)

        evicted = []
        if len(self._entries) >= self.config.max_size:
            self._remove_expired(now)
        while len(self._entries) >= self.config.max_size:
            lru_key, _ = self._entries.popitem(last=False)
            self.evictions += 1
            evicted.append(lru_key)

        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + ttl,
            last_accessed_at=now,
        )
        return evicted

    def _remove_expired(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        if self._on_event is not None:
            self._on_event(event, payload)

    def _emit_evictions(self, keys: List[str]) -> None:
        for key in keys:
            logger.debug(f"[{self.name}] Evicted {key}")
            self._emit("cache.evicted", {"cache": self.name, "key": key})

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @property
    def cache_file(self) -> Path:
        suffix = ".json.gz" if self.config.compression_enabled else ".json"
        return Path(self.config.cache_dir) / f"{self.name}{suffix}"

    def _serialize_entries(self, entries: List[CacheEntry[T]]) -> List[Dict[str, Any]]:
        return [
            {
                "key": entry.key,
                "value": self._serializer(entry.value),
                "createdAt": entry.created_at,
                "expiresAt": entry.expires_at,
                "lastAccessedAt": entry.last_accessed_at,
            }
            for entry in entries
        ]

    def _persist(self) -> None:
        if not self.config.persist_to_disk:
            return

        # Snapshot inside the persist lock so the newest state is written last
        with self._persist_lock:
            with self._lock:
                entries = list(self._entries.values())
            write_json(
                {"name": self.name, "entries": self._serialize_entries(entries)},
                self.cache_file,
                indent=None,
            )

    def _hydrate(self) -> None:
        cache_file = self.cache_file
        if not cache_file.exists():
            logger.debug(f"[{self.name}] No cache file found at {cache_file}")
            return

        try:
            data = read_json(cache_file)
            now = self._clock()
            records = sorted(data["entries"], key=lambda r: r["lastAccessedAt"])
            loaded = 0
            for record in records:
                if now > record["expiresAt"]:
                    continue
                self._entries[record["key"]] = CacheEntry(
                    key=record["key"],
                    value=self._deserializer(record["value"]),
                    created_at=record["createdAt"],
                    expires_at=record["expiresAt"],
                    last_accessed_at=record["lastAccessedAt"],
                )
                self._entries.move_to_end(record["key"])
                loaded += 1
            while len(self._entries) > self.config.max_size:
                self._entries.popitem(last=False)
            logger.info(f"[{self.name}] Loaded {loaded} cache entries from {cache_file}")
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"[{self.name}] Failed to load cache from {cache_file}: {e}")
            self._entries.clear()

    # ------------------------------------------------------------------
    # Background cleanup
    # ------------------------------------------------------------------

    def _start_cleanup_thread(self) -> None:
        interval_seconds = self.config.cleanup_interval * 60
        if interval_seconds <= 0:
            return

        self._stop_event = threading.Event()
        stop_event = self._stop_event

        def run() -> None:
            while not stop_event.wait(interval_seconds):
                self.cleanup_expired()

        self._cleanup_thread = threading.Thread(
            target=run, name=f"{self.name}-cleanup", daemon=True
        )
        self._cleanup_thread.start()

    def _stop_cleanup_thread(self) -> None:
        self._stop_event.set()
        if self._cleanup_thread is not None:
            self._cleanup_thread.join(timeout=1)
            self._cleanup_thread = None
