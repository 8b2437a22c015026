"""Search response cache with source-dependent freshness."""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Protocol

from engine.errors import CacheUnavailable
from engine.json_utils import safe_json_dumps
from engine.types import CacheEntry, SearchQuery, SearchResultSet

logger = logging.getLogger(__name__)

LOCAL_TTL_SECONDS = 300
EXTERNAL_TTL_SECONDS = 3600


class CacheBackend(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...


def cache_key(query: SearchQuery) -> str:
    """Derive the cache key from the normalized query.

    ``fresh`` and the principal never take part, so a bypassing request
    overwrites the same entry that ordinary requests read.
    """
    segment = "spotify" if query.enrich else "local"
    material = json.dumps(
        {
            "text": query.text,
            "limit": query.limit,
            "threshold": query.threshold,
            "enrich": query.enrich,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
    return f"search:{segment}:{digest}"


def _unexpired(rows: dict[str, Any], now: float) -> dict[str, Any]:
    return {
        key: row
        for key, row in rows.items()
        if isinstance(row, dict) and float(row.get("expires_at") or 0.0) > now
    }


class MemoryCacheBackend:
    """Process-local TTL store; expired rows are dropped on read and swept on write."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._data: dict[str, dict[str, Any]] = {}

    def get(self, key: str) -> Any:
        now = self._clock()
        with self._lock:
            row = self._data.get(key)
            if row is None:
                return None
            if float(row["expires_at"]) <= now:
                self._data.pop(key, None)
                return None
            return row["value"]

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        with self._lock:
            now = self._clock()
            self._data = _unexpired(self._data, now)
            self._data[key] = {
                "expires_at": now + max(1, int(ttl_seconds)),
                "value": value,
            }

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class JsonFileCacheBackend:
    """TTL store persisted as one JSON document, swept and replaced atomically on write."""

    def __init__(self, path: str | Path, *, clock: Callable[[], float] = time.time) -> None:
        self._path = Path(path)
        self._clock = clock
        self._lock = threading.Lock()
        self._data: dict[str, dict[str, Any]] = {}
        self._loaded = False

    def _load_locked(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("cache_file_unreadable path=%s error=%s", self._path, exc)
            return
        if isinstance(payload, dict):
            self._data = payload

    def _persist_locked(self) -> None:
        tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(safe_json_dumps(self._data, separators=(",", ":")), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            raise CacheUnavailable(f"cache file not writable: {self._path}") from exc

    def get(self, key: str) -> Any:
        now = self._clock()
        with self._lock:
            self._load_locked()
            row = self._data.get(key)
            if not isinstance(row, dict):
                return None
            if float(row.get("expires_at") or 0.0) <= now:
                self._data.pop(key, None)
                self._persist_locked()
                return None
            return row.get("value")

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        with self._lock:
            self._load_locked()
            now = self._clock()
            self._data = _unexpired(self._data, now)
            self._data[key] = {
                "expires_at": now + max(1, int(ttl_seconds)),
                "value": value,
            }
            self._persist_locked()

    def delete(self, key: str) -> None:
        with self._lock:
            self._load_locked()
            if self._data.pop(key, None) is not None:
                self._persist_locked()

    def __len__(self) -> int:
        with self._lock:
            self._load_locked()
            return len(self._data)


class SearchCache:
    """Wraps a backend with the TTL policy and failure tolerance of search caching."""

    def __init__(
        self,
        backend: CacheBackend,
        *,
        local_ttl: int = LOCAL_TTL_SECONDS,
        external_ttl: int = EXTERNAL_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = backend
        self.local_ttl = int(local_ttl)
        self.external_ttl = int(external_ttl)
        self._clock = clock

    def ttl_for(self, result_set: SearchResultSet) -> int:
        return self.external_ttl if result_set.has_external else self.local_ttl

    def get(self, key: str) -> CacheEntry | None:
        try:
            stored = self.backend.get(key)
        except Exception as exc:
            logger.warning("cache_read_failed key=%s error=%s", key, exc)
            return None
        if not isinstance(stored, dict) or not isinstance(stored.get("snapshot"), dict):
            return None
        logger.debug("cache_hit key=%s", key)
        return CacheEntry(
            key=key,
            snapshot=stored["snapshot"],
            expires_at=float(stored.get("expires_at") or 0.0),
            ttl_seconds=int(stored.get("ttl_seconds") or 0),
        )

    def load(self, key: str) -> SearchResultSet | None:
        """Like ``get`` but decoded; an undecodable snapshot counts as a miss."""
        entry = self.get(key)
        if entry is None:
            return None
        try:
            return SearchResultSet.from_dict(entry.snapshot)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("cache_snapshot_invalid key=%s error=%s", key, exc)
            return None

    def put(self, key: str, result_set: SearchResultSet) -> bool:
        ttl = self.ttl_for(result_set)
        stored = {
            "snapshot": result_set.to_dict(),
            "expires_at": self._clock() + ttl,
            "ttl_seconds": ttl,
        }
        try:
            self.backend.set(key, stored, ttl)
        except Exception as exc:
            logger.warning("cache_write_failed key=%s error=%s", key, exc)
            return False
        logger.debug("cache_write key=%s ttl=%s results=%s", key, ttl, len(result_set.candidates))
        return True
