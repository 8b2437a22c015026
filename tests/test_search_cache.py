from __future__ import annotations

import pytest

from engine.cache import JsonFileCacheBackend, MemoryCacheBackend, SearchCache, cache_key
from engine.errors import CacheUnavailable
from engine.query_normalizer import normalize_query
from engine.types import (
    CatalogRecord,
    ExternalTrack,
    Provenance,
    ScoredCandidate,
    SearchMetadata,
    SearchResultSet,
)


class _Clock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class _BrokenBackend:
    def get(self, key):
        raise ConnectionError("cache down")

    def set(self, key, value, ttl_seconds):
        raise ConnectionError("cache down")

    def delete(self, key):
        raise ConnectionError("cache down")


def _result(*, external: bool = False) -> SearchResultSet:
    candidates = [
        ScoredCandidate(
            record=CatalogRecord(id="song-1", title="Heroes", artist="David Bowie", popularity=70),
            similarity=0.9,
            provenance=Provenance.LOCAL,
        )
    ]
    if external:
        candidates.append(
            ScoredCandidate(
                record=ExternalTrack(spotify_id="t1", title="Changes", artist="David Bowie"),
                similarity=0.5,
                provenance=Provenance.EXTERNAL,
            )
        )
    metadata = SearchMetadata(query="heroes", limit=20, threshold=0.3, total=len(candidates), total_ms=12.5)
    return SearchResultSet(candidates=tuple(candidates), metadata=metadata)


def test_cache_key_ignores_fresh_and_principal() -> None:
    base = normalize_query("heroes")
    bypass = normalize_query("HEROES!", fresh=True, principal_id="user-1")

    assert cache_key(base) == cache_key(bypass)
    assert cache_key(base).startswith("search:local:")


def test_cache_key_varies_with_query_parameters() -> None:
    keys = {
        cache_key(normalize_query("heroes")),
        cache_key(normalize_query("heroes", limit=10)),
        cache_key(normalize_query("heroes", threshold=0.5)),
        cache_key(normalize_query("heroes", enrich=True)),
        cache_key(normalize_query("changes")),
    }

    assert len(keys) == 5
    assert cache_key(normalize_query("heroes", enrich=True)).startswith("search:spotify:")


def test_ttl_depends_on_result_provenance() -> None:
    clock = _Clock()
    cache = SearchCache(MemoryCacheBackend(clock=clock), clock=clock)

    assert cache.ttl_for(_result()) == 300
    assert cache.ttl_for(_result(external=True)) == 3600


def test_local_entries_expire_after_short_ttl() -> None:
    clock = _Clock()
    cache = SearchCache(MemoryCacheBackend(clock=clock), clock=clock)
    local_key = "search:local:abc"
    external_key = "search:spotify:abc"

    assert cache.put(local_key, _result()) is True
    assert cache.put(external_key, _result(external=True)) is True
    entry = cache.get(local_key)
    assert entry.expires_at == 1_300.0
    assert entry.ttl_seconds == 300

    clock.now += 301
    assert cache.get(local_key) is None
    assert cache.get(external_key) is not None

    clock.now += 3_300
    assert cache.get(external_key) is None


def test_load_round_trips_result_set() -> None:
    cache = SearchCache(MemoryCacheBackend())
    original = _result(external=True)

    cache.put("search:spotify:k", original)

    assert cache.load("search:spotify:k") == original


def test_backend_failures_are_tolerated() -> None:
    cache = SearchCache(_BrokenBackend())

    assert cache.get("search:local:k") is None
    assert cache.load("search:local:k") is None
    assert cache.put("search:local:k", _result()) is False


def test_memory_backend_delete() -> None:
    backend = MemoryCacheBackend()
    backend.set("k", {"v": 1}, 60)

    backend.delete("k")

    assert backend.get("k") is None
    assert len(backend) == 0


def test_json_file_backend_persists_across_instances(tmp_path) -> None:
    clock = _Clock()
    path = tmp_path / "cache" / "search.json"
    JsonFileCacheBackend(path, clock=clock).set("k", {"v": 1}, 60)

    reopened = JsonFileCacheBackend(path, clock=clock)
    assert reopened.get("k") == {"v": 1}

    clock.now += 61
    assert reopened.get("k") is None


def test_unwritable_cache_file_is_reported_and_swallowed(tmp_path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    backend = JsonFileCacheBackend(blocker / "search.json")

    with pytest.raises(CacheUnavailable):
        backend.set("k", {"v": 1}, 60)
    assert SearchCache(backend).put("search:local:k", _result()) is False


def test_memory_backend_sweeps_expired_rows_on_write() -> None:
    clock = _Clock()
    backend = MemoryCacheBackend(clock=clock)
    for idx in range(1000):
        backend.set(f"k{idx}", {"v": idx}, 1)
    backend.set("survivor", {"v": "s"}, 60_000)

    clock.now += 10_000
    backend.set("latest", {"v": "l"}, 60)

    assert len(backend) == 2
    assert backend.get("survivor") == {"v": "s"}
    assert backend.get("k0") is None


def test_json_file_backend_sweeps_expired_rows_on_write(tmp_path) -> None:
    clock = _Clock()
    path = tmp_path / "search.json"
    backend = JsonFileCacheBackend(path, clock=clock)
    for idx in range(50):
        backend.set(f"k{idx}", {"v": idx}, 1)

    clock.now += 10_000
    backend.set("latest", {"v": "l"}, 60)

    assert len(backend) == 1
    assert len(JsonFileCacheBackend(path, clock=clock)) == 1
