from __future__ import annotations

import sqlite3

import pytest

from db.catalog import CatalogStore
from engine.types import AudioFeatures, CatalogRecord


def _store(tmp_path) -> CatalogStore:
    store = CatalogStore(tmp_path / "catalog" / "songs.sqlite3")
    store.insert_many(
        [
            CatalogRecord(id="song-1", title="Bohemian Rhapsody", artist="Queen", popularity=90, spotify_id="sp-1"),
            CatalogRecord(id="song-2", title="Bohemian Like You", artist="The Dandy Warhols", popularity=70),
            CatalogRecord(id="song-3", title="Under Pressure", artist="Queen", popularity=80),
        ]
    )
    return store


def test_search_similar_filters_by_threshold(tmp_path) -> None:
    store = _store(tmp_path)

    rows = store.search_similar("bohemian rhapsody", 0.3, 10)

    assert [record.id for record, _ in rows] == ["song-1"]
    assert rows[0][1] == pytest.approx(18 / 24)


def test_search_similar_orders_best_first(tmp_path) -> None:
    store = _store(tmp_path)

    rows = store.search_similar("bohemian rhapsody", 0.1, 10)

    assert [record.id for record, _ in rows] == ["song-1", "song-2"]
    assert rows[0][1] > rows[1][1]


def test_search_similar_ties_break_on_popularity_then_id(tmp_path) -> None:
    store = CatalogStore(tmp_path / "songs.sqlite3")
    store.insert_many(
        [
            CatalogRecord(id="b", title="Yesterday", artist="The Beatles", popularity=50),
            CatalogRecord(id="a", title="Yesterday", artist="The Beatles", popularity=50),
            CatalogRecord(id="c", title="Yesterday", artist="The Beatles", popularity=99),
        ]
    )

    rows = store.search_similar("yesterday the beatles", 0.3, 10)

    assert [record.id for record, _ in rows] == ["c", "a", "b"]
    assert all(score == 1.0 for _, score in rows)


def test_search_similar_respects_limit_and_empty_query(tmp_path) -> None:
    store = _store(tmp_path)

    assert len(store.search_similar("bohemian", 0.1, 1)) == 1
    assert store.search_similar("!!!", 0.1, 10) == []


def test_suggest_returns_title_artist_labels(tmp_path) -> None:
    store = _store(tmp_path)

    assert store.suggest("bohemian") == [
        "Bohemian Rhapsody - Queen",
        "Bohemian Like You - The Dandy Warhols",
    ]
    assert store.suggest("bohemian", limit=1) == ["Bohemian Rhapsody - Queen"]


def test_insert_song_assigns_id_and_round_trips_features(tmp_path) -> None:
    store = CatalogStore(tmp_path / "songs.sqlite3")
    features = AudioFeatures(energy=0.5, tempo=120.0, key=5)

    stored = store.insert_song(
        CatalogRecord(id="", title="Heroes", artist="David Bowie", duration=371, audio_features=features)
    )

    assert stored.id
    assert store.get_song(stored.id) == stored
    assert store.get_song(stored.id).audio_features == features
    assert store.count() == 1


def test_insert_song_rejects_duplicate_spotify_id(tmp_path) -> None:
    store = _store(tmp_path)

    with pytest.raises(sqlite3.IntegrityError):
        store.insert_song(CatalogRecord(id="", title="Other", artist="Other", spotify_id="sp-1"))

    assert store.get_by_spotify_id("sp-1").id == "song-1"
    assert store.count() == 3


def test_insert_many_skips_duplicates(tmp_path) -> None:
    store = _store(tmp_path)

    inserted = store.insert_many(
        [
            CatalogRecord(id="song-1", title="Bohemian Rhapsody", artist="Queen"),
            CatalogRecord(id="song-4", title="Heroes", artist="David Bowie"),
        ]
    )

    assert inserted == 1
    assert store.count() == 4
