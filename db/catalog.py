"""SQLite song catalog with trigram-similarity search."""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable
from uuid import uuid4

from db.migrations import ensure_catalog_tables
from engine.trigrams import trigrams
from engine.types import AudioFeatures, CatalogRecord

logger = logging.getLogger(__name__)

_FEATURE_COLUMNS = (
    ("energy", "energy"),
    ("danceability", "danceability"),
    ("valence", "valence"),
    ("acousticness", "acousticness"),
    ("instrumentalness", "instrumentalness"),
    ("speechiness", "speechiness"),
    ("liveness", "liveness"),
    ("loudness", "loudness"),
    ("tempo", "tempo"),
    ("key", "musical_key"),
)

_SUGGESTION_THRESHOLD = 0.2
_MAX_SUGGESTIONS = 20


class CatalogStore:
    """Read/write access to the ``songs`` table and its trigram postings."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._ensured = False
        self._ensure_lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        directory = os.path.dirname(self.db_path)
        if directory and not os.path.isdir(directory):
            os.makedirs(directory, exist_ok=True)
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        if not self._ensured:
            with self._ensure_lock:
                if not self._ensured:
                    ensure_catalog_tables(conn)
                    self._ensured = True
        return conn

    def search_similar(self, text: str, threshold: float, limit: int) -> list[tuple[CatalogRecord, float]]:
        """Return ``(record, similarity)`` pairs at or above ``threshold``, best first."""
        query_grams = sorted(trigrams(text))
        if not query_grams or limit <= 0:
            return []
        placeholders = ",".join("?" for _ in query_grams)
        sql = f"""
            WITH matches AS (
                SELECT song_id, COUNT(*) AS common
                FROM song_trigrams
                WHERE trigram IN ({placeholders})
                GROUP BY song_id
            ),
            scored AS (
                SELECT s.*, CAST(m.common AS REAL) / (? + s.trigram_count - m.common) AS similarity
                FROM matches m
                JOIN songs s ON s.id = m.song_id
            )
            SELECT *
            FROM scored
            WHERE similarity >= ?
            ORDER BY similarity DESC, COALESCE(popularity, 0) DESC, id ASC
            LIMIT ?
        """
        params: list[Any] = [*query_grams, len(query_grams), float(threshold), int(limit)]
        conn = self._connect()
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()
        return [(_row_to_record(row), min(1.0, float(row["similarity"]))) for row in rows]

    def suggest(self, text: str, limit: int = 10) -> list[str]:
        """Return distinct ``"Title - Artist"`` strings for autocomplete."""
        capped = max(0, min(int(limit), _MAX_SUGGESTIONS))
        if capped == 0:
            return []
        suggestions: list[str] = []
        for record, score in self.search_similar(text, _SUGGESTION_THRESHOLD, capped * 2):
            if score <= _SUGGESTION_THRESHOLD:
                continue
            label = f"{record.title} - {record.artist}"
            if label not in suggestions:
                suggestions.append(label)
            if len(suggestions) >= capped:
                break
        return suggestions

    def get_song(self, song_id: str) -> CatalogRecord | None:
        return self._fetch_one("SELECT * FROM songs WHERE id=? LIMIT 1", (song_id,))

    def get_by_spotify_id(self, spotify_id: str) -> CatalogRecord | None:
        return self._fetch_one("SELECT * FROM songs WHERE spotify_id=? LIMIT 1", (spotify_id,))

    def count(self) -> int:
        conn = self._connect()
        try:
            return int(conn.execute("SELECT COUNT(*) FROM songs").fetchone()[0])
        finally:
            conn.close()

    def insert_song(self, record: CatalogRecord) -> CatalogRecord:
        """Insert a song and its trigram postings.

        Raises ``sqlite3.IntegrityError`` when ``spotify_id`` is already present.
        """
        if not record.id:
            record = replace(record, id=str(uuid4()))
        grams = trigrams(record.searchable_text)
        now = datetime.now(timezone.utc).isoformat()
        features = record.audio_features or AudioFeatures()
        columns = [
            "id",
            "title",
            "artist",
            "album",
            "duration",
            "release_year",
            "popularity",
            "spotify_id",
            "preview_url",
            "external_url",
            *[column for _, column in _FEATURE_COLUMNS],
            "search_text",
            "trigram_count",
            "created_at",
            "updated_at",
        ]
        values = [
            record.id,
            record.title,
            record.artist,
            record.album,
            record.duration,
            record.release_year,
            record.popularity,
            record.spotify_id,
            record.preview_url,
            record.external_url,
            *[getattr(features, attr) for attr, _ in _FEATURE_COLUMNS],
            record.searchable_text.lower(),
            len(grams),
            now,
            now,
        ]
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                f"INSERT INTO songs ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                values,
            )
            cur.executemany(
                "INSERT OR IGNORE INTO song_trigrams (trigram, song_id) VALUES (?, ?)",
                [(gram, record.id) for gram in sorted(grams)],
            )
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            conn.close()
        logger.debug("catalog_insert song_id=%s spotify_id=%s trigrams=%s", record.id, record.spotify_id, len(grams))
        return record

    def insert_many(self, records: Iterable[CatalogRecord]) -> int:
        inserted = 0
        for record in records:
            try:
                self.insert_song(record)
            except sqlite3.IntegrityError:
                logger.info("catalog_insert_skipped duplicate title=%s artist=%s", record.title, record.artist)
                continue
            inserted += 1
        return inserted

    def _fetch_one(self, sql: str, params: tuple) -> CatalogRecord | None:
        conn = self._connect()
        try:
            row = conn.execute(sql, params).fetchone()
        finally:
            conn.close()
        return _row_to_record(row) if row else None


def _row_to_record(row: sqlite3.Row) -> CatalogRecord:
    feature_values = {attr: row[column] for attr, column in _FEATURE_COLUMNS if row[column] is not None}
    return CatalogRecord(
        id=str(row["id"]),
        title=str(row["title"]),
        artist=str(row["artist"]),
        album=row["album"],
        duration=row["duration"],
        release_year=row["release_year"],
        popularity=row["popularity"],
        spotify_id=row["spotify_id"],
        preview_url=row["preview_url"],
        external_url=row["external_url"],
        audio_features=AudioFeatures(**feature_values) if feature_values else None,
    )
