"""SQLite migrations for the song catalog."""

from __future__ import annotations

import sqlite3


def ensure_catalog_tables(conn: sqlite3.Connection) -> None:
    """Ensure song catalog and trigram posting tables exist."""
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS songs (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            artist TEXT NOT NULL,
            album TEXT,
            duration INTEGER,
            release_year INTEGER,
            popularity INTEGER,
            spotify_id TEXT UNIQUE,
            preview_url TEXT,
            external_url TEXT,
            energy REAL,
            danceability REAL,
            valence REAL,
            acousticness REAL,
            instrumentalness REAL,
            speechiness REAL,
            liveness REAL,
            loudness REAL,
            tempo REAL,
            musical_key INTEGER,
            search_text TEXT NOT NULL,
            trigram_count INTEGER NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS song_trigrams (
            trigram TEXT NOT NULL,
            song_id TEXT NOT NULL,
            PRIMARY KEY (trigram, song_id),
            FOREIGN KEY (song_id) REFERENCES songs(id) ON DELETE CASCADE
        ) WITHOUT ROWID
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_song_trigrams_song ON song_trigrams (song_id)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_songs_artist_title ON songs (artist, title)")
    conn.commit()
