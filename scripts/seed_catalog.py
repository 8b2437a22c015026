#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

from config.settings import DB_PATH
from db.catalog import CatalogStore
from engine.types import AudioFeatures, CatalogRecord


def record_from_row(row: dict[str, Any]) -> CatalogRecord:
    title = str(row.get("title") or "").strip()
    artist = str(row.get("artist") or "").strip()
    if not title or not artist:
        raise ValueError(f"catalog row requires title and artist: {row!r}")
    return CatalogRecord(
        id=str(row.get("id") or ""),
        title=title,
        artist=artist,
        album=row.get("album"),
        duration=row.get("duration"),
        release_year=row.get("releaseYear", row.get("release_year")),
        popularity=row.get("popularity"),
        spotify_id=row.get("spotifyId", row.get("spotify_id")),
        preview_url=row.get("previewUrl", row.get("preview_url")),
        external_url=row.get("externalUrl", row.get("external_url")),
        audio_features=AudioFeatures.from_dict(row.get("audioFeatures") or row.get("audio_features")),
    )


def load_records(path: str | Path) -> list[CatalogRecord]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    rows = payload.get("songs") if isinstance(payload, dict) else payload
    if not isinstance(rows, list):
        raise ValueError("catalog file must hold a list of songs or {\"songs\": [...]}")
    return [record_from_row(row) for row in rows]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Load songs from a JSON file into the search catalog.")
    parser.add_argument("--input", required=True, help="Path to a JSON list of songs.")
    parser.add_argument("--db", default=DB_PATH, help="Catalog SQLite path.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    records = load_records(args.input)
    store = CatalogStore(args.db)
    inserted = store.insert_many(records)
    print(f"input={args.input} songs={len(records)} inserted={inserted} total={store.count()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
