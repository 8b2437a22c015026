"""Import a Spotify-only search result into the local catalog."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from engine.enrichment import TrackProvider, release_year
from engine.errors import CatalogUnavailable, ImportNotFound, ProviderError
from engine.types import AudioFeatures, CatalogRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportResult:
    record: CatalogRecord
    created: bool


class TrackImporter:
    def __init__(self, catalog, provider: TrackProvider):
        self.catalog = catalog
        self.provider = provider

    def import_track(self, spotify_id: str) -> ImportResult:
        """Store the provider track ``spotify_id`` as a catalog song.

        Importing an id that is already in the catalog returns the stored
        record unchanged with ``created=False``.
        """
        spotify_id = (spotify_id or "").strip()
        if not spotify_id:
            raise ImportNotFound(spotify_id)

        existing = self._existing(spotify_id)
        if existing is not None:
            logger.info("track_import_skipped spotify_id=%s song_id=%s reason=exists", spotify_id, existing.id)
            return ImportResult(record=existing, created=False)

        track = self.provider.get_track(spotify_id)
        if not track:
            raise ImportNotFound(spotify_id)

        record = CatalogRecord(
            id="",
            title=track["title"],
            artist=track.get("artist") or "Unknown Artist",
            album=track.get("album"),
            duration=round(int(track["duration_ms"]) / 1000) if track.get("duration_ms") else None,
            release_year=release_year(track.get("release_date")),
            popularity=track.get("popularity"),
            spotify_id=spotify_id,
            preview_url=track.get("preview_url"),
            external_url=track.get("external_url"),
            audio_features=self._audio_features(spotify_id),
        )
        try:
            stored = self.catalog.insert_song(record)
        except sqlite3.IntegrityError:
            existing = self._existing(spotify_id)
            if existing is None:
                raise
            logger.info("track_import_race spotify_id=%s song_id=%s", spotify_id, existing.id)
            return ImportResult(record=existing, created=False)
        except sqlite3.Error as exc:
            raise CatalogUnavailable("Song catalog is unavailable") from exc

        logger.info("track_imported spotify_id=%s song_id=%s", spotify_id, stored.id)
        return ImportResult(record=stored, created=True)

    def _existing(self, spotify_id: str) -> CatalogRecord | None:
        try:
            return self.catalog.get_by_spotify_id(spotify_id)
        except sqlite3.Error as exc:
            raise CatalogUnavailable("Song catalog is unavailable") from exc

    def _audio_features(self, spotify_id: str) -> AudioFeatures | None:
        try:
            payload = self.provider.get_audio_features(spotify_id)
        except ProviderError as exc:
            logger.warning("audio_features_unavailable spotify_id=%s error=%s", spotify_id, exc)
            return None
        return AudioFeatures.from_dict(payload)
