from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from engine.trigrams import similarity
from engine.types import (
    EnrichmentResult,
    EnrichmentStatus,
    ExternalTrack,
    Principal,
    Provenance,
    ScoredCandidate,
    SearchQuery,
    SkipReason,
)

logger = logging.getLogger(__name__)

MAX_EXTERNAL_RESULTS = 50


class TrackProvider(Protocol):
    def search_tracks(self, query: str, limit: int = 20, *, access_token: str | None = None) -> list[dict]: ...

    def get_track(self, track_id: str) -> dict | None: ...

    def get_audio_features(self, track_id: str) -> dict | None: ...


def is_enrichment_eligible(principal: Principal | None) -> bool:
    return principal is not None and bool(principal.spotify_connected)


class ExternalEnrichmentClient:
    """Optional Spotify enrichment that never fails the surrounding search."""

    def __init__(self, provider: TrackProvider, *, max_results: int = MAX_EXTERNAL_RESULTS):
        self.provider = provider
        self.max_results = max(1, min(int(max_results), MAX_EXTERNAL_RESULTS))

    async def enrich(self, query: SearchQuery, principal: Principal | None) -> EnrichmentResult:
        if not is_enrichment_eligible(principal):
            logger.debug("[ENRICH] skipped reason=not_connected principal=%s", getattr(principal, "id", None))
            return EnrichmentResult.skipped(SkipReason.NOT_CONNECTED)

        fetch_limit = min(query.limit, self.max_results)
        try:
            raw_tracks = await asyncio.to_thread(
                self.provider.search_tracks,
                query.text,
                fetch_limit,
                access_token=principal.spotify_access_token,
            )
        except Exception as exc:
            logger.warning(
                "[ENRICH] skipped reason=provider_error query=%r principal=%s error=%s",
                query.text,
                principal.id,
                exc,
            )
            return EnrichmentResult.skipped(SkipReason.PROVIDER_ERROR)

        candidates: list[ScoredCandidate] = []
        for raw in (raw_tracks or [])[: self.max_results]:
            try:
                track = to_external_track(raw)
            except (TypeError, ValueError) as exc:
                logger.warning("[ENRICH] dropped malformed track=%r error=%s", raw, exc)
                continue
            if track is None:
                continue
            candidates.append(
                ScoredCandidate(
                    record=track,
                    similarity=similarity(query.text, track.searchable_text),
                    provenance=Provenance.EXTERNAL,
                )
            )
        return EnrichmentResult(status=EnrichmentStatus.COMPLETED, candidates=tuple(candidates))


def to_external_track(raw: dict[str, Any] | None) -> ExternalTrack | None:
    if not isinstance(raw, dict):
        return None
    spotify_id = raw.get("spotify_track_id")
    title = raw.get("title")
    if not spotify_id or not title:
        return None
    duration_ms = _optional_int(raw.get("duration_ms"))
    return ExternalTrack(
        spotify_id=str(spotify_id),
        title=str(title),
        artist=str(raw.get("artist") or "Unknown Artist"),
        album=raw.get("album"),
        duration=round(duration_ms / 1000) if duration_ms else None,
        release_year=release_year(raw.get("release_date")),
        popularity=_optional_int(raw.get("popularity")),
        preview_url=raw.get("preview_url"),
        external_url=raw.get("external_url"),
    )


def _optional_int(value: Any) -> int | None:
    # Provider payloads occasionally carry strings or nulls in numeric fields.
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def release_year(value: Any) -> int | None:
    if not value:
        return None
    head = str(value).split("-")[0].strip()
    if len(head) != 4 or not head.isdigit():
        return None
    return int(head)
