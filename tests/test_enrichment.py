from __future__ import annotations

import asyncio

from engine.enrichment import ExternalEnrichmentClient, release_year, to_external_track
from engine.errors import ProviderError
from engine.query_normalizer import normalize_query
from engine.types import EnrichmentStatus, Principal, Provenance, SkipReason

CONNECTED = Principal(id="user-1", spotify_connected=True, spotify_access_token="user-token")


def _track(track_id: str, title: str, artist: str = "Queen", **extra):
    payload = {
        "spotify_track_id": track_id,
        "title": title,
        "artist": artist,
        "artists": [artist],
        "album": "A Night at the Opera",
        "release_date": "1975-10-31",
        "duration_ms": 354_320,
        "popularity": 88,
        "preview_url": f"https://p.scdn.co/{track_id}",
        "external_url": f"https://open.spotify.com/track/{track_id}",
        "isrc": None,
    }
    payload.update(extra)
    return payload


class _FakeProvider:
    def __init__(self, tracks=None, error=None):
        self.tracks = tracks or []
        self.error = error
        self.calls = []

    def search_tracks(self, query, limit=20, *, access_token=None):
        self.calls.append((query, limit, access_token))
        if self.error is not None:
            raise self.error
        return list(self.tracks)


def test_enrich_skips_anonymous_and_disconnected_principals() -> None:
    provider = _FakeProvider([_track("t1", "Bohemian Rhapsody")])
    client = ExternalEnrichmentClient(provider)
    query = normalize_query("bohemian rhapsody", enrich=True)

    anonymous = asyncio.run(client.enrich(query, None))
    disconnected = asyncio.run(client.enrich(query, Principal(id="user-2")))

    assert anonymous.status is EnrichmentStatus.SKIPPED
    assert anonymous.reason is SkipReason.NOT_CONNECTED
    assert disconnected.reason is SkipReason.NOT_CONNECTED
    assert provider.calls == []


def test_enrich_maps_and_scores_provider_tracks() -> None:
    provider = _FakeProvider([_track("t1", "Bohemian Rhapsody"), _track("t2", "Killer Queen")])
    client = ExternalEnrichmentClient(provider)

    result = asyncio.run(client.enrich(normalize_query("bohemian rhapsody", limit=10, enrich=True), CONNECTED))

    assert result.status is EnrichmentStatus.COMPLETED
    assert provider.calls == [("bohemian rhapsody", 10, "user-token")]
    first = result.candidates[0]
    assert first.id == "spotify:t1"
    assert first.provenance is Provenance.EXTERNAL
    assert first.record.duration == 354
    assert first.record.release_year == 1975
    assert 0.0 < first.similarity <= 1.0
    assert first.similarity > result.candidates[1].similarity


def test_enrich_contains_provider_failures() -> None:
    client = ExternalEnrichmentClient(_FakeProvider(error=ProviderError("boom", status_code=500)))

    result = asyncio.run(client.enrich(normalize_query("queen", enrich=True), CONNECTED))

    assert result.status is EnrichmentStatus.SKIPPED
    assert result.reason is SkipReason.PROVIDER_ERROR
    assert result.candidates == ()


def test_enrich_caps_results() -> None:
    tracks = [_track(f"t{idx}", f"Song {idx}") for idx in range(80)]
    client = ExternalEnrichmentClient(_FakeProvider(tracks), max_results=200)

    result = asyncio.run(client.enrich(normalize_query("song", limit=50, enrich=True), CONNECTED))

    assert client.max_results == 50
    assert len(result.candidates) == 50


def test_to_external_track_handles_sparse_payloads() -> None:
    track = to_external_track(_track("t9", "Heroes", duration_ms=None, release_date=None, popularity=None))

    assert track.record_id == "spotify:t9"
    assert track.duration is None
    assert track.release_year is None
    assert to_external_track({"title": "missing id"}) is None


def test_release_year_parses_partial_dates() -> None:
    assert release_year("1977") == 1977
    assert release_year("1977-09") == 1977
    assert release_year("unknown") is None


def test_to_external_track_tolerates_non_numeric_fields() -> None:
    track = to_external_track(_track("t1", "X", artist="Y", duration_ms="n/a", popularity="hot"))

    assert track.duration is None
    assert track.popularity is None


def test_enrich_keeps_going_past_malformed_records() -> None:
    provider = _FakeProvider(
        [
            {"spotify_track_id": "t1", "title": "X", "artist": "Y", "duration_ms": "n/a"},
            _track("t2", "Bohemian Rhapsody", popularity="88"),
        ]
    )
    client = ExternalEnrichmentClient(provider)

    result = asyncio.run(client.enrich(normalize_query("bohemian rhapsody", enrich=True), CONNECTED))

    assert result.status is EnrichmentStatus.COMPLETED
    assert {c.id for c in result.candidates} == {"spotify:t1", "spotify:t2"}
    by_id = {c.id: c for c in result.candidates}
    assert by_id["spotify:t2"].record.popularity == 88
