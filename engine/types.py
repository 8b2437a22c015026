"""Structured types flowing through the search pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Protocol

from engine.text_normalization import identity_key


class Provenance(Enum):
    LOCAL = "local"
    EXTERNAL = "spotify"
    MERGED = "merged"


class EnrichmentStatus(Enum):
    NOT_REQUESTED = "not_requested"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class SkipReason(Enum):
    NOT_CONNECTED = "not_connected"
    PROVIDER_ERROR = "provider_error"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as handed over by the auth layer."""

    id: str
    spotify_connected: bool = False
    spotify_access_token: str | None = None


@dataclass(frozen=True)
class SearchQuery:
    text: str
    limit: int
    threshold: float
    enrich: bool = False
    fresh: bool = False
    principal_id: str | None = None


@dataclass(frozen=True)
class AudioFeatures:
    energy: float | None = None
    danceability: float | None = None
    valence: float | None = None
    acousticness: float | None = None
    instrumentalness: float | None = None
    speechiness: float | None = None
    liveness: float | None = None
    loudness: float | None = None
    tempo: float | None = None
    key: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> "AudioFeatures | None":
        if not isinstance(payload, dict):
            return None
        known = {f.name for f in fields(cls)}
        values = {name: payload[name] for name in known if payload.get(name) is not None}
        if not values:
            return None
        return cls(**values)


class TrackRecord(Protocol):
    """Common surface of local catalog rows and partial provider tracks."""

    title: str
    artist: str
    album: str | None
    popularity: int | None

    @property
    def record_id(self) -> str: ...

    @property
    def identity_key(self) -> tuple[str, str]: ...


@dataclass(frozen=True)
class CatalogRecord:
    """Canonical song row owned by the local catalog."""

    id: str
    title: str
    artist: str
    album: str | None = None
    duration: int | None = None
    release_year: int | None = None
    popularity: int | None = None
    spotify_id: str | None = None
    preview_url: str | None = None
    external_url: str | None = None
    audio_features: AudioFeatures | None = None

    @property
    def record_id(self) -> str:
        return self.id

    @property
    def identity_key(self) -> tuple[str, str]:
        return identity_key(self.title, self.artist)

    @property
    def searchable_text(self) -> str:
        return " ".join(part for part in (self.title, self.artist, self.album) if part)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "duration": self.duration,
            "releaseYear": self.release_year,
            "popularity": self.popularity,
            "spotifyId": self.spotify_id,
            "previewUrl": self.preview_url,
            "externalUrl": self.external_url,
        }
        if self.audio_features is not None:
            payload["audioFeatures"] = self.audio_features.to_dict()
        return payload


@dataclass(frozen=True)
class ExternalTrack:
    """Provider-native track; fields only the local catalog knows are absent."""

    spotify_id: str
    title: str
    artist: str
    album: str | None = None
    duration: int | None = None
    release_year: int | None = None
    popularity: int | None = None
    preview_url: str | None = None
    external_url: str | None = None

    @property
    def record_id(self) -> str:
        return f"spotify:{self.spotify_id}"

    @property
    def identity_key(self) -> tuple[str, str]:
        return identity_key(self.title, self.artist)

    @property
    def searchable_text(self) -> str:
        return " ".join(part for part in (self.title, self.artist, self.album) if part)


@dataclass(frozen=True)
class ScoredCandidate:
    record: CatalogRecord | ExternalTrack
    similarity: float
    provenance: Provenance
    external: ExternalTrack | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.similarity <= 1.0:
            raise ValueError(f"similarity must be within [0, 1], got {self.similarity!r}")

    @property
    def id(self) -> str:
        return self.record.record_id

    @property
    def title(self) -> str:
        return self.record.title

    @property
    def artist(self) -> str:
        return self.record.artist

    @property
    def popularity(self) -> int:
        return int(self.record.popularity or 0)

    @property
    def identity_key(self) -> tuple[str, str]:
        return self.record.identity_key

    @property
    def is_local(self) -> bool:
        return self.provenance in (Provenance.LOCAL, Provenance.MERGED)

    def to_dict(self) -> dict[str, Any]:
        record = self.record
        payload: dict[str, Any] = {
            "id": record.record_id,
            "title": record.title,
            "artist": record.artist,
            "album": record.album,
            "duration": record.duration,
            "releaseYear": record.release_year,
            "popularity": record.popularity,
            "similarity": self.similarity,
            "source": self.provenance.value,
        }
        spotify_id = _first_present(self.external and self.external.spotify_id, record.spotify_id)
        preview_url = _first_present(self.external and self.external.preview_url, record.preview_url)
        external_url = _first_present(self.external and self.external.external_url, record.external_url)
        if spotify_id:
            payload["spotifyId"] = spotify_id
        if preview_url:
            payload["previewUrl"] = preview_url
        if external_url:
            payload["externalUrl"] = external_url
        features = getattr(record, "audio_features", None)
        if features is not None and features.to_dict():
            payload["audioFeatures"] = features.to_dict()
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ScoredCandidate":
        provenance = Provenance(payload["source"])
        record: CatalogRecord | ExternalTrack
        if provenance is Provenance.EXTERNAL:
            record = ExternalTrack(
                spotify_id=str(payload["spotifyId"]),
                title=payload["title"],
                artist=payload["artist"],
                album=payload.get("album"),
                duration=payload.get("duration"),
                release_year=payload.get("releaseYear"),
                popularity=payload.get("popularity"),
                preview_url=payload.get("previewUrl"),
                external_url=payload.get("externalUrl"),
            )
        else:
            record = CatalogRecord(
                id=payload["id"],
                title=payload["title"],
                artist=payload["artist"],
                album=payload.get("album"),
                duration=payload.get("duration"),
                release_year=payload.get("releaseYear"),
                popularity=payload.get("popularity"),
                spotify_id=payload.get("spotifyId"),
                preview_url=payload.get("previewUrl"),
                external_url=payload.get("externalUrl"),
                audio_features=AudioFeatures.from_dict(payload.get("audioFeatures")),
            )
        return cls(record=record, similarity=float(payload["similarity"]), provenance=provenance)


def _first_present(*values: str | None) -> str | None:
    for value in values:
        if value:
            return value
    return None


@dataclass(frozen=True)
class EnrichmentResult:
    status: EnrichmentStatus
    candidates: tuple[ScoredCandidate, ...] = ()
    reason: SkipReason | None = None

    @classmethod
    def skipped(cls, reason: SkipReason) -> "EnrichmentResult":
        return cls(status=EnrichmentStatus.SKIPPED, reason=reason)


@dataclass(frozen=True)
class SearchMetadata:
    query: str
    limit: int
    threshold: float
    total: int = 0
    cached: bool = False
    local_ms: float | None = None
    external_ms: float | None = None
    total_ms: float = 0.0
    local_count: int = 0
    external_count: int = 0
    merged_count: int = 0
    spotify_enabled: bool = False
    enrichment_status: EnrichmentStatus = EnrichmentStatus.NOT_REQUESTED
    enrichment_reason: SkipReason | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "query": self.query,
            "limit": self.limit,
            "threshold": self.threshold,
            "cached": self.cached,
            "processingTime": {
                "local": self.local_ms,
                "external": self.external_ms,
                "total": self.total_ms,
            },
            "sources": {
                "local": self.local_count,
                "spotify": self.external_count,
                "merged": self.merged_count,
            },
            "localResults": self.local_count + self.merged_count,
            "spotifyResults": self.external_count,
            "spotifyEnabled": self.spotify_enabled,
            "enrichment": {
                "status": self.enrichment_status.value,
                "reason": self.enrichment_reason.value if self.enrichment_reason else None,
            },
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "SearchMetadata":
        timings = payload.get("processingTime") or {}
        sources = payload.get("sources") or {}
        enrichment = payload.get("enrichment") or {}
        reason = enrichment.get("reason")
        return cls(
            query=payload["query"],
            limit=int(payload["limit"]),
            threshold=float(payload["threshold"]),
            total=int(payload.get("total") or 0),
            cached=bool(payload.get("cached")),
            local_ms=timings.get("local"),
            external_ms=timings.get("external"),
            total_ms=float(timings.get("total") or 0.0),
            local_count=int(sources.get("local") or 0),
            external_count=int(sources.get("spotify") or 0),
            merged_count=int(sources.get("merged") or 0),
            spotify_enabled=bool(payload.get("spotifyEnabled")),
            enrichment_status=EnrichmentStatus(enrichment.get("status") or EnrichmentStatus.NOT_REQUESTED.value),
            enrichment_reason=SkipReason(reason) if reason else None,
        )


@dataclass(frozen=True)
class SearchResultSet:
    candidates: tuple[ScoredCandidate, ...]
    metadata: SearchMetadata

    @property
    def has_external(self) -> bool:
        return any(c.provenance is not Provenance.LOCAL for c in self.candidates)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [candidate.to_dict() for candidate in self.candidates],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "SearchResultSet":
        return cls(
            candidates=tuple(ScoredCandidate.from_dict(item) for item in payload.get("results") or []),
            metadata=SearchMetadata.from_dict(payload["metadata"]),
        )


@dataclass(frozen=True)
class CacheEntry:
    key: str
    snapshot: dict[str, Any]
    expires_at: float
    ttl_seconds: int = field(default=0, compare=False)
