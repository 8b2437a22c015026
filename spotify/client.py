"""Spotify Web API client for track search and track metadata."""

from __future__ import annotations

import base64
import logging
import os
import threading
import time
import urllib.parse
from typing import Any, TypedDict

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from engine.errors import ProviderError

logger = logging.getLogger(__name__)


class NormalizedTrack(TypedDict):
    """Normalized Spotify track record."""

    spotify_track_id: str
    title: str
    artist: str
    artists: list[str]
    album: str | None
    release_date: str | None
    duration_ms: int | None
    popularity: int | None
    preview_url: str | None
    external_url: str | None
    isrc: str | None


class SpotifyApiError(ProviderError):
    pass


class SpotifyCatalogClient:
    """Client for searching Spotify's track catalog.

    Uses the client-credentials flow unless a user access token is supplied
    per call. Every request carries a ``(connect, read)`` timeout so a stalled
    provider cannot hold a worker thread past the enrichment deadline.
    """

    _TOKEN_URL = "https://accounts.spotify.com/api/token"
    _SEARCH_URL = "https://api.spotify.com/v1/search"
    _TRACK_URL = "https://api.spotify.com/v1/tracks/{track_id}"
    _AUDIO_FEATURES_URL = "https://api.spotify.com/v1/audio-features/{track_id}"

    def __init__(
        self,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        market: str | None = "US",
        connect_timeout_sec: float = 2.0,
        read_timeout_sec: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self.client_id = client_id or os.environ.get("SPOTIFY_CLIENT_ID")
        self.client_secret = client_secret or os.environ.get("SPOTIFY_CLIENT_SECRET")
        self.market = market
        self.timeout = (float(connect_timeout_sec), float(read_timeout_sec))
        self._access_token: str | None = None
        self._access_token_expire_at: float = 0.0
        self._token_lock = threading.Lock()
        self._session = session or _build_session()

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _get_access_token(self) -> str:
        if not self.has_credentials:
            raise SpotifyApiError("Spotify credentials are required")

        with self._token_lock:
            now = time.time()
            if self._access_token and now < self._access_token_expire_at:
                return self._access_token

            auth_payload = f"{self.client_id}:{self.client_secret}".encode("utf-8")
            auth_header = base64.b64encode(auth_payload).decode("ascii")
            try:
                response = self._session.post(
                    self._TOKEN_URL,
                    data={"grant_type": "client_credentials"},
                    headers={"Authorization": f"Basic {auth_header}"},
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                raise SpotifyApiError(f"Spotify token request failed ({exc.__class__.__name__})") from exc
            if response.status_code != 200:
                raise SpotifyApiError(
                    f"Spotify token request failed ({response.status_code})",
                    status_code=response.status_code,
                )

            payload = response.json()
            token = payload.get("access_token")
            if not token:
                raise SpotifyApiError("Spotify token response missing access_token")

            expires_in = int(payload.get("expires_in") or 0)
            self._access_token = token
            self._access_token_expire_at = now + max(0, expires_in - 30)
            return token

    def _request_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        *,
        access_token: str | None = None,
        label: str = "request",
    ) -> dict[str, Any]:
        token = access_token or self._get_access_token()
        response = self._get(url, params, token, label)
        if response.status_code == 401 and not access_token:
            self._access_token = None
            token = self._get_access_token()
            response = self._get(url, params, token, label)
        logger.info("[SPOTIFY] request=%s status=%s", label, response.status_code)
        if response.status_code != 200:
            raise SpotifyApiError(
                f"Spotify request failed ({response.status_code})",
                status_code=response.status_code,
            )
        return response.json()

    def _get(self, url: str, params: dict[str, Any] | None, token: str, label: str) -> requests.Response:
        try:
            return self._session.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.info("[SPOTIFY] request=%s status=error error=%s", label, exc.__class__.__name__)
            raise SpotifyApiError(f"Spotify request failed ({exc.__class__.__name__})") from exc

    def search_tracks(
        self,
        query: str,
        limit: int = 20,
        *,
        access_token: str | None = None,
    ) -> list[NormalizedTrack]:
        """Search Spotify tracks and return normalized records in provider order."""
        cleaned = (query or "").strip()
        if not cleaned:
            raise ValueError("query is required")
        params: dict[str, Any] = {
            "q": cleaned,
            "type": "track",
            "limit": max(1, min(int(limit), 50)),
        }
        if self.market:
            params["market"] = self.market
        payload = self._request_json(self._SEARCH_URL, params=params, access_token=access_token, label="search")
        items = (payload.get("tracks") or {}).get("items") or []
        tracks: list[NormalizedTrack] = []
        for raw in items:
            track = normalize_track(raw)
            if track is not None:
                tracks.append(track)
        return tracks

    def get_track(self, track_id: str) -> NormalizedTrack | None:
        """Fetch one track by Spotify id; ``None`` when Spotify does not know it."""
        cleaned = (track_id or "").strip()
        if not cleaned:
            raise ValueError("track_id is required")
        encoded_id = urllib.parse.quote(cleaned, safe="")
        params = {"market": self.market} if self.market else None
        try:
            payload = self._request_json(self._TRACK_URL.format(track_id=encoded_id), params=params, label="track")
        except SpotifyApiError as exc:
            if exc.status_code in (400, 404):
                return None
            raise
        return normalize_track(payload)

    def get_audio_features(self, track_id: str) -> dict[str, Any] | None:
        cleaned = (track_id or "").strip()
        if not cleaned:
            return None
        encoded_id = urllib.parse.quote(cleaned, safe="")
        try:
            payload = self._request_json(
                self._AUDIO_FEATURES_URL.format(track_id=encoded_id),
                label="audio_features",
            )
        except SpotifyApiError as exc:
            if exc.status_code in (403, 404):
                return None
            raise
        return payload if isinstance(payload, dict) else None


def normalize_track(raw: Any) -> NormalizedTrack | None:
    if not isinstance(raw, dict):
        return None
    track_id = raw.get("id")
    title = raw.get("name")
    if not track_id or not title:
        return None
    artist_names = [
        str(artist.get("name")).strip()
        for artist in (raw.get("artists") or [])
        if isinstance(artist, dict) and artist.get("name")
    ]
    album = raw.get("album") or {}
    external_ids = raw.get("external_ids") or {}
    external_urls = raw.get("external_urls") or {}
    return {
        "spotify_track_id": str(track_id),
        "title": str(title),
        "artist": ", ".join(artist_names) or "Unknown Artist",
        "artists": artist_names,
        "album": album.get("name"),
        "release_date": album.get("release_date"),
        "duration_ms": raw.get("duration_ms"),
        "popularity": raw.get("popularity"),
        "preview_url": raw.get("preview_url"),
        "external_url": external_urls.get("spotify"),
        "isrc": external_ids.get("isrc"),
    }


def _build_session() -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=1,
        connect=1,
        read=0,
        backoff_factor=0.2,
        status_forcelist=(502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        respect_retry_after_header=False,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session
