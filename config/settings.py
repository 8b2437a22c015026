"""Application settings constants."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent

APP_NAME = "MusicEZ API"
APP_VERSION = "1.0.0"
API_PREFIX = "/api/v1"

DB_PATH = os.getenv("MUSICEZ_DB_PATH", str(PROJECT_ROOT / "data" / "musicez.sqlite3"))
LOG_LEVEL = os.getenv("MUSICEZ_LOG_LEVEL", "INFO")
# Unset keeps the search cache in process memory.
CACHE_PATH = os.getenv("MUSICEZ_CACHE_PATH") or None
TRUST_PROXY = os.getenv("MUSICEZ_TRUST_PROXY", "").strip().lower() in {"1", "true", "yes", "on"}

# Query bounds.
MIN_QUERY_LENGTH = 2
MAX_QUERY_LENGTH = 500
DEFAULT_LIMIT = 20
MIN_LIMIT = 1
MAX_LIMIT = 50
DEFAULT_THRESHOLD = 0.3
MIN_THRESHOLD = 0.1
MAX_THRESHOLD = 1.0

# Local-only entries churn with the catalog; Spotify-backed entries cost more to rebuild.
LOCAL_CACHE_TTL_SECONDS = int(os.getenv("MUSICEZ_LOCAL_CACHE_TTL_SECONDS", "300"))
EXTERNAL_CACHE_TTL_SECONDS = int(os.getenv("MUSICEZ_EXTERNAL_CACHE_TTL_SECONDS", "3600"))

ENRICHMENT_TIMEOUT_SECONDS = float(os.getenv("MUSICEZ_ENRICHMENT_TIMEOUT_SECONDS", "5"))
PROVIDER_CONNECT_TIMEOUT_SECONDS = float(os.getenv("MUSICEZ_PROVIDER_CONNECT_TIMEOUT_SECONDS", "2"))
MAX_EXTERNAL_RESULTS = 50

PERFORMANCE_TARGET_MS = float(os.getenv("MUSICEZ_PERFORMANCE_TARGET_MS", "200"))
SEARCH_OVERSAMPLE = int(os.getenv("MUSICEZ_SEARCH_OVERSAMPLE", "2"))

SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET")
SPOTIFY_MARKET = os.getenv("SPOTIFY_MARKET", "US")


@dataclass(frozen=True)
class SearchSettings:
    db_path: str = DB_PATH
    log_level: str = LOG_LEVEL
    cache_path: str | None = CACHE_PATH
    local_cache_ttl_seconds: int = LOCAL_CACHE_TTL_SECONDS
    external_cache_ttl_seconds: int = EXTERNAL_CACHE_TTL_SECONDS
    enrichment_timeout_seconds: float = ENRICHMENT_TIMEOUT_SECONDS
    provider_connect_timeout_seconds: float = PROVIDER_CONNECT_TIMEOUT_SECONDS
    max_external_results: int = MAX_EXTERNAL_RESULTS
    performance_target_ms: float = PERFORMANCE_TARGET_MS
    search_oversample: int = SEARCH_OVERSAMPLE
    spotify_client_id: str | None = SPOTIFY_CLIENT_ID
    spotify_client_secret: str | None = SPOTIFY_CLIENT_SECRET
    spotify_market: str = SPOTIFY_MARKET


def load_settings(**overrides) -> SearchSettings:
    """Build settings from the environment-derived defaults plus explicit overrides."""
    return SearchSettings(**overrides)
