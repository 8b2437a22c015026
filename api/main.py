#!/usr/bin/env python3
import json
import logging
import math
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import anyio
from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from config.settings import (
    API_PREFIX,
    APP_NAME,
    APP_VERSION,
    TRUST_PROXY,
    SearchSettings,
    load_settings,
)
from db.catalog import CatalogStore
from engine.cache import JsonFileCacheBackend, MemoryCacheBackend, SearchCache
from engine.enrichment import ExternalEnrichmentClient
from engine.errors import CatalogUnavailable, ImportNotFound, ProviderError, ValidationError
from engine.importer import TrackImporter
from engine.local_search import LocalCatalogSearch
from engine.orchestrator import SearchOrchestrator
from engine.query_normalizer import normalize_query
from engine.types import Principal
from spotify.client import SpotifyCatalogClient

_SUGGESTION_DEFAULT_LIMIT = 10


@dataclass
class SearchServices:
    catalog: CatalogStore
    orchestrator: SearchOrchestrator
    importer: TrackImporter


def build_services(settings: SearchSettings | None = None) -> SearchServices:
    settings = settings or load_settings()
    catalog = CatalogStore(settings.db_path)
    provider = SpotifyCatalogClient(
        client_id=settings.spotify_client_id,
        client_secret=settings.spotify_client_secret,
        market=settings.spotify_market,
        connect_timeout_sec=settings.provider_connect_timeout_seconds,
        read_timeout_sec=settings.enrichment_timeout_seconds,
    )
    backend = JsonFileCacheBackend(settings.cache_path) if settings.cache_path else MemoryCacheBackend()
    cache = SearchCache(
        backend,
        local_ttl=settings.local_cache_ttl_seconds,
        external_ttl=settings.external_cache_ttl_seconds,
    )
    orchestrator = SearchOrchestrator(
        LocalCatalogSearch(catalog, oversample=settings.search_oversample),
        ExternalEnrichmentClient(provider, max_results=settings.max_external_results),
        cache,
        enrichment_timeout=settings.enrichment_timeout_seconds,
        performance_target_ms=settings.performance_target_ms,
    )
    return SearchServices(
        catalog=catalog,
        orchestrator=orchestrator,
        importer=TrackImporter(catalog, provider),
    )


def _setup_logging(level_name):
    root = logging.getLogger("")
    level = logging.getLevelName(str(level_name or "INFO").upper())
    root.setLevel(level if isinstance(level, int) else logging.INFO)
    if not any(isinstance(handler, logging.StreamHandler) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        root.addHandler(handler)


def _timestamp():
    return datetime.now(timezone.utc).isoformat()


def _success(data, status_code=200):
    return SafeJSONResponse(
        {"success": True, "data": data, "timestamp": _timestamp()},
        status_code=status_code,
    )


def _error(status_code, code, message, *, field=None):
    error = {"code": code, "message": message}
    if field:
        error["field"] = field
    return SafeJSONResponse(
        {"success": False, "error": error, "timestamp": _timestamp()},
        status_code=status_code,
    )


def _finite(value):
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {key: _finite(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite(item) for item in value]
    return value


class SafeJSONResponse(JSONResponse):
    def render(self, content):
        return json.dumps(
            _finite(content),
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        ).encode("utf-8")


class ImportTrackPayload(BaseModel):
    spotifyId: str


app = FastAPI(
    title=APP_NAME,
    version=APP_VERSION,
    description="MusicEZ song search: fuzzy catalog search with optional Spotify enrichment.",
    default_response_class=SafeJSONResponse,
)

if TRUST_PROXY:
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")


@app.on_event("startup")
async def startup():
    settings = load_settings()
    _setup_logging(settings.log_level)
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(settings)
    logging.info("%s %s started db=%s", APP_NAME, APP_VERSION, settings.db_path)


def get_services(request: Request) -> SearchServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services()
        request.app.state.services = services
    return services


def resolve_principal(request: Request) -> Optional[Principal]:
    """Principal attached by the upstream auth layer; ``None`` for anonymous calls."""
    principal = getattr(request.state, "principal", None)
    return principal if isinstance(principal, Principal) else None


@app.exception_handler(ValidationError)
async def _validation_error_handler(request: Request, exc: ValidationError):
    return _error(400, "VALIDATION_ERROR", exc.message, field=exc.field)


@app.exception_handler(RequestValidationError)
async def _request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [part for part in first.get("loc", ()) if part not in ("query", "body")]
    field = str(location[-1]) if location else None
    return _error(400, "VALIDATION_ERROR", first.get("msg") or "Invalid request", field=field)


@app.exception_handler(CatalogUnavailable)
async def _catalog_unavailable_handler(request: Request, exc: CatalogUnavailable):
    return _error(503, "CATALOG_UNAVAILABLE", "Song search is temporarily unavailable")


@app.exception_handler(ImportNotFound)
async def _import_not_found_handler(request: Request, exc: ImportNotFound):
    return _error(404, "TRACK_NOT_FOUND", str(exc), field="spotifyId")


@app.exception_handler(ProviderError)
async def _provider_error_handler(request: Request, exc: ProviderError):
    logging.warning("provider_error path=%s status=%s error=%s", request.url.path, exc.status_code, exc)
    return _error(502, "PROVIDER_ERROR", "Spotify request failed")


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception):
    logging.exception("unhandled_error path=%s", request.url.path)
    return _error(500, "INTERNAL_ERROR", "Internal server error")


@app.get("/health")
async def health():
    return {"status": "ok", "version": APP_VERSION}


@app.get(f"{API_PREFIX}/songs/search")
async def search_songs(
    q: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    threshold: Optional[str] = Query(None),
    enrich: bool = Query(False),
    fresh: bool = Query(False),
    services: SearchServices = Depends(get_services),
    principal: Optional[Principal] = Depends(resolve_principal),
):
    query = normalize_query(
        q,
        limit=limit,
        threshold=threshold,
        enrich=enrich,
        fresh=fresh,
        principal_id=principal.id if principal else None,
    )
    result = await services.orchestrator.search(query, principal)
    return _success(result.to_dict())


@app.get(f"{API_PREFIX}/songs/search/suggestions")
async def search_suggestions(
    q: Optional[str] = Query(None),
    limit: int = Query(_SUGGESTION_DEFAULT_LIMIT, ge=1, le=20),
    services: SearchServices = Depends(get_services),
):
    query = normalize_query(q)
    try:
        suggestions = await anyio.to_thread.run_sync(services.catalog.suggest, query.text, limit)
    except sqlite3.Error as exc:
        logging.error("[CATALOG] suggestions failed query=%r error=%s", query.text, exc)
        raise CatalogUnavailable("Song catalog is unavailable") from exc
    return _success({"suggestions": suggestions, "query": query.text})


@app.post(f"{API_PREFIX}/songs/import")
async def import_song(
    payload: ImportTrackPayload = Body(...),
    services: SearchServices = Depends(get_services),
):
    result = await anyio.to_thread.run_sync(services.importer.import_track, payload.spotifyId)
    return _success(
        {"song": result.record.to_dict(), "created": result.created},
        status_code=201 if result.created else 200,
    )
