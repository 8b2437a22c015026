"""Search orchestration: cache, local search, optional enrichment, merge."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace

from engine.cache import SearchCache, cache_key
from engine.enrichment import ExternalEnrichmentClient, is_enrichment_eligible
from engine.errors import CatalogUnavailable
from engine.json_utils import safe_json_dumps
from engine.local_search import LocalCatalogSearch
from engine.merge import merge_candidates
from engine.types import (
    EnrichmentResult,
    EnrichmentStatus,
    Principal,
    Provenance,
    ScoredCandidate,
    SearchMetadata,
    SearchQuery,
    SearchResultSet,
    SkipReason,
)

logger = logging.getLogger(__name__)

DEFAULT_ENRICHMENT_TIMEOUT_SECONDS = 5.0
DEFAULT_PERFORMANCE_TARGET_MS = 200


def _log_event(level, message, **fields):
    payload = {"message": message, **fields}
    try:
        logger.log(level, safe_json_dumps(payload, sort_keys=True))
    except Exception as exc:
        logger.log(level, f"log_event_serialization_failed: {exc} message={message}")


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000.0, 2)


class SearchOrchestrator:
    """Runs one search request end to end.

    Local search always runs. Enrichment runs beside it only when the query
    asks for it and the principal is connected; it gets
    ``enrichment_timeout`` seconds from launch, after which it is cancelled
    and the request proceeds with local results alone.
    """

    def __init__(
        self,
        local_search: LocalCatalogSearch,
        enrichment: ExternalEnrichmentClient | None,
        cache: SearchCache,
        *,
        enrichment_timeout: float = DEFAULT_ENRICHMENT_TIMEOUT_SECONDS,
        performance_target_ms: float = DEFAULT_PERFORMANCE_TARGET_MS,
    ):
        self.local_search = local_search
        self.enrichment = enrichment
        self.cache = cache
        self.enrichment_timeout = float(enrichment_timeout)
        self.performance_target_ms = float(performance_target_ms)

    async def search(self, query: SearchQuery, principal: Principal | None = None) -> SearchResultSet:
        started = time.perf_counter()
        key = cache_key(query)

        if not query.fresh:
            cached = await asyncio.to_thread(self.cache.load, key)
            if cached is not None:
                result = _as_cache_hit(cached, _elapsed_ms(started))
                self._log_completion(query, result)
                return result

        eligible = query.enrich and self.enrichment is not None and is_enrichment_eligible(principal)

        local_task = asyncio.create_task(self._run_local(query))
        enrich_task = asyncio.create_task(self._run_enrichment(query, principal)) if eligible else None
        try:
            enrichment, external_ms = await self._await_enrichment(enrich_task, query)
            try:
                local_candidates, local_ms = await local_task
            except CatalogUnavailable as exc:
                return await self._handle_catalog_outage(query, key, enrichment, external_ms, started, exc)
        except asyncio.CancelledError:
            local_task.cancel()
            if enrich_task is not None:
                enrich_task.cancel()
            raise

        merged = merge_candidates(local_candidates, enrichment.candidates, limit=query.limit)
        result = SearchResultSet(
            candidates=tuple(merged),
            metadata=_build_metadata(
                query,
                merged,
                enrichment,
                local_ms=local_ms,
                external_ms=external_ms,
                total_ms=_elapsed_ms(started),
                spotify_enabled=eligible,
            ),
        )
        await asyncio.to_thread(self.cache.put, key, result)
        self._log_completion(query, result)
        return result

    async def _run_local(self, query: SearchQuery) -> tuple[list[ScoredCandidate], float]:
        started = time.perf_counter()
        candidates = await asyncio.to_thread(self.local_search.search, query)
        return candidates, _elapsed_ms(started)

    async def _run_enrichment(self, query: SearchQuery, principal: Principal | None) -> tuple[EnrichmentResult, float]:
        started = time.perf_counter()
        result = await self.enrichment.enrich(query, principal)
        return result, _elapsed_ms(started)

    async def _await_enrichment(
        self,
        enrich_task: asyncio.Task | None,
        query: SearchQuery,
    ) -> tuple[EnrichmentResult, float | None]:
        if enrich_task is None:
            if query.enrich:
                return EnrichmentResult.skipped(SkipReason.NOT_CONNECTED), None
            return EnrichmentResult(status=EnrichmentStatus.NOT_REQUESTED), None

        started = time.perf_counter()
        done, _ = await asyncio.wait({enrich_task}, timeout=self.enrichment_timeout)
        if enrich_task in done:
            try:
                return enrich_task.result()
            except Exception as exc:
                _log_event(
                    logging.WARNING,
                    "enrichment_failed",
                    query=query.text,
                    error=f"{type(exc).__name__}: {exc}",
                )
                return EnrichmentResult.skipped(SkipReason.PROVIDER_ERROR), _elapsed_ms(started)

        enrich_task.cancel()
        _log_event(
            logging.WARNING,
            "enrichment_timeout",
            query=query.text,
            timeout_seconds=self.enrichment_timeout,
        )
        return EnrichmentResult.skipped(SkipReason.TIMEOUT), _elapsed_ms(started)

    async def _handle_catalog_outage(
        self,
        query: SearchQuery,
        key: str,
        enrichment: EnrichmentResult,
        external_ms: float | None,
        started: float,
        error: CatalogUnavailable,
    ) -> SearchResultSet:
        if enrichment.status is EnrichmentStatus.COMPLETED and enrichment.candidates:
            merged = merge_candidates([], enrichment.candidates, limit=query.limit)
            result = SearchResultSet(
                candidates=tuple(merged),
                metadata=_build_metadata(
                    query,
                    merged,
                    enrichment,
                    local_ms=None,
                    external_ms=external_ms,
                    total_ms=_elapsed_ms(started),
                    spotify_enabled=True,
                ),
            )
            _log_event(logging.WARNING, "search_degraded", query=query.text, mode="external_only")
            return result

        stale = await asyncio.to_thread(self.cache.load, key)
        if stale is not None:
            _log_event(logging.WARNING, "search_degraded", query=query.text, mode="cached")
            return _as_cache_hit(stale, _elapsed_ms(started))
        raise error

    def _log_completion(self, query: SearchQuery, result: SearchResultSet) -> None:
        meta = result.metadata
        _log_event(
            logging.INFO,
            "search_completed",
            query=query.text,
            results=meta.total,
            cached=meta.cached,
            local_ms=meta.local_ms,
            external_ms=meta.external_ms,
            total_ms=meta.total_ms,
            enrichment=meta.enrichment_status.value,
            enrichment_reason=meta.enrichment_reason.value if meta.enrichment_reason else None,
        )
        if meta.total_ms > self.performance_target_ms:
            logger.warning(
                "search_slow query=%r total_ms=%s target_ms=%s",
                query.text,
                meta.total_ms,
                self.performance_target_ms,
            )


def _as_cache_hit(result: SearchResultSet, total_ms: float) -> SearchResultSet:
    return replace(result, metadata=replace(result.metadata, cached=True, total_ms=total_ms))


def _build_metadata(
    query: SearchQuery,
    candidates: list[ScoredCandidate],
    enrichment: EnrichmentResult,
    *,
    local_ms: float | None,
    external_ms: float | None,
    total_ms: float,
    spotify_enabled: bool,
) -> SearchMetadata:
    counts = {provenance: 0 for provenance in Provenance}
    for candidate in candidates:
        counts[candidate.provenance] += 1
    return SearchMetadata(
        query=query.text,
        limit=query.limit,
        threshold=query.threshold,
        total=len(candidates),
        cached=False,
        local_ms=local_ms,
        external_ms=external_ms,
        total_ms=total_ms,
        local_count=counts[Provenance.LOCAL],
        external_count=counts[Provenance.EXTERNAL],
        merged_count=counts[Provenance.MERGED],
        spotify_enabled=spotify_enabled,
        enrichment_status=enrichment.status,
        enrichment_reason=enrichment.reason,
    )
