from __future__ import annotations

import logging
import sqlite3

from engine.errors import CatalogUnavailable
from engine.types import CatalogRecord, Provenance, ScoredCandidate, SearchQuery

logger = logging.getLogger(__name__)

DEFAULT_OVERSAMPLE = 2


class LocalCatalogSearch:
    """Trigram search over the local catalog.

    Fetches ``limit * oversample`` rows so that merge-time dedup losses do not
    shrink the final page below ``limit``.
    """

    def __init__(self, catalog, *, oversample: int = DEFAULT_OVERSAMPLE):
        self.catalog = catalog
        self.oversample = max(1, int(oversample))

    def search(self, query: SearchQuery) -> list[ScoredCandidate]:
        fetch_limit = query.limit * self.oversample
        try:
            rows = self.catalog.search_similar(query.text, query.threshold, fetch_limit)
        except sqlite3.Error as exc:
            logger.error("[CATALOG] search failed query=%r error=%s", query.text, exc)
            raise CatalogUnavailable("Song catalog is unavailable") from exc

        candidates = [_to_candidate(record, score) for record, score in rows if score >= query.threshold]
        logger.debug("[CATALOG] search query=%r candidates=%s", query.text, len(candidates))
        return candidates[:fetch_limit]


def _to_candidate(record: CatalogRecord, score: float) -> ScoredCandidate:
    return ScoredCandidate(
        record=record,
        similarity=min(1.0, max(0.0, float(score))),
        provenance=Provenance.LOCAL,
    )
