"""Merge local and Spotify candidates into one ranked, duplicate-free page."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from engine.types import ExternalTrack, Provenance, ScoredCandidate

_LOG = logging.getLogger(__name__)


def rank_key(candidate: ScoredCandidate) -> tuple:
    """Total order: similarity desc, local before external, popularity desc, then identity and id."""
    return (
        -candidate.similarity,
        0 if candidate.is_local else 1,
        -candidate.popularity,
        candidate.identity_key,
        candidate.id,
    )


def merge_candidates(
    local: Iterable[ScoredCandidate],
    external: Iterable[ScoredCandidate],
    *,
    limit: int,
) -> list[ScoredCandidate]:
    """Deduplicate by normalized (title, artist), rank, and truncate to ``limit``.

    A local row always wins a cross-source collision; it keeps its id and
    catalog fields, is tagged ``merged`` and carries the provider track
    alongside. The merged score is the better of the two.
    """
    by_key = _best_per_key(local)
    external_best = _best_per_key(external)

    for key, ext in external_best.items():
        existing = by_key.get(key)
        if existing is None:
            by_key[key] = ext
            continue
        by_key[key] = _merge_pair(existing, ext)

    ranked = sorted(by_key.values(), key=rank_key)
    if limit <= 0:
        return []
    return ranked[:limit]


def _best_per_key(candidates: Iterable[ScoredCandidate]) -> dict[tuple[str, str], ScoredCandidate]:
    best: dict[tuple[str, str], ScoredCandidate] = {}
    for candidate in candidates:
        key = candidate.identity_key
        current = best.get(key)
        if current is None or rank_key(candidate) < rank_key(current):
            if current is not None:
                _LOG.debug("merge_duplicate_dropped key=%s id=%s kept=%s", key, current.id, candidate.id)
            best[key] = candidate
        else:
            _LOG.debug("merge_duplicate_dropped key=%s id=%s kept=%s", key, candidate.id, current.id)
    return best


def _merge_pair(local: ScoredCandidate, ext: ScoredCandidate) -> ScoredCandidate:
    external_track = ext.record if isinstance(ext.record, ExternalTrack) else ext.external
    _LOG.debug("merge_cross_source key=%s local=%s spotify=%s", local.identity_key, local.id, ext.id)
    return replace(
        local,
        similarity=max(local.similarity, ext.similarity),
        provenance=Provenance.MERGED,
        external=external_track,
    )
