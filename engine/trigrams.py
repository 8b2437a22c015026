"""Trigram extraction and similarity with PostgreSQL pg_trgm semantics.

Each alphanumeric word is lowercased and padded with two leading blanks and
one trailing blank before its three-character windows are collected, so
``"cat"`` yields ``{"  c", " ca", "cat", "at "}``. Similarity is the Jaccard
ratio of the two trigram sets.
"""

from __future__ import annotations

import re
import unicodedata

_WORD_RE = re.compile(r"[^\W_]+")


def trigrams(value: str | None) -> frozenset[str]:
    text = unicodedata.normalize("NFKC", str(value or "")).lower()
    grams: set[str] = set()
    for word in _WORD_RE.findall(text):
        padded = f"  {word} "
        for idx in range(len(padded) - 2):
            grams.add(padded[idx : idx + 3])
    return frozenset(grams)


def similarity_from_counts(common: int, left_count: int, right_count: int) -> float:
    union = left_count + right_count - common
    if union <= 0:
        return 0.0
    return min(1.0, max(0.0, common / union))


def similarity(left: str | None, right: str | None) -> float:
    left_grams = trigrams(left)
    right_grams = trigrams(right)
    common = len(left_grams & right_grams)
    return similarity_from_counts(common, len(left_grams), len(right_grams))
