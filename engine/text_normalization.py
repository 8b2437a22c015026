from __future__ import annotations

import re
import unicodedata

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[\W_]+")
# Letters, digits, whitespace and hyphens survive query sanitizing.
_QUERY_JUNK_RE = re.compile(r"[^\w\s-]|_")


def normalize_phrase(value: str | None) -> str:
    """Fold case, accents-as-composed and punctuation so equal phrases compare equal."""
    text = unicodedata.normalize("NFKC", str(value or "")).lower().strip()
    text = _NON_WORD_RE.sub(" ", text)
    return _WS_RE.sub(" ", text).strip()


def sanitize_query(value: str | None) -> str:
    if not value:
        return ""
    text = unicodedata.normalize("NFKC", str(value)).lower().strip()
    text = _TAG_RE.sub("", text)
    text = _QUERY_JUNK_RE.sub(" ", text)
    return _WS_RE.sub(" ", text).strip()


def identity_key(title: str | None, artist: str | None) -> tuple[str, str]:
    return normalize_phrase(title), normalize_phrase(artist)
