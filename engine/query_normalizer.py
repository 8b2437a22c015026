from __future__ import annotations

import math
from typing import Any

from config.settings import (
    DEFAULT_LIMIT,
    DEFAULT_THRESHOLD,
    MAX_LIMIT,
    MAX_QUERY_LENGTH,
    MAX_THRESHOLD,
    MIN_LIMIT,
    MIN_QUERY_LENGTH,
    MIN_THRESHOLD,
)
from engine.errors import ValidationError
from engine.text_normalization import sanitize_query
from engine.types import SearchQuery


def normalize_query(
    raw: Any,
    *,
    limit: Any = None,
    threshold: Any = None,
    enrich: bool = False,
    fresh: bool = False,
    principal_id: str | None = None,
) -> SearchQuery:
    """Validate raw search input and build an immutable ``SearchQuery``.

    ``None`` for ``limit``/``threshold`` selects the default; explicit values
    outside the allowed range are rejected rather than clamped.
    """
    raw_text = "" if raw is None else str(raw)
    if len(raw_text) > MAX_QUERY_LENGTH:
        raise ValidationError(
            ValidationError.TOO_LONG,
            f"Query must not exceed {MAX_QUERY_LENGTH} characters",
        )
    text = sanitize_query(raw_text)
    if len(text) < MIN_QUERY_LENGTH:
        raise ValidationError(
            ValidationError.TOO_SHORT,
            f"Query must be at least {MIN_QUERY_LENGTH} characters",
        )

    return SearchQuery(
        text=text,
        limit=_validate_limit(limit),
        threshold=_validate_threshold(threshold),
        enrich=bool(enrich),
        fresh=bool(fresh),
        principal_id=principal_id,
    )


def _validate_limit(value: Any) -> int:
    if value is None:
        return DEFAULT_LIMIT
    if isinstance(value, bool):
        raise ValidationError(ValidationError.INVALID_TYPE, "Limit must be a positive integer", field="limit")
    try:
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(value)
        parsed = int(str(value).strip()) if not isinstance(value, (int, float)) else int(value)
    except (TypeError, ValueError):
        raise ValidationError(
            ValidationError.INVALID_TYPE, "Limit must be a positive integer", field="limit"
        ) from None
    if parsed < MIN_LIMIT or parsed > MAX_LIMIT:
        raise ValidationError(
            ValidationError.OUT_OF_RANGE,
            f"Limit must be between {MIN_LIMIT} and {MAX_LIMIT}",
            field="limit",
        )
    return parsed


def _validate_threshold(value: Any) -> float:
    if value is None:
        return DEFAULT_THRESHOLD
    if isinstance(value, bool):
        raise ValidationError(ValidationError.INVALID_TYPE, "Threshold must be a valid number", field="threshold")
    try:
        parsed = float(str(value).strip()) if not isinstance(value, (int, float)) else float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            ValidationError.INVALID_TYPE, "Threshold must be a valid number", field="threshold"
        ) from None
    if math.isnan(parsed) or parsed < MIN_THRESHOLD or parsed > MAX_THRESHOLD:
        raise ValidationError(
            ValidationError.OUT_OF_RANGE,
            f"Threshold must be between {MIN_THRESHOLD} and {MAX_THRESHOLD}",
            field="threshold",
        )
    return parsed
