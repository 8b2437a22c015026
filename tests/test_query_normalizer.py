from __future__ import annotations

import pytest

from engine.errors import ValidationError
from engine.query_normalizer import normalize_query


def test_normalize_query_lowercases_and_strips_markup() -> None:
    query = normalize_query("  <b>Bohemian</b>   RHAPSODY!!  ")

    assert query.text == "bohemian rhapsody"
    assert query.limit == 20
    assert query.threshold == 0.3
    assert query.enrich is False
    assert query.fresh is False


def test_normalize_query_keeps_hyphens_and_digits() -> None:
    query = normalize_query("Jay-Z 99 Problems")

    assert query.text == "jay-z 99 problems"


def test_normalize_query_accepts_string_numbers() -> None:
    query = normalize_query("queen", limit="5", threshold="0.45", enrich=True, principal_id="user-1")

    assert query.limit == 5
    assert query.threshold == 0.45
    assert query.enrich is True
    assert query.principal_id == "user-1"


@pytest.mark.parametrize("raw", ["", None, "a", "  !! ", "<i></i>x"])
def test_normalize_query_rejects_short_input(raw) -> None:
    with pytest.raises(ValidationError) as exc_info:
        normalize_query(raw)

    assert exc_info.value.code == ValidationError.TOO_SHORT
    assert exc_info.value.field == "query"


def test_normalize_query_rejects_long_input() -> None:
    with pytest.raises(ValidationError) as exc_info:
        normalize_query("a" * 501)

    assert exc_info.value.code == ValidationError.TOO_LONG


def test_normalize_query_accepts_max_length_input() -> None:
    assert len(normalize_query("a" * 500).text) == 500


@pytest.mark.parametrize("limit", [0, 51, -3, "100"])
def test_normalize_query_rejects_out_of_range_limit(limit) -> None:
    with pytest.raises(ValidationError) as exc_info:
        normalize_query("queen", limit=limit)

    assert exc_info.value.code == ValidationError.OUT_OF_RANGE
    assert exc_info.value.field == "limit"


@pytest.mark.parametrize("threshold", [0.05, 1.5, "2", "nan"])
def test_normalize_query_rejects_out_of_range_threshold(threshold) -> None:
    with pytest.raises(ValidationError) as exc_info:
        normalize_query("queen", threshold=threshold)

    assert exc_info.value.code == ValidationError.OUT_OF_RANGE
    assert exc_info.value.field == "threshold"


@pytest.mark.parametrize(
    ("field", "kwargs"),
    [
        ("limit", {"limit": "ten"}),
        ("limit", {"limit": 2.5}),
        ("limit", {"limit": True}),
        ("threshold", {"threshold": "high"}),
    ],
)
def test_normalize_query_rejects_non_numeric_values(field, kwargs) -> None:
    with pytest.raises(ValidationError) as exc_info:
        normalize_query("queen", **kwargs)

    assert exc_info.value.code == ValidationError.INVALID_TYPE
    assert exc_info.value.field == field


def test_normalize_query_bounds_are_inclusive() -> None:
    low = normalize_query("queen", limit=1, threshold=0.1)
    high = normalize_query("queen", limit=50, threshold=1.0)

    assert (low.limit, low.threshold) == (1, 0.1)
    assert (high.limit, high.threshold) == (50, 1.0)
