from __future__ import annotations

import pytest

from engine.trigrams import similarity, similarity_from_counts, trigrams


def test_trigrams_pad_each_word() -> None:
    assert trigrams("cat") == {"  c", " ca", "cat", "at "}


def test_trigrams_fold_case_and_split_on_punctuation() -> None:
    assert trigrams("Cat!") == trigrams("cat")
    assert trigrams("a-b") == trigrams("a b")


def test_trigrams_of_empty_text_is_empty() -> None:
    assert trigrams("") == frozenset()
    assert trigrams(None) == frozenset()
    assert trigrams("!!!") == frozenset()


def test_similarity_identical_text_is_one() -> None:
    assert similarity("Bohemian Rhapsody", "bohemian rhapsody") == 1.0


def test_similarity_disjoint_text_is_zero() -> None:
    assert similarity("abc", "xyz") == 0.0
    assert similarity("", "abc") == 0.0


def test_similarity_matches_pg_trgm_reference_value() -> None:
    # Same value as PostgreSQL: similarity('word', 'two words') = 0.363636.
    assert similarity("word", "two words") == pytest.approx(4 / 11)


def test_similarity_is_symmetric_and_bounded() -> None:
    left = "bohemian rhapsody queen"
    right = "bohemian"
    score = similarity(left, right)

    assert score == similarity(right, left)
    assert 0.0 < score < 1.0


def test_similarity_from_counts_handles_empty_union() -> None:
    assert similarity_from_counts(0, 0, 0) == 0.0
    assert similarity_from_counts(3, 3, 3) == 1.0
