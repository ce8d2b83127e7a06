"""Unit tests for query normalization.

Tests query preprocessing used before searching and when retrying with a
broader query.
"""

import pytest

from verisource.utils.query_normalizer import (
    extract_keywords,
    mentions_any,
    normalize_query,
    simplify_query,
)


def test_normalize_query_lowercase():
    """Test that query is converted to lowercase."""
    assert normalize_query("Canada Revenue AGENCY") == "canada revenue agency"


def test_normalize_query_special_chars():
    """Test that special characters are removed."""
    assert normalize_query("what's new?!") == "whats new"


def test_normalize_query_multiple_spaces():
    """Test that multiple spaces are collapsed."""
    assert normalize_query("rrsp    limit") == "rrsp limit"


def test_normalize_query_empty():
    """Test empty query handling."""
    assert normalize_query("") == ""


def test_normalize_query_preserves_accents():
    """Test that unicode letters survive normalization."""
    assert normalize_query("Impôt sur le revenu") == "impôt sur le revenu"


def test_extract_keywords_drops_short_words():
    assert extract_keywords("is a TFSA taxable") == ["tfsa", "taxable"]


@pytest.mark.parametrize(
    "query,expected",
    [
        ("How do I claim the home office deduction?", "claim home office"),
        ("What is the RRSP contribution limit for 2024?", "rrsp contribution limit"),
        ("capital gains", "capital gains"),
        ("what is it", ""),
    ],
)
def test_simplify_query(query: str, expected: str):
    assert simplify_query(query) == expected


def test_mentions_any_matches_whole_words_and_phrases():
    assert mentions_any("Is my RRSP taxable?", ["rrsp"])
    assert mentions_any("capital gains on a cottage", ["capital gains"])
    assert not mentions_any("syntax highlighting", ["tax"])
    assert not mentions_any("anything", [])
