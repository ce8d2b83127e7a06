"""Query normalization utilities for search operations.

Provides functions to normalize, reduce and classify user queries before
they are sent to the search backend.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

STOP_WORDS = frozenset(
    {
        "what",
        "how",
        "when",
        "where",
        "why",
        "who",
        "is",
        "are",
        "can",
        "do",
        "does",
        "the",
        "a",
        "an",
        "for",
        "and",
        "with",
        "about",
        "should",
        "would",
        "could",
        "there",
        "this",
        "that",
    }
)


def normalize_query(query: str) -> str:
    """Normalize query for search operations.

    Performs the following normalizations:
    - Converts to lowercase
    - Removes special characters (except spaces)
    - Collapses multiple whitespaces
    - Preserves unicode characters (accents, etc.)

    Example:
        >>> normalize_query("What's the RRSP limit?!")
        'whats the rrsp limit'
    """
    if not query:
        return ""

    normalized = query.lower()
    normalized = re.sub(r"[^\w\s]", "", normalized)
    normalized = " ".join(normalized.split())

    return normalized


def extract_keywords(query: str) -> list[str]:
    """Extract keywords (words longer than 2 characters) from a query.

    Example:
        >>> extract_keywords("is a TFSA taxable")
        ['tfsa', 'taxable']
    """
    normalized = normalize_query(query)
    return [word for word in normalized.split() if len(word) > 2]


def simplify_query(query: str, max_words: int = 3) -> str:
    """Drop stop-words and keep the first few content words.

    Used to retry with a broader query when the targeted search under-delivers.

    Example:
        >>> simplify_query("How do I claim the home office deduction?")
        'claim home office'
    """
    words = [word for word in extract_keywords(query) if word not in STOP_WORDS]
    return " ".join(words[:max_words])


def mentions_any(query: str, terms: Iterable[str]) -> bool:
    """True if the normalized query contains any of ``terms`` as whole words or phrases."""
    padded = f" {normalize_query(query)} "
    for term in terms:
        needle = normalize_query(term)
        if needle and f" {needle} " in padded:
            return True
    return False
