"""Inline citation extraction and compliance validation.

Generated answers cite sources with markdown links, ``[Source Title](URL)``.
The validator checks that an answer cites enough sources, that factual
text is cited at all, and that every cited URL is one of the sources the
answer was given (allowing for cosmetic URL differences).
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

import structlog

from ..models.citation import CitationMatch, CitationValidationResult, UrlModification
from ..models.source import Source
from .url_utils import normalize_url_for_comparison

logger = structlog.get_logger(__name__)

# Title and URL lengths are capped so adversarial input cannot cause
# pathological backtracking. URLs may hold one level of balanced
# parentheses, as in Wikipedia article paths.
CITATION_PATTERN = re.compile(
    r"\[([^\[\]\n]{1,300})\]\(\s*((?:[^()\s]|\([^()\s]{0,256}\)){1,2048})\s*\)"
)

DEFAULT_FACTUAL_TERMS = (
    "according to",
    "based on",
    "shows that",
    "indicates that",
    "reports that",
    "states that",
    "found that",
    "CRA",
    "tax",
    "deduction",
    "income",
    "legislation",
)

URL_MODIFICATION_THRESHOLD = 0.7

EXAMPLE_CLAIMS = (
    "According to the information",
    "The regulations specify",
    "Recent guidance indicates",
)


def _compile_factual_pattern(terms: Iterable[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(term) for term in terms)
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


def string_similarity(first: str, second: str) -> float:
    """Positional similarity in [0, 1].

    Character-position equality over the shared prefix length (70%)
    blended with length similarity (30%).

    Example:
        >>> string_similarity("abc", "abc")
        1.0
    """
    len1, len2 = len(first), len(second)
    if len1 == 0:
        return 1.0 if len2 == 0 else 0.0
    if len2 == 0:
        return 0.0

    max_len = max(len1, len2)
    matches = sum(1 for a, b in zip(first, second) if a == b)
    length_similarity = 1 - abs(len1 - len2) / max_len
    return (matches / max_len) * 0.7 + length_similarity * 0.3


def has_complete_citations(chunk: str) -> bool:
    """Does the text so far contain a full citation and no unterminated bracket?

    Only a progress heuristic for streamed output, never a final check.
    """
    if not CITATION_PATTERN.search(chunk):
        return False
    return chunk.rfind("[") <= chunk.rfind("]")


def generate_citation_examples(sources: Sequence[Source]) -> str:
    """Render citation format examples for the answer-generation prompt."""
    if not sources:
        return "Note: No sources available for citation."

    examples = "\n".join(
        f"{claim} [{source.title}]({source.uri})" for claim, source in zip(EXAMPLE_CLAIMS, sources)
    )
    return (
        f"CITATION FORMAT EXAMPLES:\n{examples}\n\n"
        "REQUIRED: Use this exact format [Source Title](URL) immediately after factual statements."
    )


class CitationValidator:
    """Validates inline citations against the sources an answer was given.

    Args:
        min_citations: Default minimum citation count
        factual_terms: Phrases that mark text as making factual claims

    Example:
        >>> validator = CitationValidator()
        >>> result = validator.validate("A [CRA Guide](https://canada.ca/x) says Y.", sources)
        >>> result.citation_count
        1
    """

    def __init__(
        self,
        min_citations: int = 2,
        factual_terms: Iterable[str] = DEFAULT_FACTUAL_TERMS,
    ) -> None:
        self.min_citations = min_citations
        self._factual = _compile_factual_pattern(factual_terms)

    def extract(self, text: str) -> list[CitationMatch]:
        """All ``[Title](URL)`` markers, left to right, non-overlapping."""
        return [
            CitationMatch(
                text=match.group(0),
                title=match.group(1).strip(),
                url=match.group(2).strip(),
                start_index=match.start(),
                end_index=match.end(),
            )
            for match in CITATION_PATTERN.finditer(text)
        ]

    def is_factual(self, text: str) -> bool:
        return bool(self._factual.search(text))

    def validate(
        self,
        text: str,
        sources: Sequence[Source],
        min_citations: int | None = None,
    ) -> CitationValidationResult:
        """Check citation compliance of ``text`` against ``sources``.

        Returns:
            CitationValidationResult; failed checks are reported in ``issues``,
            never raised
        """
        minimum = self.min_citations if min_citations is None else min_citations
        citations = self.extract(text)
        citation_count = len(citations)
        issues: list[str] = []

        if len(sources) > 1 and citation_count < minimum:
            issues.append(
                f"Insufficient citations: found {citation_count}, required minimum "
                f"{minimum} when multiple sources available"
            )

        if citation_count == 0 and self.is_factual(text):
            issues.append("Response contains factual claims but no citations provided")

        exact_urls = {source.uri for source in sources}
        comparable_urls = {normalize_url_for_comparison(source.uri) for source in sources}
        unmatched = [
            citation
            for citation in citations
            if citation.url not in exact_urls
            and normalize_url_for_comparison(citation.url) not in comparable_urls
        ]
        if unmatched:
            issues.append(f"{len(unmatched)} citations reference URLs not in provided sources")
            for citation in unmatched:
                modification = self.detect_url_modification(citation.url, sources)
                logger.warning(
                    "citation_url_not_in_sources",
                    cited_url=citation.url,
                    title=citation.title,
                    likely_modified=modification.is_likely_modified,
                    closest_match=modification.closest_match,
                    similarity=round(modification.similarity, 3),
                )

        paragraphs = [p for p in text.split("\n\n") if p.strip()]
        if any(self.is_factual(p) for p in paragraphs) and not any(
            CITATION_PATTERN.search(p) for p in paragraphs
        ):
            issues.append("Factual paragraphs exist but no paragraphs contain citations")

        cited = {normalize_url_for_comparison(citation.url) for citation in citations}
        missing = sum(
            1 for source in sources if normalize_url_for_comparison(source.uri) not in cited
        )

        is_valid = not issues and (
            not sources or citation_count >= min(minimum, len(sources))
        )

        return CitationValidationResult(
            is_valid=is_valid,
            citation_count=citation_count,
            source_count=len({citation.url for citation in citations}),
            extracted_citations=citations,
            missing_sources_count=missing,
            issues=issues,
        )

    def detect_url_modification(self, cited_url: str, sources: Sequence[Source]) -> UrlModification:
        """Find the available source a cited URL most likely was before the model altered it."""
        normalized_cited = normalize_url_for_comparison(cited_url)
        closest: str | None = None
        best = 0.0

        for source in sources:
            similarity = string_similarity(normalized_cited, normalize_url_for_comparison(source.uri))
            if similarity > best and similarity > URL_MODIFICATION_THRESHOLD:
                best = similarity
                closest = source.uri

        return UrlModification(
            is_likely_modified=best > URL_MODIFICATION_THRESHOLD,
            closest_match=closest,
            similarity=best,
        )
