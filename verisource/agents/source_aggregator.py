"""Source aggregation: verify, extract, score and rank search candidates.

For every unique candidate surfaced by the planned queries:

    verify URL -> drop failures and homepage redirects
    extract content -> drop placeholder or thin pages
    score relevance + authority -> composite -> threshold

Candidate chains run concurrently and fail independently. Deduplication
happens in a single merge step that consumes the finished chains in
order, so two concurrent branches can never both accept the same URL.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import structlog

from ..core.config import settings
from ..models.source import (
    CandidateResult,
    ContentAnalysis,
    ScoredCandidate,
    Source,
    VerificationOutcome,
    VerifiedCandidate,
)
from ..services.scoring.scorers import Scorer
from ..utils.url_utils import is_homepage, normalize_url

logger = structlog.get_logger(__name__)


class SearchBackend(Protocol):
    async def search(self, query: str, count: int = 10) -> list[CandidateResult]: ...


class Verifier(Protocol):
    async def verify(self, url: str) -> VerificationOutcome: ...


class Extractor(Protocol):
    async def extract(self, url: str) -> ContentAnalysis: ...


def round_half_up(value: float) -> int:
    """Round .5 upwards (``round()`` would round 52.5 to 52)."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class AggregationPolicy:
    """Acceptance floors and composite weights.

    Attributes:
        min_quality: Content quality floor (applies with ``is_specific``)
        min_relevance: Relevance floor
        min_authority: Authority floor
        min_composite: Composite score floor
        relevance_weight: Composite weight of relevance
        authority_weight: Composite weight of authority
        quality_weight: Composite weight of content quality
    """

    min_quality: float = 20.0
    min_relevance: int = 20
    min_authority: int = 10
    min_composite: int = 40
    relevance_weight: float = 0.4
    authority_weight: float = 0.2
    quality_weight: float = 0.4

    @classmethod
    def from_settings(cls) -> AggregationPolicy:
        return cls(
            min_quality=settings.MIN_CONTENT_QUALITY,
            min_relevance=settings.MIN_RELEVANCE_SCORE,
            min_authority=settings.MIN_AUTHORITY_SCORE,
            min_composite=settings.MIN_COMPOSITE_SCORE,
            relevance_weight=settings.RELEVANCE_WEIGHT,
            authority_weight=settings.AUTHORITY_WEIGHT,
            quality_weight=settings.QUALITY_WEIGHT,
        )

    def composite(self, relevance: int, authority: int, quality: float) -> int:
        value = (
            relevance * self.relevance_weight
            + authority * self.authority_weight
            + quality * self.quality_weight
        )
        return max(0, min(100, round_half_up(value)))

    def content_passes(self, analysis: ContentAnalysis) -> bool:
        return analysis.is_specific and analysis.content_quality >= self.min_quality

    def accepts(self, relevance: int, authority: int, composite: int) -> bool:
        return (
            relevance >= self.min_relevance
            and authority >= self.min_authority
            and composite >= self.min_composite
        )


class SourceAggregator:
    """Turns search queries into a ranked list of verified sources.

    This is a strict filter: when fewer candidates pass than requested,
    fewer are returned.

    Args:
        search_client: Backend with ``search(query, count)``
        verifier: URL reachability checker
        extractor: Page content extractor
        relevance_scorer: Relevance ``Scorer``
        authority_scorer: Authority ``Scorer``
        policy: Floors and weights (defaults from settings)
        max_concurrency: Candidate chains evaluated at once
    """

    def __init__(
        self,
        search_client: SearchBackend,
        verifier: Verifier,
        extractor: Extractor,
        relevance_scorer: Scorer,
        authority_scorer: Scorer,
        policy: AggregationPolicy | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.search_client = search_client
        self.verifier = verifier
        self.extractor = extractor
        self.relevance_scorer = relevance_scorer
        self.authority_scorer = authority_scorer
        self.policy = policy or AggregationPolicy.from_settings()
        self.max_concurrency = max_concurrency or settings.MAX_CONCURRENT_VERIFICATIONS

    async def aggregate(
        self,
        query: str,
        search_queries: Sequence[str],
        count: int,
        seen: set[str] | None = None,
        per_query_count: int | None = None,
    ) -> list[ScoredCandidate]:
        """Search, evaluate and rank candidates for ``query``.

        Queries run in order and the loop stops once ``count`` sources
        have been accepted.

        Args:
            query: Original user question (used for relevance scoring)
            search_queries: Planned search queries, most targeted first
            count: Maximum number of sources to return
            seen: Normalized URLs already considered by earlier tiers (updated in place)
            per_query_count: Results requested per search (defaults to ceil(count / 2))

        Returns:
            Accepted candidates, composite score descending, at most ``count``
        """
        if count <= 0:
            return []

        seen = seen if seen is not None else set()
        per_query = per_query_count or max(1, math.ceil(count / 2))
        accepted: list[ScoredCandidate] = []

        for search_query in search_queries:
            if len(accepted) >= count:
                break

            candidates = await self.search_client.search(search_query, per_query)
            fresh: list[CandidateResult] = []
            for candidate in candidates:
                key = normalize_url(candidate.url)
                if key in seen:
                    continue
                seen.add(key)
                fresh.append(candidate)

            if not fresh:
                logger.debug("aggregation_no_new_candidates", search_query=search_query[:100])
                continue

            semaphore = asyncio.Semaphore(self.max_concurrency)
            results = await asyncio.gather(
                *(self._guarded(semaphore, candidate, query) for candidate in fresh)
            )

            # Single-writer merge: the accepted set only changes here.
            for scored in results:
                if scored is None:
                    continue
                final_key = normalize_url(scored.uri)
                if any(normalize_url(existing.uri) == final_key for existing in accepted):
                    logger.debug("aggregation_duplicate_final_url", url=scored.uri)
                    continue
                seen.add(final_key)
                accepted.append(scored)

            logger.info(
                "aggregation_query_complete",
                search_query=search_query[:100],
                candidates=len(fresh),
                accepted_total=len(accepted),
            )

        return self.rank(accepted, count)

    async def find(
        self, query: str, search_queries: Sequence[str], count: int, seen: set[str] | None = None
    ) -> list[Source]:
        """Same as ``aggregate`` but mapped to the public Source shape."""
        ranked = await self.aggregate(query, search_queries, count, seen=seen)
        return [scored.to_source() for scored in ranked]

    async def _guarded(
        self, semaphore: asyncio.Semaphore, candidate: CandidateResult, query: str
    ) -> ScoredCandidate | None:
        async with semaphore:
            try:
                return await self.evaluate(candidate, query)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    "candidate_evaluation_error",
                    url=candidate.url,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return None

    async def evaluate(self, candidate: CandidateResult, query: str) -> ScoredCandidate | None:
        """Run one candidate through the verification chain.

        Returns:
            The scored candidate if it passes every gate, otherwise None
        """
        verification = await self.verifier.verify(candidate.url)
        if not verification.is_valid:
            logger.info("candidate_rejected_unreachable", url=candidate.url, status=verification.status.value)
            return None

        if is_homepage(verification.final_url):
            logger.info("candidate_rejected_homepage", url=candidate.url, final_url=verification.final_url)
            return None

        analysis = await self.extractor.extract(verification.final_url)
        if not self.policy.content_passes(analysis):
            logger.info(
                "candidate_rejected_content",
                url=verification.final_url,
                is_specific=analysis.is_specific,
                quality=round(analysis.content_quality, 1),
            )
            return None

        verified = VerifiedCandidate(candidate=candidate, verification=verification, analysis=analysis)
        relevance, authority = await asyncio.gather(
            self.relevance_scorer.score(analysis.content, query, verified.title, verified.url),
            self.authority_scorer.score(analysis.content, query, verified.title, verified.url),
        )
        composite = self.policy.composite(relevance, authority, analysis.content_quality)

        if not self.policy.accepts(relevance, authority, composite):
            logger.info(
                "candidate_rejected_scores",
                url=verified.url,
                relevance=relevance,
                authority=authority,
                composite=composite,
            )
            return None

        logger.info("candidate_accepted", url=verified.url, title=verified.title[:100], composite=composite)
        return ScoredCandidate(
            verified=verified,
            relevance=relevance,
            authority=authority,
            composite_score=composite,
        )

    @staticmethod
    def rank(accepted: Sequence[ScoredCandidate], count: int) -> list[ScoredCandidate]:
        """Sort by composite score descending (stable on ties) and truncate."""
        ordered = sorted(accepted, key=lambda scored: scored.composite_score, reverse=True)
        return ordered[: max(0, count)]
