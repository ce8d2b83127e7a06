"""Source finder with ordered, escalating search tiers.

Tiers are tried left to right; each fires only while the number of
accepted sources is below its threshold:

1. Planned queries (QueryPlanner)          - always
2. Direct search with topical context      - fewer than 3 sources
3. Simplified query                        - fewer than 2 sources
4. Broader domain terms, until one yields  - no sources at all

A failure inside a tier is logged with query, error and timestamp and the
next tier runs; ``find_sources`` never raises for backend problems.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx
import structlog

from ..core.config import settings
from ..models.citation import CitationValidationResult
from ..models.source import ScoredCandidate, Source
from ..services.llm.openai_client import OpenAIChatClient
from ..services.scoring.scorers import build_authority_scorer, build_relevance_scorer
from ..services.search.brave_client import BraveSearchClient, contextualize_query
from ..services.verification.content_extractor import ContentExtractor
from ..services.verification.url_verifier import URLVerifier
from ..utils.citation_validator import CitationValidator
from ..utils.url_utils import normalize_url
from .query_planner import QueryPlanner
from .source_aggregator import SourceAggregator

logger = structlog.get_logger(__name__)

TierRunner = Callable[[str, int, set[str]], Awaitable[list[ScoredCandidate]]]


@dataclass(frozen=True)
class SearchTier:
    """One step of the escalation chain.

    Attributes:
        name: Tier label used in logs
        fire_below: Run only while fewer than this many sources are accepted
            (None means "below the requested count")
        run: Coroutine ``(query, needed, seen) -> accepted candidates``
    """

    name: str
    fire_below: int | None
    run: TierRunner

    def should_fire(self, found: int, count: int) -> bool:
        threshold = count if self.fire_below is None else min(self.fire_below, count)
        return found < threshold


class SourceFinder:
    """Public pipeline surface: ``find_sources`` and ``validate_answer``.

    Args:
        planner: Query planner
        aggregator: Candidate evaluator and ranker
        validator: Citation validator
        fallback_count: Results requested per search by the fallback tiers
        closers: Async callables that release owned clients in ``aclose``

    Example:
        >>> async with build_source_finder() as finder:
        ...     sources = await finder.find_sources("capital gains exemption 2024", count=5)
    """

    def __init__(
        self,
        planner: QueryPlanner,
        aggregator: SourceAggregator,
        validator: CitationValidator | None = None,
        fallback_count: int | None = None,
        closers: Sequence[Callable[[], Awaitable[None]]] = (),
    ) -> None:
        self.planner = planner
        self.aggregator = aggregator
        self.validator = validator or CitationValidator()
        self.fallback_count = fallback_count or settings.FALLBACK_SEARCH_COUNT
        self._closers = list(closers)
        self.tiers: list[SearchTier] = [
            SearchTier("planned", None, self._planned_tier),
            SearchTier("direct", settings.MIN_SOURCES_BEFORE_DIRECT_SEARCH, self._direct_tier),
            SearchTier(
                "simplified", settings.MIN_SOURCES_BEFORE_SIMPLIFIED_SEARCH, self._simplified_tier
            ),
            SearchTier("broader", 1, self._broader_tier),
        ]

    async def aclose(self) -> None:
        for close in self._closers:
            try:
                await close()
            except (httpx.HTTPError, RuntimeError) as e:
                logger.warning("source_finder_close_error", error=str(e))

    async def __aenter__(self) -> SourceFinder:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def find_sources(self, query: str, count: int | None = None) -> list[Source]:
        """Find up to ``count`` verified, ranked sources for ``query``.

        Returns:
            Sources ordered by composite score; [] if nothing passes
        """
        count = settings.DEFAULT_SOURCE_COUNT if count is None else count
        if count <= 0 or not query or not query.strip():
            return []

        accepted: list[ScoredCandidate] = []
        seen: set[str] = set()

        for tier in self.tiers:
            if not tier.should_fire(len(accepted), count):
                continue

            needed = count - len(accepted)
            logger.info("source_tier_start", tier=tier.name, query=query[:100], found=len(accepted))
            try:
                found = await tier.run(query, needed, seen)
            except Exception as e:
                logger.error(
                    "source_tier_failed",
                    tier=tier.name,
                    query=query[:100],
                    error=str(e),
                    error_type=type(e).__name__,
                    timestamp=datetime.now(timezone.utc).isoformat(),
                )
                continue

            accepted = self._merge(accepted, found)
            logger.info("source_tier_complete", tier=tier.name, added=len(found), total=len(accepted))

        ranked = self.aggregator.rank(accepted, count)
        if not ranked:
            logger.warning("no_sources_found", query=query[:100])
        return [scored.to_source() for scored in ranked]

    def validate_answer(
        self, text: str, sources: Sequence[Source], min_citations: int | None = None
    ) -> CitationValidationResult:
        """Check citation compliance of a generated answer."""
        return self.validator.validate(text, sources, min_citations=min_citations)

    @staticmethod
    def _merge(
        accepted: list[ScoredCandidate], found: Sequence[ScoredCandidate]
    ) -> list[ScoredCandidate]:
        keys = {normalize_url(scored.uri) for scored in accepted}
        merged = list(accepted)
        for scored in found:
            key = normalize_url(scored.uri)
            if key in keys:
                continue
            keys.add(key)
            merged.append(scored)
        return merged

    async def _planned_tier(self, query: str, needed: int, seen: set[str]) -> list[ScoredCandidate]:
        queries = await self.planner.plan(query)
        logger.info("search_queries_planned", query=query[:100], queries=queries)
        return await self.aggregator.aggregate(query, queries, needed, seen=seen)

    async def _direct_tier(self, query: str, needed: int, seen: set[str]) -> list[ScoredCandidate]:
        return await self.aggregator.aggregate(
            query,
            [contextualize_query(query)],
            needed,
            seen=seen,
            per_query_count=self.fallback_count,
        )

    async def _simplified_tier(
        self, query: str, needed: int, seen: set[str]
    ) -> list[ScoredCandidate]:
        simplified = self.planner.simplify(query)
        if not simplified or simplified.lower() == query.strip().lower():
            return []
        return await self.aggregator.aggregate(
            query, [simplified], needed, seen=seen, per_query_count=self.fallback_count
        )

    async def _broader_tier(self, query: str, needed: int, seen: set[str]) -> list[ScoredCandidate]:
        for term in self.planner.broader_terms(query):
            found = await self.aggregator.aggregate(
                query, [term], needed, seen=seen, per_query_count=self.fallback_count
            )
            if found:
                return found
        return []


def build_source_finder(
    search_client: BraveSearchClient | None = None,
    planning_llm: OpenAIChatClient | None = None,
    scoring_llm: OpenAIChatClient | None = None,
) -> SourceFinder:
    """Construct a SourceFinder wired to the configured backends.

    Raises:
        ConfigurationError: If the Brave or OpenAI key is missing
    """
    search_client = search_client or BraveSearchClient()
    planning_llm = planning_llm or OpenAIChatClient(config=settings.planning_llm_config)
    scoring_llm = scoring_llm or OpenAIChatClient(config=settings.scoring_llm_config)

    http_client = httpx.AsyncClient(follow_redirects=True)
    verifier = URLVerifier(client=http_client)
    extractor = ContentExtractor(client=http_client)

    aggregator = SourceAggregator(
        search_client=search_client,
        verifier=verifier,
        extractor=extractor,
        relevance_scorer=build_relevance_scorer(scoring_llm),
        authority_scorer=build_authority_scorer(scoring_llm),
    )
    return SourceFinder(
        planner=QueryPlanner(planning_llm),
        aggregator=aggregator,
        closers=[search_client.close, planning_llm.close, scoring_llm.close, http_client.aclose],
    )
