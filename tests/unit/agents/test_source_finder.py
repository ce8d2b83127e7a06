"""Unit tests for SourceFinder tier escalation."""

from __future__ import annotations

import pytest

from tests.fakes import FakeExtractor, FakeLLM, FakeSearch, FakeVerifier, FixedScorer, candidate
from verisource.agents.query_planner import QueryPlanner, fallback_queries
from verisource.agents.source_aggregator import AggregationPolicy, SourceAggregator
from verisource.agents.source_finder import SearchTier, SourceFinder
from verisource.models.source import CandidateResult

# No topic keywords, so the direct tier searches the query unchanged.
QUERY = "sourdough starter feeding schedule"
SIMPLIFIED = "sourdough starter feeding"
BROADER = ["Canadian tax guide", "tax information Canada", "CRA tax rules"]


class FlakySearch(FakeSearch):
    """Raises for the queries in ``broken``."""

    def __init__(self, results: dict[str, list[CandidateResult]], broken: set[str]) -> None:
        super().__init__(results)
        self.broken = broken

    async def search(self, query: str, count: int = 10) -> list[CandidateResult]:
        if query in self.broken:
            self.queries.append(query)
            raise RuntimeError("search backend down")
        return await super().search(query, count)


def make_finder(search: FakeSearch, llm: FakeLLM | None = None, closers=()) -> SourceFinder:
    aggregator = SourceAggregator(
        search_client=search,
        verifier=FakeVerifier(),
        extractor=FakeExtractor(),
        relevance_scorer=FixedScorer(),
        authority_scorer=FixedScorer(),
        policy=AggregationPolicy(),
    )
    return SourceFinder(
        planner=QueryPlanner(llm or FakeLLM(error=True)),
        aggregator=aggregator,
        fallback_count=4,
        closers=closers,
    )


def pages(prefix: str, n: int) -> list[CandidateResult]:
    return [candidate(f"https://example.org/{prefix}-{i}") for i in range(n)]


class TestSearchTier:
    async def _noop(self, query: str, needed: int, seen: set[str]) -> list:
        return []

    def test_unbounded_tier_fires_below_count(self) -> None:
        tier = SearchTier("planned", None, self._noop)
        assert tier.should_fire(4, 5)
        assert not tier.should_fire(5, 5)

    def test_threshold_capped_by_count(self) -> None:
        tier = SearchTier("direct", 3, self._noop)
        assert tier.should_fire(2, 8)
        assert not tier.should_fire(3, 8)
        assert not tier.should_fire(1, 1)


@pytest.mark.asyncio
async def test_planner_failure_falls_back_to_templates() -> None:
    planned = fallback_queries(QUERY)
    search = FakeSearch({planned[0]: pages("guide", 1), planned[1]: pages("rules", 1)})
    finder = make_finder(search, llm=FakeLLM(error=True))

    sources = await finder.find_sources(QUERY, count=2)

    assert len(sources) == 2
    assert search.queries == planned[:2]


@pytest.mark.asyncio
async def test_planned_queries_used_when_model_answers() -> None:
    llm = FakeLLM(default="starter hydration guide\nstarter feeding ratios")
    search = FakeSearch(
        {
            "starter hydration guide": pages("hydration", 1),
            "starter feeding ratios": pages("ratios", 1),
        }
    )
    finder = make_finder(search, llm=llm)

    sources = await finder.find_sources(QUERY, count=2)

    assert len(sources) == 2
    assert search.queries == ["starter hydration guide", "starter feeding ratios"]


@pytest.mark.asyncio
async def test_direct_tier_tops_up_sparse_results() -> None:
    planned = fallback_queries(QUERY)
    search = FakeSearch({planned[0]: pages("planned", 1), QUERY: pages("direct", 1)})
    finder = make_finder(search)

    sources = await finder.find_sources(QUERY, count=5)

    assert len(sources) == 2
    # two sources found, so neither the simplified nor the broader tier fires
    assert search.queries == [*planned, QUERY]


@pytest.mark.asyncio
async def test_all_tiers_fire_when_nothing_is_found() -> None:
    finder = make_finder(FakeSearch())

    sources = await finder.find_sources(QUERY, count=3)

    assert sources == []
    assert finder.planner.broader_terms(QUERY) == BROADER
    assert finder.aggregator.search_client.queries == [
        *fallback_queries(QUERY),
        QUERY,
        SIMPLIFIED,
        *BROADER,
    ]


@pytest.mark.asyncio
async def test_broader_tier_stops_at_first_productive_term() -> None:
    search = FakeSearch({BROADER[1]: pages("broad", 1)})
    finder = make_finder(search)

    sources = await finder.find_sources(QUERY, count=3)

    assert len(sources) == 1
    assert search.queries[-2:] == BROADER[:2]


@pytest.mark.asyncio
async def test_tier_failure_does_not_stop_later_tiers() -> None:
    search = FlakySearch({SIMPLIFIED: pages("simple", 2)}, broken={QUERY})
    finder = make_finder(search)

    sources = await finder.find_sources(QUERY, count=3)

    assert len(sources) == 2
    assert QUERY in search.queries
    assert SIMPLIFIED in search.queries


@pytest.mark.asyncio
async def test_never_raises_when_every_search_fails() -> None:
    planned = fallback_queries(QUERY)
    search = FlakySearch({}, broken={*planned, QUERY, SIMPLIFIED, *BROADER})
    finder = make_finder(search)

    assert await finder.find_sources(QUERY, count=3) == []


@pytest.mark.asyncio
async def test_result_count_is_bounded() -> None:
    planned = fallback_queries(QUERY)
    search = FakeSearch({planned[0]: pages("many", 10), planned[1]: pages("more", 10)})
    finder = make_finder(search)

    sources = await finder.find_sources(QUERY, count=3)

    assert len(sources) == 3
    assert len({source.uri for source in sources}) == 3


@pytest.mark.asyncio
async def test_tiers_do_not_return_duplicates() -> None:
    planned = fallback_queries(QUERY)
    shared = pages("shared", 1)
    search = FakeSearch({planned[0]: shared, QUERY: shared + pages("extra", 1)})
    finder = make_finder(search)

    sources = await finder.find_sources(QUERY, count=5)

    assert sorted(source.uri for source in sources) == [
        "https://example.org/extra-0",
        "https://example.org/shared-0",
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("query,count", [("", 3), ("   ", 3), (QUERY, 0)])
async def test_degenerate_requests(query: str, count: int) -> None:
    search = FakeSearch()
    finder = make_finder(search)

    assert await finder.find_sources(query, count=count) == []
    assert search.queries == []


def test_validate_answer_delegates(sample_sources) -> None:
    finder = make_finder(FakeSearch())
    text = (
        f"See [RRSP Guide]({sample_sources[0].uri}) and "
        f"[TFSA Rules]({sample_sources[1].uri})."
    )

    result = finder.validate_answer(text, sample_sources)

    assert result.citation_count == 2
    assert result.is_valid


@pytest.mark.asyncio
async def test_aclose_runs_every_closer() -> None:
    closed: list[str] = []

    async def broken() -> None:
        closed.append("broken")
        raise RuntimeError("already closed")

    async def fine() -> None:
        closed.append("fine")

    async with make_finder(FakeSearch(), closers=[broken, fine]):
        pass

    assert closed == ["broken", "fine"]
