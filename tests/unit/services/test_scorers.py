"""Unit tests for relevance/authority scorers and the domain-tier table."""

from __future__ import annotations

import pytest

from tests.fakes import FakeLLM
from verisource.services.scoring import (
    DomainAuthorityScorer,
    FallbackScorer,
    ModelAuthorityScorer,
    ModelRelevanceScorer,
    NeutralScorer,
    Scorer,
    ScoringError,
    build_authority_scorer,
    build_relevance_scorer,
    domain_authority_score,
    parse_score,
)

CONTENT = "The RRSP deduction limit for 2024 is 18% of earned income up to $31,560."


@pytest.mark.parametrize(
    "reply,expected",
    [
        ("85", 85),
        (" 72\n", 72),
        ("64/100", 64),
        ("70%", 70),
        ("85.\nThe page covers the exact rule.", 85),
        ("Score: 64/100", 50),
        ("Score: 7/10", 50),
        ("0-100: 85", 50),
        ("7/10", 50),
        ("150", 100),
        ("-5", 0),
        ("87.6", 88),
        ("not a number", 50),
        ("", 50),
        (None, 50),
    ],
)
def test_parse_score(reply: str | None, expected: int) -> None:
    assert parse_score(reply) == expected


@pytest.mark.parametrize(
    "url,score,tier",
    [
        ("https://www.canada.ca/en/revenue-agency.html", 80, "government"),
        ("https://www.cra-arc.gc.ca/tx/", 80, "government"),
        ("https://www.irs.gov/forms", 80, "government"),
        ("https://www.gov.uk/income-tax", 80, "government"),
        ("https://www.canlii.org/en/", 75, "legal"),
        ("https://www.cpacanada.ca/en/tax", 70, "professional_education"),
        ("https://law.utoronto.edu/tax", 70, "professional_education"),
        ("https://kpmg.com/ca/en/tax.html", 65, "advisory_firm"),
        ("https://www.ey.com/en_ca/tax", 65, "advisory_firm"),
        ("https://www.taxtips.ca/rrsp.htm", 55, "publication"),
        ("https://en.wikipedia.org/wiki/RRSP", 45, "reference"),
        ("https://key.com/banking", 50, "general"),
        ("https://randomblog.net/post", 50, "general"),
    ],
)
def test_domain_authority_tiers(url: str, score: int, tier: str) -> None:
    assert domain_authority_score(url) == (score, tier)


def test_domain_authority_accepts_bare_domains() -> None:
    assert domain_authority_score("WWW.Canada.ca") == (80, "government")


def test_implementations_satisfy_protocol() -> None:
    llm = FakeLLM()
    for scorer in (
        NeutralScorer(),
        DomainAuthorityScorer(),
        ModelRelevanceScorer(llm),
        ModelAuthorityScorer(llm),
        FallbackScorer(NeutralScorer(), NeutralScorer()),
    ):
        assert isinstance(scorer, Scorer)


@pytest.mark.asyncio
async def test_model_relevance_scorer_prompt_and_score() -> None:
    llm = FakeLLM(default="91")
    scorer = ModelRelevanceScorer(llm)

    score = await scorer.score(CONTENT * 100, "rrsp limit", "RRSP limits", "https://canada.ca/rrsp")

    assert score == 91
    assert 'Query: "rrsp limit"' in llm.prompts[0]
    assert 'Page Title: "RRSP limits"' in llm.prompts[0]
    assert len(llm.prompts[0]) < 1600


@pytest.mark.asyncio
async def test_model_authority_scorer_prompt() -> None:
    llm = FakeLLM(default="77")
    score = await ModelAuthorityScorer(llm).score(CONTENT, "q", "Title", "https://canada.ca/x")

    assert score == 77
    assert llm.prompts[0].startswith("URL: https://canada.ca/x")


@pytest.mark.asyncio
async def test_model_scorer_raises_scoring_error_on_backend_failure() -> None:
    with pytest.raises(ScoringError):
        await ModelRelevanceScorer(FakeLLM(error=True)).score(CONTENT, "q", "t", "https://a.ca/x")


@pytest.mark.asyncio
async def test_unparseable_reply_is_neutral_not_failure() -> None:
    scorer = build_relevance_scorer(FakeLLM(default="I cannot rate this"))
    assert await scorer.score(CONTENT, "q", "t", "https://a.ca/x") == 50


@pytest.mark.asyncio
async def test_relevance_falls_back_to_neutral() -> None:
    scorer = build_relevance_scorer(FakeLLM(error=True))
    assert await scorer.score(CONTENT, "q", "t", "https://a.ca/x") == 50


@pytest.mark.asyncio
async def test_authority_falls_back_to_domain_table() -> None:
    scorer = build_authority_scorer(FakeLLM(error=True))

    assert await scorer.score(CONTENT, "q", "t", "https://www.canada.ca/x") == 80
    assert await scorer.score(CONTENT, "q", "t", "https://www.pwc.com/ca/tax") == 65


@pytest.mark.asyncio
async def test_builders_without_model() -> None:
    assert isinstance(build_relevance_scorer(None), NeutralScorer)
    assert isinstance(build_authority_scorer(None), DomainAuthorityScorer)
