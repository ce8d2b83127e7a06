"""Relevance and authority scorers.

Both scorers share one contract, ``score(content, query, title, url) -> 0..100``.
Model-backed implementations raise ``ScoringError`` when the model call
itself fails; ``FallbackScorer`` turns that into a deterministic answer.
A parseable-but-odd model reply is not a failure: it is clamped, and
unparseable text becomes the neutral score.
"""

from __future__ import annotations

import re
from typing import Protocol, runtime_checkable

import structlog

from ...core.circuit_breaker import CircuitOpenError
from ..llm.openai_client import OpenAIChatClient
from ..llm.schemas import LLMClientError
from .domain_authority import domain_authority_score

logger = structlog.get_logger(__name__)

NEUTRAL_SCORE = 50

RELEVANCE_SYSTEM_PROMPT = (
    "Evaluate if this page content contains specific information that would answer "
    "the user's question. Rate the relevance and specificity on a scale of 0-100. "
    "Consider: Does it contain specific details? Is it directly relevant? Does it "
    "provide actionable information? Reply with a single integer only."
)

AUTHORITY_SYSTEM_PROMPT = (
    "Evaluate the authority and credibility of this source. Rate 0-100 based on: Is it "
    "from a reputable organization? Does it provide accurate, well-researched "
    "information? Is the content professional and current? Consider government sources, "
    "professional firms, educational institutions, and reputable publications equally. "
    "Reply with a single integer only."
)

# A bare number on the first line, optionally written as "/100" or a percentage.
_SCORE_RE = re.compile(r"(-?\d+(?:\.\d+)?)\s*(?:/\s*100|%)?\.?")


class ScoringError(Exception):
    """Raised when a model-backed scorer cannot obtain a response."""

    pass


def parse_score(text: str | None, default: int = NEUTRAL_SCORE) -> int:
    """Parse a numeric-only model reply, clamped to 0-100.

    Only the first line is read and it must be the number itself; labelled or
    out-of-scale answers such as "Score: 7/10" get ``default``.

    Example:
        >>> parse_score(" 85 ")
        85
        >>> parse_score("n/a")
        50
    """
    if not text:
        return default
    lines = text.strip().splitlines()
    match = _SCORE_RE.fullmatch(lines[0].strip()) if lines else None
    if not match:
        return default
    return max(0, min(100, round(float(match.group(1)))))


@runtime_checkable
class Scorer(Protocol):
    """Capability interface shared by relevance and authority scorers."""

    async def score(self, content: str, query: str, title: str, url: str) -> int: ...


class NeutralScorer:
    """Always returns the neutral score.

    Relevance has no safe deterministic signal, so this is its fallback.
    """

    def __init__(self, value: int = NEUTRAL_SCORE) -> None:
        self.value = value

    async def score(self, content: str, query: str, title: str, url: str) -> int:
        return self.value


class DomainAuthorityScorer:
    """Authority from the domain-tier table."""

    async def score(self, content: str, query: str, title: str, url: str) -> int:
        value, tier = domain_authority_score(url)
        logger.debug("domain_authority_scored", url=url, tier=tier, score=value)
        return value


class ModelScorer:
    """Single-purpose model call answered with a bare number."""

    system_prompt: str = ""
    kind: str = "model"

    def __init__(self, llm: OpenAIChatClient) -> None:
        self.llm = llm

    def build_prompt(self, content: str, query: str, title: str, url: str) -> str:
        raise NotImplementedError

    async def score(self, content: str, query: str, title: str, url: str) -> int:
        prompt = self.build_prompt(content, query, title, url)
        try:
            reply = await self.llm.generate(prompt, system=self.system_prompt)
        except (LLMClientError, CircuitOpenError) as e:
            raise ScoringError(f"{self.kind} model call failed: {e}") from e

        value = parse_score(reply)
        logger.debug(f"{self.kind}_scored", url=url, score=value, raw=(reply or "")[:20])
        return value


class ModelRelevanceScorer(ModelScorer):
    """Does this content answer the query with specific, actionable information?"""

    system_prompt = RELEVANCE_SYSTEM_PROMPT
    kind = "relevance"

    def build_prompt(self, content: str, query: str, title: str, url: str) -> str:
        return f'Query: "{query}"\nPage Title: "{title}"\nContent: {content[:1500]}'


class ModelAuthorityScorer(ModelScorer):
    """Is this source credible, professional and current?"""

    system_prompt = AUTHORITY_SYSTEM_PROMPT
    kind = "authority"

    def build_prompt(self, content: str, query: str, title: str, url: str) -> str:
        return f'URL: {url}\nTitle: "{title}"\nContent Preview: {content[:800]}'


class FallbackScorer:
    """Use ``primary``; on ScoringError, answer with ``fallback``."""

    def __init__(self, primary: Scorer, fallback: Scorer) -> None:
        self.primary = primary
        self.fallback = fallback

    async def score(self, content: str, query: str, title: str, url: str) -> int:
        try:
            return await self.primary.score(content, query, title, url)
        except ScoringError as e:
            logger.warning(
                "scorer_fallback",
                primary=type(self.primary).__name__,
                fallback=type(self.fallback).__name__,
                url=url,
                error=str(e),
            )
            return await self.fallback.score(content, query, title, url)


def build_relevance_scorer(llm: OpenAIChatClient | None) -> Scorer:
    """Model relevance with neutral fallback, or neutral alone when no model is configured."""
    if llm is None:
        return NeutralScorer()
    return FallbackScorer(ModelRelevanceScorer(llm), NeutralScorer())


def build_authority_scorer(llm: OpenAIChatClient | None) -> Scorer:
    """Model authority with domain-table fallback, or the table alone when no model is configured."""
    if llm is None:
        return DomainAuthorityScorer()
    return FallbackScorer(ModelAuthorityScorer(llm), DomainAuthorityScorer())
