"""Query planning for source discovery.

Turns one user question into a short, ordered list of search queries
aimed at specific documents, guides and forms rather than homepages.
Planning never fails the pipeline: any model problem degrades to
deterministic templated queries.
"""

from __future__ import annotations

import re

import structlog

from ..core.circuit_breaker import CircuitOpenError
from ..services.llm.openai_client import OpenAIChatClient
from ..services.llm.schemas import LLMClientError
from ..utils.query_normalizer import mentions_any, simplify_query

logger = structlog.get_logger(__name__)

MAX_PLANNED_QUERIES = 3
MAX_BROADER_TERMS = 3

PLANNER_SYSTEM_PROMPT = (
    "You are a search specialist. Generate 3 highly specific search queries designed to "
    "find exact pages containing detailed information about the question. Focus on "
    "finding specific documents, guides, forms, or detailed explanations rather than "
    "general website homepages. Make queries specific enough to search further than "
    "general landing pages. Return one query per line with no commentary."
)

FALLBACK_TEMPLATES = (
    '"{query}" specific guide document',
    "{query} detailed explanation instructions",
    "{query} form requirements process",
    "{query} specific rules regulations",
)

# (trigger terms, broader search terms), checked in order
BROADER_TERM_GROUPS: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (
        ("tax", "income", "deduction"),
        ("Canada tax information", "Canadian tax rules", "income tax Canada"),
    ),
    (
        ("business", "corporation", "company"),
        ("business tax Canada", "corporate tax rules", "business deductions"),
    ),
)
GENERIC_BROADER_TERMS = (
    "Canadian tax guide",
    "tax information Canada",
    "CRA tax rules",
    "tax planning Canada",
)

_ENUMERATION_RE = re.compile(r"^\s*(?:\d{1,2}\s*[.):]|[-*•])\s*")
_QUOTES = "\"'`“”‘’"


def parse_queries(text: str | None, limit: int = MAX_PLANNED_QUERIES) -> list[str]:
    """Parse model output into at most ``limit`` distinct queries.

    Splits on newlines, strips enumeration markers, bullets and wrapping
    quotes, and drops blank lines.

    Example:
        >>> parse_queries("1. RRSP deduction limit guide\\n\\n2) \\"T4RSP slip instructions\\"")
        ['RRSP deduction limit guide', 'T4RSP slip instructions']
    """
    if not text:
        return []

    queries: list[str] = []
    seen: set[str] = set()
    for line in text.splitlines():
        cleaned = _ENUMERATION_RE.sub("", line, count=1).strip().strip(_QUOTES).strip()
        if not cleaned:
            continue
        key = cleaned.lower()
        if key in seen:
            continue
        seen.add(key)
        queries.append(cleaned)
        if len(queries) >= limit:
            break
    return queries


def fallback_queries(query: str) -> list[str]:
    """Deterministic templated queries used when planning is unavailable."""
    query = query.strip()
    return [template.format(query=query) for template in FALLBACK_TEMPLATES]


class QueryPlanner:
    """Plans targeted search queries for a user question.

    Args:
        llm: Text-generation client; None uses the deterministic templates only

    Example:
        >>> planner = QueryPlanner(llm=None)
        >>> await planner.plan("home office expenses")
        ['"home office expenses" specific guide document', ...]
    """

    def __init__(self, llm: OpenAIChatClient | None = None) -> None:
        self.llm = llm

    async def plan(self, query: str) -> list[str]:
        """Return 1-4 search queries, most targeted first. Never raises."""
        if self.llm is None:
            return fallback_queries(query)

        try:
            reply = await self.llm.generate(
                f"Find specific content pages for: {query}",
                system=PLANNER_SYSTEM_PROMPT,
            )
        except (LLMClientError, CircuitOpenError) as e:
            logger.warning("query_planning_failed", query=query[:100], error=str(e))
            return fallback_queries(query)

        planned = parse_queries(reply)
        if not planned:
            logger.warning("query_planning_unusable_output", query=query[:100], raw=(reply or "")[:200])
            return fallback_queries(query)

        logger.info("query_planning_success", query=query[:100], planned=planned)
        return planned

    def simplify(self, query: str) -> str:
        """Broader retry query built from the first few content words."""
        return simplify_query(query)

    def broader_terms(self, query: str) -> list[str]:
        """Generic domain-anchored terms for the last-resort search tier."""
        terms: list[str] = []
        for triggers, group in BROADER_TERM_GROUPS:
            if mentions_any(query, triggers):
                terms.extend(group)
        terms.extend(GENERIC_BROADER_TERMS)
        return list(dict.fromkeys(terms))[:MAX_BROADER_TERMS]
