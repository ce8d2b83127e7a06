"""Brave Search client abstraction.

Provides a typed, resilient interface to the Brave web search API.

Design goals:
    - Simple async `search()` API returning normalized CandidateResult records
    - Graceful handling of timeouts / connection errors / non-2xx (return [])
    - Regional bias via the `country` parameter
    - No verification or AI enrichment at this layer
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any

import httpx
import structlog

from ...core.circuit_breaker import CircuitBreaker
from ...core.config import ConfigurationError, settings
from ...models.source import CandidateResult
from ...utils.query_normalizer import mentions_any
from ...utils.url_utils import extract_domain, normalize_url

logger = structlog.get_logger(__name__)

MAX_RESULTS_PER_REQUEST = 20
MAX_TITLE_LENGTH = 100

TITLE_SUFFIXES = [
    re.compile(r" - Canada\.ca$"),
    re.compile(r" \| Canada Revenue Agency$"),
    re.compile(r" - CRA$"),
    re.compile(r" \| CRA$"),
    re.compile(r" - Government of Canada$"),
    re.compile(r" \| Government of Canada$"),
    re.compile(r" - Canada$"),
]

_search_circuit_breaker: CircuitBreaker | None = None


def get_search_circuit_breaker() -> CircuitBreaker:
    """Get or create the circuit breaker shared by search clients.

    Reuses the LLM breaker thresholds until dedicated settings are introduced.
    """
    global _search_circuit_breaker
    if _search_circuit_breaker is None:
        _search_circuit_breaker = CircuitBreaker(
            name="brave_search",
            failure_threshold=settings.LLM_CIRCUIT_BREAKER_THRESHOLD,
            timeout=float(settings.LLM_CIRCUIT_BREAKER_TIMEOUT),
        )
    return _search_circuit_breaker


class SearchBackendError(Exception):
    """Transient search backend failure (retried, then converted to [])."""

    pass


def clean_title(title: str) -> str:
    """Strip boilerplate site suffixes and bound the length for citation display."""
    original = (title or "").strip()
    cleaned = original
    for suffix in TITLE_SUFFIXES:
        cleaned = suffix.sub("", cleaned)

    if len(cleaned) < 3:
        cleaned = original

    if len(cleaned) > MAX_TITLE_LENGTH:
        cleaned = cleaned[: MAX_TITLE_LENGTH - 3] + "..."
    return cleaned


def contextualize_query(
    query: str,
    context_terms: str | None = None,
    topic_keywords: Sequence[str] | None = None,
) -> str:
    """Append context terms only to topically adjacent queries.

    A query that shows no topic keyword, or that already mentions the
    context terms, is returned unchanged.

    Example:
        >>> contextualize_query("rrsp contribution limit", "Canada", ["rrsp"])
        'rrsp contribution limit Canada'
        >>> contextualize_query("best pizza dough", "Canada", ["rrsp"])
        'best pizza dough'
    """
    context = (settings.SEARCH_CONTEXT_TERMS if context_terms is None else context_terms).strip()
    keywords = settings.SEARCH_TOPIC_KEYWORDS if topic_keywords is None else topic_keywords
    if not context or not mentions_any(query, keywords):
        return query
    if mentions_any(query, [context]):
        return query
    return f"{query} {context}"


def map_result(item: dict[str, Any]) -> CandidateResult | None:
    """Convert one raw Brave result into a CandidateResult (None if it has no URL)."""
    raw_url = item.get("url") or ""
    if not isinstance(raw_url, str) or not raw_url.strip():
        return None
    url = normalize_url(raw_url)
    date = item.get("age") or item.get("page_age") or item.get("date")
    return CandidateResult(
        title=clean_title(str(item.get("title") or "")) or url,
        url=url,
        description=str(item.get("description") or ""),
        domain=extract_domain(url),
        date=date if isinstance(date, str) else None,
    )


class BraveSearchClient:
    """Async client for the Brave web search endpoint.

    Args:
        api_key: Brave subscription token (defaults to settings.BRAVE_SEARCH_API_KEY)
        base_url: API base URL
        country: Regional bias (defaults to settings.SEARCH_COUNTRY)
        timeout: Per-request timeout in seconds
        client: Pre-built httpx.AsyncClient (tests)

    Raises:
        ConfigurationError: If no API key is available

    Example:
        >>> client = BraveSearchClient()
        >>> results = await client.search("RRSP contribution limit 2024", count=5)
        >>> assert all(r.url.startswith("http") for r in results)
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        country: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key or settings.BRAVE_SEARCH_API_KEY
        if not self.api_key:
            raise ConfigurationError("BRAVE_SEARCH_API_KEY environment variable not set.")

        self.base_url = (base_url or settings.BRAVE_SEARCH_BASE_URL).rstrip("/")
        self.country = country if country is not None else settings.SEARCH_COUNTRY
        self.timeout = timeout or settings.SEARCH_TIMEOUT
        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        """Close underlying HTTP resources."""
        await self._client.aclose()

    async def search(self, query: str, count: int = 10) -> list[CandidateResult]:
        """Perform a web search.

        Args:
            query: Search query string
            count: Maximum number of results (clamped to 1..20)

        Returns:
            Normalized candidates in engine order; [] on any failure
        """
        if not query or not query.strip():
            return []

        params: dict[str, Any] = {
            "q": query,
            "count": max(1, min(count, MAX_RESULTS_PER_REQUEST)),
        }
        if self.country:
            params["country"] = self.country
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip",
            "X-Subscription-Token": self.api_key,
        }

        async def _do_search() -> list[CandidateResult]:
            try:
                response = await self._client.get(
                    f"{self.base_url}/res/v1/web/search",
                    params=params,
                    headers=headers,
                    timeout=self.timeout,
                )
            except httpx.TimeoutException as e:
                logger.warning("brave_search_timeout", query=query[:100])
                raise SearchBackendError("timeout") from e
            except httpx.HTTPError as e:
                logger.warning("brave_search_transport_error", query=query[:100], error=str(e))
                raise SearchBackendError(str(e)) from e

            if response.status_code == 429 or response.status_code >= 500:
                logger.warning("brave_search_retryable_status", status=response.status_code)
                raise SearchBackendError(f"HTTP {response.status_code}")
            if response.status_code != 200:
                logger.warning("brave_search_non_200", status=response.status_code)
                return []

            try:
                data = response.json()
            except ValueError as e:
                logger.error("brave_search_json_error", error=str(e))
                return []

            web = data.get("web") if isinstance(data, dict) else None
            raw_results = web.get("results") if isinstance(web, dict) else None
            if not isinstance(raw_results, list):
                logger.info("brave_search_no_results", query=query[:100])
                return []

            results: list[CandidateResult] = []
            for item in raw_results:
                if not isinstance(item, dict):
                    continue
                mapped = map_result(item)
                if mapped is not None:
                    results.append(mapped)
                if len(results) >= params["count"]:
                    break

            logger.info("brave_search_success", query=query[:100], result_count=len(results))
            return results

        breaker = get_search_circuit_breaker()
        return await breaker.call_with_retries(
            _do_search,
            retries=2,
            backoff_base=0.5,
            backoff_factor=2.0,
            fallback=lambda: [],
        )

    async def search_with_context(self, query: str, count: int = 10) -> list[CandidateResult]:
        """Search with topical context added when the query is already on-topic."""
        contextual = contextualize_query(query)
        if contextual != query:
            logger.debug("search_context_applied", original=query[:100], contextual=contextual[:100])
        return await self.search(contextual, count)


__all__ = [
    "BraveSearchClient",
    "SearchBackendError",
    "clean_title",
    "contextualize_query",
    "map_result",
]
