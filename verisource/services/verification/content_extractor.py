"""Page content extraction and quality scoring."""

from __future__ import annotations

import asyncio

import httpx
import structlog
from bs4 import BeautifulSoup

from ...core.config import settings
from ...models.source import ContentAnalysis
from ...utils.url_utils import get_standard_headers

logger = structlog.get_logger(__name__)

STRIPPED_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside"]
PLACEHOLDER_PHRASES = ("coming soon", "under construction")
MIN_SPECIFIC_WORDS = 50
WORDS_PER_QUALITY_POINT = 50
SPECIFICITY_BONUS = 20


def html_to_text(markup: str) -> str:
    """Strip boilerplate blocks and tags, and collapse whitespace."""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup.find_all(STRIPPED_TAGS):
        tag.decompose()
    return " ".join(soup.get_text(separator=" ").split())


def analyze_text(text: str, max_chars: int | None = None) -> ContentAnalysis:
    """Score cleaned page text.

    ``content_quality`` is ``word_count / 50`` plus a flat bonus of 20 when
    the page is specific, clamped to 0-100.
    """
    max_chars = max_chars or settings.CONTENT_MAX_CHARS
    word_count = len(text.split())
    lowered = text.lower()
    is_specific = word_count > MIN_SPECIFIC_WORDS and not any(
        phrase in lowered for phrase in PLACEHOLDER_PHRASES
    )
    quality = word_count / WORDS_PER_QUALITY_POINT + (SPECIFICITY_BONUS if is_specific else 0)

    return ContentAnalysis(
        content=text[:max_chars],
        word_count=word_count,
        is_specific=is_specific,
        content_quality=min(100.0, max(0.0, quality)),
    )


class ExtractionError(Exception):
    """Raised internally when a page cannot be fetched as text."""

    pass


class ContentExtractor:
    """Fetches a page and reduces it to scored plain text.

    Example:
        >>> extractor = ContentExtractor()
        >>> analysis = await extractor.extract("https://www.canada.ca/en/revenue-agency.html")
        >>> analysis.word_count > 0
        True
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        max_bytes: int | None = None,
        max_chars: int | None = None,
    ) -> None:
        self.timeout = timeout or settings.EXTRACT_TIMEOUT
        self.max_bytes = max_bytes or settings.CONTENT_MAX_BYTES
        self.max_chars = max_chars or settings.CONTENT_MAX_CHARS
        self.headers = get_standard_headers()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def extract(self, url: str) -> ContentAnalysis:
        """Extract and analyze page content; an empty analysis on any failure."""
        try:
            text = await asyncio.wait_for(self._fetch_text(url), timeout=self.timeout)
        except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError, ExtractionError) as e:
            logger.warning("content_extraction_failed", url=url, error=str(e) or type(e).__name__)
            return ContentAnalysis()

        analysis = analyze_text(text, self.max_chars)
        logger.debug(
            "content_extracted",
            url=url,
            word_count=analysis.word_count,
            is_specific=analysis.is_specific,
            quality=round(analysis.content_quality, 1),
        )
        return analysis

    async def _fetch_text(self, url: str) -> str:
        async with self._client.stream(
            "GET", url, headers=self.headers, follow_redirects=True, timeout=self.timeout
        ) as response:
            if not response.is_success:
                raise ExtractionError(f"HTTP {response.status_code}")

            content_type = response.headers.get("content-type", "").lower()
            if content_type and not any(kind in content_type for kind in ("html", "xml", "text/")):
                raise ExtractionError(f"Unsupported content type: {content_type}")

            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) >= self.max_bytes:
                    break
            raw = bytes(body[: self.max_bytes]).decode(response.encoding or "utf-8", errors="replace")

        if "html" in content_type or "xml" in content_type or "<html" in raw[:1000].lower():
            return html_to_text(raw)
        return " ".join(raw.split())
