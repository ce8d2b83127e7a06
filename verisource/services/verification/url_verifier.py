"""URL reachability verification.

A candidate URL is verified with a HEAD request; servers that reject HEAD
(403/405) get one ranged GET instead. HTML pages get one more small GET
whose only purpose is reading the ``<title>`` for citation display.

Homepage detection is deliberately not done here: the verifier reports
reachability and the aggregator decides what counts as a useful target.
"""

from __future__ import annotations

import asyncio

import httpx
import structlog
from bs4 import BeautifulSoup

from ...core.config import settings
from ...models.source import VerificationOutcome, VerificationStatus
from ...utils.url_utils import (
    extract_domain,
    get_standard_headers,
    is_valid_url_format,
    normalize_url,
)

logger = structlog.get_logger(__name__)

HEAD_REJECTED_STATUSES = frozenset({403, 405})
# Host is alive but will not confirm the page to an anonymous client
PARTIAL_STATUSES = frozenset({401, 402, 407, 429})

FALLBACK_RANGE_BYTES = 1024
TITLE_RANGE_BYTES = 4096
MAX_TITLE_LENGTH = 200


def extract_title(markup: str) -> str | None:
    """Return the whitespace-collapsed ``<title>`` text, if any."""
    tag = BeautifulSoup(markup, "html.parser").title
    if tag is None:
        return None
    title = " ".join(tag.get_text().split())
    return title[:MAX_TITLE_LENGTH] or None


class URLVerifier:
    """Checks that candidate URLs are live and resolves their redirects.

    Args:
        client: Shared httpx.AsyncClient (one is created if omitted)
        timeout: HEAD timeout in seconds
        get_timeout: Ranged GET fallback timeout in seconds
        title_timeout: Title-only fetch timeout in seconds

    Example:
        >>> verifier = URLVerifier()
        >>> outcome = await verifier.verify("https://www.canada.ca/en/services/taxes.html")
        >>> outcome.status
        <VerificationStatus.VERIFIED: 'verified'>
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        get_timeout: float | None = None,
        title_timeout: float | None = None,
    ) -> None:
        self.timeout = timeout or settings.VERIFY_TIMEOUT
        self.get_timeout = get_timeout or settings.VERIFY_GET_FALLBACK_TIMEOUT
        self.title_timeout = title_timeout or settings.TITLE_FETCH_TIMEOUT
        self.headers = get_standard_headers()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> URLVerifier:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def verify(self, url: str) -> VerificationOutcome:
        """Verify a URL is reachable.

        Never raises for network problems: every failure becomes a FAILED
        (or PARTIAL) outcome that keeps the normalized original URL.
        """
        normalized = normalize_url(url)
        if not is_valid_url_format(url):
            logger.info("url_verification_rejected_format", url=url[:200])
            return self._failed(normalized)

        try:
            response = await asyncio.wait_for(
                self._client.head(
                    normalized, headers=self.headers, follow_redirects=True, timeout=self.timeout
                ),
                timeout=self.timeout,
            )
        except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError) as e:
            logger.warning("url_verification_failed", url=normalized, error=str(e) or type(e).__name__)
            return self._failed(normalized)

        if response.status_code in HEAD_REJECTED_STATUSES:
            logger.debug("url_head_rejected", url=normalized, status=response.status_code)
            fallback = await self._ranged_get(normalized, FALLBACK_RANGE_BYTES, self.get_timeout)
            if fallback is not None and fallback[0].is_success:
                response = fallback[0]

        if not response.is_success:
            status = (
                VerificationStatus.PARTIAL
                if response.status_code in PARTIAL_STATUSES
                else VerificationStatus.FAILED
            )
            logger.info(
                "url_verification_unsuccessful",
                url=normalized,
                http_status=response.status_code,
                status=status.value,
            )
            return self._failed(normalized, status=status, http_status=response.status_code)

        final_url = str(response.url) or normalized
        content_type = response.headers.get("content-type", "")
        title = None
        if "text/html" in content_type.lower():
            title = await self._fetch_title(final_url)

        return VerificationOutcome(
            is_valid=True,
            final_url=normalize_url(final_url),
            domain=extract_domain(final_url),
            status=VerificationStatus.VERIFIED,
            content_type=content_type or None,
            title=title,
            http_status=response.status_code,
        )

    async def _ranged_get(
        self, url: str, limit: int, timeout: float
    ) -> tuple[httpx.Response, bytes] | None:
        """GET at most ``limit`` bytes of a URL; None on any transport failure."""
        headers = {**self.headers, "Range": f"bytes=0-{limit}"}

        async def _read() -> tuple[httpx.Response, bytes]:
            async with self._client.stream(
                "GET", url, headers=headers, follow_redirects=True, timeout=timeout
            ) as response:
                body = bytearray()
                if response.is_success:
                    async for chunk in response.aiter_bytes():
                        body.extend(chunk)
                        if len(body) >= limit:
                            break
                return response, bytes(body[:limit])

        try:
            return await asyncio.wait_for(_read(), timeout=timeout)
        except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError) as e:
            logger.debug("url_ranged_get_failed", url=url, error=str(e) or type(e).__name__)
            return None

    async def _fetch_title(self, url: str) -> str | None:
        result = await self._ranged_get(url, TITLE_RANGE_BYTES, self.title_timeout)
        if result is None or not result[0].is_success:
            return None
        response, body = result
        return extract_title(body.decode(response.encoding or "utf-8", errors="replace"))

    @staticmethod
    def _failed(
        normalized: str,
        status: VerificationStatus = VerificationStatus.FAILED,
        http_status: int | None = None,
    ) -> VerificationOutcome:
        return VerificationOutcome(
            is_valid=False,
            final_url=normalized,
            domain=extract_domain(normalized),
            status=status,
            http_status=http_status,
        )
