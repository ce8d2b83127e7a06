"""Unit tests for content extraction and quality scoring."""

from __future__ import annotations

import httpx
import pytest

from tests.fakes import mock_transport_client
from verisource.services.verification.content_extractor import (
    ContentExtractor,
    analyze_text,
    html_to_text,
)

ARTICLE = " ".join(f"word{i}" for i in range(400))
PAGE = (
    "<html><head><style>.x{color:red}</style><script>var tracking = 1;</script></head>"
    "<body><header>Site header</header><nav>Menu Links</nav>"
    f"<main><h1>Home office expenses</h1><p>{ARTICLE}</p></main>"
    "<aside>Related</aside><footer>Copyright</footer></body></html>"
)


def test_html_to_text_strips_boilerplate() -> None:
    text = html_to_text(PAGE)

    assert text.startswith("Home office expenses word0")
    for dropped in ("tracking", "color:red", "Site header", "Menu Links", "Related", "Copyright"):
        assert dropped not in text


def test_analyze_text_specific_page() -> None:
    analysis = analyze_text(ARTICLE, max_chars=2000)

    assert analysis.word_count == 400
    assert analysis.is_specific is True
    assert analysis.content_quality == pytest.approx(400 / 50 + 20)
    assert len(analysis.content) == 2000


def test_analyze_text_placeholder_is_not_specific() -> None:
    analysis = analyze_text("This page is coming soon. " + ARTICLE)

    assert analysis.is_specific is False
    assert analysis.content_quality < 20


def test_analyze_text_short_page_is_not_specific() -> None:
    analysis = analyze_text("Only a few words here.")

    assert analysis.word_count == 5
    assert analysis.is_specific is False


def test_analyze_text_quality_is_capped() -> None:
    analysis = analyze_text("word " * 10_000)
    assert analysis.content_quality == 100.0


@pytest.mark.asyncio
async def test_extract_html_page() -> None:
    client = mock_transport_client(
        lambda request: httpx.Response(200, headers={"content-type": "text/html"}, text=PAGE)
    )
    extractor = ContentExtractor(client=client, max_chars=100)

    analysis = await extractor.extract("https://canada.ca/en/home-office")

    assert analysis.word_count == 403
    assert analysis.is_specific is True
    assert len(analysis.content) == 100


@pytest.mark.asyncio
async def test_extract_failure_returns_empty_analysis() -> None:
    client = mock_transport_client(lambda request: httpx.Response(500))
    analysis = await ContentExtractor(client=client).extract("https://example.com/x")

    assert analysis.word_count == 0
    assert analysis.is_specific is False
    assert analysis.content_quality == 0.0


@pytest.mark.asyncio
async def test_extract_rejects_binary_content() -> None:
    client = mock_transport_client(
        lambda request: httpx.Response(
            200, headers={"content-type": "application/pdf"}, content=b"%PDF-1.7"
        )
    )
    analysis = await ContentExtractor(client=client).extract("https://example.com/form.pdf")

    assert analysis.content == ""


@pytest.mark.asyncio
async def test_extract_transport_error_returns_empty_analysis() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    analysis = await ContentExtractor(client=mock_transport_client(handler)).extract(
        "https://example.com/x"
    )
    assert analysis.word_count == 0


@pytest.mark.asyncio
async def test_extract_respects_byte_cap() -> None:
    body = ("word " * 100_000).encode()
    client = mock_transport_client(
        lambda request: httpx.Response(200, headers={"content-type": "text/plain"}, content=body)
    )
    analysis = await ContentExtractor(client=client, max_bytes=10_000).extract("https://e.com/x")

    assert analysis.word_count == 2000
