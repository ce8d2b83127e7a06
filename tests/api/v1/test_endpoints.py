"""Tests for the verisource HTTP endpoints."""

from __future__ import annotations

import json

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from tests.fakes import FakeLLM
from verisource.agents.research_chat import APOLOGY_TEXT
from verisource.api.deps import get_source_finder
from verisource.core.config import settings
from verisource.main import app
from verisource.models.source import Source

SOURCES = [
    Source(uri="https://canada.ca/en/services/taxes/tfsa.html", title="TFSA Rules"),
    Source(uri="https://www.cpacanada.ca/tax/capital-gains", title="Capital Gains Explained"),
]


class StubFinder:
    def __init__(self, sources: list[Source]) -> None:
        self.sources = sources
        self.requests: list[tuple[str, int | None]] = []
        self.closed = False

    async def find_sources(self, query: str, count: int | None = None) -> list[Source]:
        self.requests.append((query, count))
        return self.sources[: count or len(self.sources)]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def unconfigured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "BRAVE_SEARCH_API_KEY", None)
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)


class TestServiceEndpoints:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/api/v1/health")

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["status"] == "healthy"
        assert body["service"] == "verisource"
        assert set(body) >= {"version", "search_configured", "llm_configured"}

    def test_root(self, client: TestClient) -> None:
        response = client.get("/")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["health"] == "/api/v1/health"


class TestSourcesEndpoint:
    def test_returns_sources(self, client: TestClient) -> None:
        """Given a working finder, When POST /api/v1/sources, Then sources are returned."""
        finder = StubFinder(SOURCES)
        app.dependency_overrides[get_source_finder] = lambda: finder

        response = client.post("/api/v1/sources", json={"query": "tfsa rules", "count": 1})

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body == {
            "query": "tfsa rules",
            "sources": [{"uri": SOURCES[0].uri, "title": "TFSA Rules"}],
            "count": 1,
        }
        assert finder.requests == [("tfsa rules", 1)]

    def test_empty_result_is_not_an_error(self, client: TestClient) -> None:
        app.dependency_overrides[get_source_finder] = lambda: StubFinder([])

        response = client.post("/api/v1/sources", json={"query": "obscure levy"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["count"] == 0

    @pytest.mark.parametrize(
        "payload",
        [{"query": ""}, {"query": "x", "count": 0}, {"query": "x", "count": 21}, {}],
    )
    def test_rejects_invalid_request(self, client: TestClient, payload: dict) -> None:
        app.dependency_overrides[get_source_finder] = lambda: StubFinder(SOURCES)

        response = client.post("/api/v1/sources", json=payload)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.usefixtures("unconfigured")
    def test_missing_credentials_return_503(self, client: TestClient) -> None:
        response = client.post("/api/v1/sources", json={"query": "tfsa rules"})

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert "BRAVE_SEARCH_API_KEY" in response.json()["detail"]


class TestCitationEndpoint:
    def test_valid_answer(self, client: TestClient) -> None:
        text = (
            f"Withdrawals are tax-free [TFSA Rules]({SOURCES[0].uri}). Half of a gain is "
            f"taxable [Capital Gains Explained]({SOURCES[1].uri})."
        )
        payload = {"text": text, "sources": [s.model_dump() for s in SOURCES]}

        response = client.post("/api/v1/citations/validate", json=payload)

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["is_valid"] is True
        assert body["citation_count"] == 2
        assert body["missing_sources_count"] == 0
        assert body["issues"] == []

    def test_policy_failure_is_reported_not_raised(self, client: TestClient) -> None:
        payload = {
            "text": "The CRA taxes half of a capital gain.",
            "sources": [s.model_dump() for s in SOURCES],
        }

        response = client.post("/api/v1/citations/validate", json=payload)

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["is_valid"] is False
        assert body["citation_count"] == 0
        assert len(body["issues"]) == 3


class TestChatEndpoint:
    def test_streams_ndjson(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        finder = StubFinder(SOURCES)
        llm = FakeLLM(stream_chunks=["Withdrawals are ", "tax-free."])
        monkeypatch.setattr("verisource.api.v1.endpoints.chat.create_source_finder", lambda: finder)
        monkeypatch.setattr("verisource.api.v1.endpoints.chat.create_answer_llm", lambda: llm)

        response = client.post("/api/v1/chat", json={"message": "Are TFSA withdrawals taxed?"})

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"].startswith("application/x-ndjson")
        lines = [json.loads(line) for line in response.text.splitlines() if line]
        assert [line["text"] for line in lines] == ["Withdrawals are ", "tax-free."]
        assert lines[0]["sources"][0]["uri"] == SOURCES[0].uri
        assert finder.closed
        assert llm.closed

    def test_generation_error_streams_apology(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            "verisource.api.v1.endpoints.chat.create_source_finder", lambda: StubFinder(SOURCES)
        )
        monkeypatch.setattr(
            "verisource.api.v1.endpoints.chat.create_answer_llm", lambda: FakeLLM(error=True)
        )

        response = client.post("/api/v1/chat", json={"message": "Are TFSA withdrawals taxed?"})

        lines = [json.loads(line) for line in response.text.splitlines() if line]
        assert lines == [{"text": APOLOGY_TEXT, "sources": []}]

    @pytest.mark.usefixtures("unconfigured")
    def test_missing_credentials_return_503(self, client: TestClient) -> None:
        response = client.post("/api/v1/chat", json={"message": "Are TFSA withdrawals taxed?"})

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE

    def test_title(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            "verisource.api.v1.endpoints.chat.create_title_llm",
            lambda: FakeLLM(default="TFSA Withdrawal Taxation"),
        )

        response = client.post("/api/v1/chat/title", json={"message": "Are TFSA withdrawals taxed?"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"title": "TFSA Withdrawal Taxation"}

    @pytest.mark.usefixtures("unconfigured")
    def test_title_defaults_when_unconfigured(self, client: TestClient) -> None:
        response = client.post("/api/v1/chat/title", json={"message": "Are TFSA withdrawals taxed?"})

        assert response.json() == {"title": "Tax Inquiry"}
