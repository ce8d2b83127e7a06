"""Pytest configuration for tests."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from verisource.core.circuit_breaker import CircuitBreaker
from verisource.models.source import Source


@pytest.fixture(autouse=True)
def reset_circuit_breakers(monkeypatch: pytest.MonkeyPatch) -> None:
    """Fresh module-level breakers per test, and no real backoff sleeps."""
    monkeypatch.setattr("verisource.services.search.brave_client._search_circuit_breaker", None)
    monkeypatch.setattr("verisource.services.llm.openai_client._llm_circuit_breaker", None)
    monkeypatch.setattr(CircuitBreaker, "_sleep", AsyncMock())
    monkeypatch.setattr(
        "verisource.services.llm.openai_client.OpenAIChatClient._sleep_with_backoff", AsyncMock()
    )


@pytest.fixture
def sample_sources() -> list[Source]:
    return [
        Source(uri="https://canada.ca/en/revenue-agency/services/tax/rrsp.html", title="RRSP Guide"),
        Source(uri="https://canada.ca/en/services/taxes/tfsa.html", title="TFSA Rules"),
        Source(uri="https://www.cpacanada.ca/tax/capital-gains", title="Capital Gains Explained"),
    ]
