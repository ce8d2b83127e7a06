"""FastAPI dependencies that build pipeline components from settings."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import structlog
from fastapi import HTTPException, status

from verisource.agents.source_finder import SourceFinder, build_source_finder
from verisource.core.config import ConfigurationError, settings
from verisource.services.llm.openai_client import OpenAIChatClient
from verisource.utils.citation_validator import CitationValidator

logger = structlog.get_logger(__name__)


def configuration_unavailable(error: ConfigurationError) -> HTTPException:
    logger.error("configuration_error", error=str(error))
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Service not configured: {error}",
    )


def create_source_finder() -> SourceFinder:
    """Build a SourceFinder; missing credentials become HTTP 503."""
    try:
        return build_source_finder()
    except ConfigurationError as e:
        raise configuration_unavailable(e) from e


def create_answer_llm() -> OpenAIChatClient:
    try:
        return OpenAIChatClient(config=settings.answer_llm_config)
    except ConfigurationError as e:
        raise configuration_unavailable(e) from e


def create_title_llm() -> OpenAIChatClient | None:
    """Planning-model client for titles; None (default title) when unconfigured."""
    try:
        return OpenAIChatClient(config=settings.planning_llm_config)
    except ConfigurationError:
        return None


async def get_source_finder() -> AsyncGenerator[SourceFinder, None]:
    finder = create_source_finder()
    try:
        yield finder
    finally:
        await finder.aclose()


def get_citation_validator() -> CitationValidator:
    return CitationValidator(min_citations=settings.MIN_CITATIONS)
