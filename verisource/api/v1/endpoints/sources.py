"""Source finding endpoint.

Runs the full verification pipeline (plan, search, verify, extract,
score, rank) for one question and returns the accepted sources.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from verisource.agents.source_finder import SourceFinder
from verisource.api.deps import get_source_finder
from verisource.api.v1.schemas import SourcesRequest, SourcesResponse
from verisource.core.logging import bind_request_context, clear_request_context

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/v1", tags=["sources"])


@router.post("/sources", response_model=SourcesResponse)
async def find_sources(
    request: SourcesRequest,
    finder: SourceFinder = Depends(get_source_finder),
) -> SourcesResponse:
    """Find verified sources for a question.

    Returns fewer sources than requested (possibly none) when not enough
    candidates pass verification; backend failures never surface as errors.
    """
    bind_request_context(request.query)
    try:
        sources = await finder.find_sources(request.query, request.count)
        logger.info("sources_endpoint_complete", count=len(sources))
        return SourcesResponse(query=request.query, sources=sources, count=len(sources))
    finally:
        clear_request_context()
