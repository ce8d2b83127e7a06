"""Chat endpoint streaming cited answers as newline-delimited JSON."""

from __future__ import annotations

from collections.abc import AsyncIterator

import structlog
from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from verisource.agents.research_chat import ResearchChat, classify_inquiry
from verisource.api.deps import create_answer_llm, create_source_finder, create_title_llm
from verisource.api.v1.schemas import ChatRequest, TitleRequest, TitleResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/v1/chat", tags=["chat"])


@router.post("")
async def chat(request: ChatRequest) -> StreamingResponse:
    """Answer a message, streaming ``{"text": ..., "sources": [...]}`` lines.

    Clients are built before the stream starts so configuration problems
    surface as HTTP 503 instead of a broken stream.
    """
    finder = create_source_finder()
    try:
        llm = create_answer_llm()
    except Exception:
        await finder.aclose()
        raise

    async def _stream() -> AsyncIterator[str]:
        try:
            research_chat = ResearchChat(finder, llm)
            async for chunk in research_chat.send_message(request.message):
                yield chunk.model_dump_json() + "\n"
        finally:
            await finder.aclose()
            await llm.close()

    return StreamingResponse(_stream(), media_type="application/x-ndjson")


@router.post("/title", response_model=TitleResponse)
async def title(request: TitleRequest) -> TitleResponse:
    """Short conversation title for a first message."""
    llm = create_title_llm()
    try:
        return TitleResponse(title=await classify_inquiry(llm, request.message))
    finally:
        if llm is not None:
            await llm.close()
