"""Research chat: grounded, cited answer generation.

Each turn finds verified sources for the user's message, injects them
into the prompt with the citation rules, streams the model's answer and
validates its citations once the stream completes. Citation problems
are logged, never used to block delivery.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

import structlog
from pydantic import BaseModel, Field

from ..core.circuit_breaker import CircuitOpenError
from ..core.config import settings
from ..core.logging import bind_request_context, clear_request_context
from ..models.source import Source
from ..services.llm.openai_client import OpenAIChatClient
from ..services.llm.schemas import LLMClientError
from ..utils.citation_validator import (
    DEFAULT_FACTUAL_TERMS,
    CitationValidator,
    generate_citation_examples,
    has_complete_citations,
)
from .source_finder import SourceFinder

logger = structlog.get_logger(__name__)

DEFAULT_INQUIRY_TITLE = "Tax Inquiry"

APOLOGY_TEXT = (
    "I apologize, but I encountered an error while processing your request. Please try again."
)

SYSTEM_INSTRUCTIONS = (
    "You are a Canadian tax research assistant. Answer using the search results supplied "
    "with each question. Cite every factual statement inline with the exact format "
    "[Source Title](URL), using only the URLs provided, and never alter a URL. When no "
    "sources are supplied, give general guidance and say clearly that current sources "
    "could not be retrieved. Do not present general information as professional advice."
)

CITATION_RULE = (
    "CRITICAL: You MUST use inline citations [Source Title](URL) immediately after every "
    "factual statement. Minimum 2 citations required when multiple sources are available. "
    "Responses without proper citations are invalid. Use ONLY the URLs provided above."
)

LIMITED_SOURCES_NOTE = (
    "Note: Limited search results were found for this specific query. You may provide "
    "helpful general information while clearly noting that specific current sources could "
    "not be retrieved. Always attempt to be helpful while acknowledging source limitations."
)

# Streaming check looks at a wider vocabulary than the final validation.
STREAMING_FACTUAL_TERMS = (*DEFAULT_FACTUAL_TERMS, "tax law", "regulation", "the act")
STREAM_WARN_MIN_CHARS = 200


class AnswerChunk(BaseModel):
    """One streamed piece of an answer plus the sources behind it."""

    text: str
    sources: list[Source] = Field(default_factory=list)


def build_search_context(sources: Sequence[Source]) -> str:
    """Prompt block listing the sources and the citation rules, or the limited-sources note."""
    if not sources:
        return "\n\n" + LIMITED_SOURCES_NOTE

    listing = "\n".join(f"- {source.title}: {source.uri}" for source in sources)
    return (
        "\n\nRelevant search results found:\n"
        f"{listing}\n\n"
        f"{generate_citation_examples(sources)}\n\n"
        f"{CITATION_RULE}"
    )


class ResearchChat:
    """Conversation with source-grounded, cited answers.

    Args:
        finder: Source finder used for every user message
        llm: Answer-generation client (streaming)
        source_count: Sources requested per message

    Example:
        >>> chat = ResearchChat(finder, OpenAIChatClient(config=settings.answer_llm_config))
        >>> async for chunk in chat.send_message("How is a TFSA withdrawal taxed?"):
        ...     print(chunk.text, end="")
    """

    def __init__(
        self,
        finder: SourceFinder,
        llm: OpenAIChatClient,
        source_count: int | None = None,
        validator: CitationValidator | None = None,
    ) -> None:
        self.finder = finder
        self.llm = llm
        self.source_count = source_count or settings.DEFAULT_SOURCE_COUNT
        self.validator = validator or CitationValidator(min_citations=settings.MIN_CITATIONS)
        self._stream_checker = CitationValidator(factual_terms=STREAMING_FACTUAL_TERMS)
        self.history: list[dict[str, str]] = [{"role": "system", "content": SYSTEM_INSTRUCTIONS}]

    async def send_message(self, message: str) -> AsyncIterator[AnswerChunk]:
        """Answer ``message``, yielding text chunks as they are generated."""
        request_id = bind_request_context(message)
        try:
            sources = await self.finder.find_sources(message, self.source_count)
            self.history.append({"role": "user", "content": message + build_search_context(sources)})

            full_response = ""
            warned = False
            async for text in self.llm.generate_stream(self.history, top_p=0.8):
                full_response += text
                if not warned and sources and self._looks_uncited(full_response):
                    logger.warning(
                        "streaming_claims_without_citations",
                        preview=full_response[:150],
                        available_sources=len(sources),
                    )
                    warned = True
                yield AnswerChunk(text=text, sources=sources)

            if full_response.strip():
                self._log_validation(message, full_response, sources)

            self.history.append({"role": "assistant", "content": full_response})
        except Exception as e:
            logger.error(
                "answer_generation_failed",
                request_id=request_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            # Keep user/assistant turns alternating for the next message.
            if self.history[-1]["role"] == "user":
                self.history.append({"role": "assistant", "content": APOLOGY_TEXT})
            yield AnswerChunk(text=APOLOGY_TEXT, sources=[])
        finally:
            clear_request_context()

    def _looks_uncited(self, text: str) -> bool:
        return (
            len(text) > STREAM_WARN_MIN_CHARS
            and self._stream_checker.is_factual(text)
            and not has_complete_citations(text)
        )

    def _log_validation(self, message: str, answer: str, sources: Sequence[Source]) -> None:
        validation = self.validator.validate(answer, sources)
        logger.info(
            "citation_validation",
            is_valid=validation.is_valid,
            citation_count=validation.citation_count,
            source_count=validation.source_count,
            available_sources=len(sources),
            issues=validation.issues,
            message=message[:100],
        )
        if not validation.is_valid and sources:
            logger.warning(
                "citation_compliance_failure",
                issues=validation.issues,
                response_preview=answer[:200],
                available_sources=[source.uri for source in sources],
            )


async def classify_inquiry(llm: OpenAIChatClient | None, text: str) -> str:
    """Summarize an inquiry into a 3-5 word conversation title."""
    if llm is None:
        return DEFAULT_INQUIRY_TITLE

    prompt = (
        "Summarize the following inquiry into a concise, 3-5 word title. Do not add quotes "
        f'or any other formatting. Inquiry: "{text}"'
    )
    try:
        reply = await llm.generate(prompt, temperature=0.0, max_tokens=20)
    except (LLMClientError, CircuitOpenError) as e:
        logger.warning("inquiry_classification_failed", error=str(e))
        return DEFAULT_INQUIRY_TITLE

    title = (reply or "").strip().strip('"').strip()
    return title or DEFAULT_INQUIRY_TITLE
