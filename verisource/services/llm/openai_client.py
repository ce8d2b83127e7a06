"""OpenAI chat client with retry logic.

Wraps ``openai.AsyncOpenAI`` with exponential backoff and a shared circuit
breaker, and exposes the two capabilities the pipeline needs:

- ``generate(prompt) -> text`` for planning and scoring
- ``generate_stream(messages) -> text chunks`` for answer generation
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import AsyncGenerator, AsyncIterator
from typing import Any

import structlog
from openai import APIError, APITimeoutError, AsyncOpenAI, RateLimitError

from ...core.circuit_breaker import CircuitBreaker
from ...core.config import ConfigurationError, LLMConfig, settings
from .schemas import ChatMessage, LLMClientError, TokenUsage

logger = structlog.get_logger(__name__)

_llm_circuit_breaker: CircuitBreaker | None = None

FALLBACK_FINISH_REASON = "fallback"


def get_llm_circuit_breaker() -> CircuitBreaker:
    """Get or initialize the circuit breaker shared by all LLM clients."""
    global _llm_circuit_breaker
    if _llm_circuit_breaker is None:
        _llm_circuit_breaker = CircuitBreaker(
            name="openai",
            failure_threshold=settings.LLM_CIRCUIT_BREAKER_THRESHOLD,
            timeout=float(settings.LLM_CIRCUIT_BREAKER_TIMEOUT),
        )
        logger.info(
            "llm_circuit_breaker_initialized",
            threshold=settings.LLM_CIRCUIT_BREAKER_THRESHOLD,
            timeout=settings.LLM_CIRCUIT_BREAKER_TIMEOUT,
        )
    return _llm_circuit_breaker


class OpenAIChatClient:
    """OpenAI-compatible chat client.

    Features:
    - Async chat completion with streaming support
    - Exponential backoff retry with jitter
    - No retry on 400 Bad Request
    - Circuit breaker with an optional empty-completion fallback

    Example:
        >>> client = OpenAIChatClient(config=settings.scoring_llm_config)
        >>> text = await client.generate("Rate this page 0-100")
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        max_retries: int | None = None,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Model parameters (defaults to the scoring configuration)
            api_key: OpenAI API key (defaults to settings.OPENAI_API_KEY)
            base_url: API base URL (defaults to settings.OPENAI_BASE_URL)
            max_retries: Retry attempts per call (defaults to settings.LLM_MAX_RETRIES)
            max_delay: Maximum delay between retries (seconds)
            exponential_base: Base for exponential backoff calculation
            client: Pre-built AsyncOpenAI instance (tests)

        Raises:
            ConfigurationError: If no API key is available
        """
        self.config = config or settings.scoring_llm_config
        self.api_key = api_key or settings.OPENAI_API_KEY
        if not self.api_key and client is None:
            raise ConfigurationError(
                "OPENAI_API_KEY environment variable not set. Set it or pass api_key."
            )

        self.base_url = base_url or settings.OPENAI_BASE_URL
        self.model = self.config.model
        self.max_retries = settings.LLM_MAX_RETRIES if max_retries is None else max_retries
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.timeout = self.config.timeout

        self.client = client or AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.close()

    async def chat(
        self,
        messages: list[dict[str, str]],
        stream: bool = False,
        temperature: float | None = None,
        max_tokens: int | None = None,
        top_p: float = 1.0,
        **kwargs: Any,
    ) -> dict[str, Any] | AsyncGenerator[dict[str, Any], None]:
        """Execute chat completion.

        Returns:
            dict with keys: content, role, usage, model, finish_reason (non-streaming)
            AsyncGenerator yielding dicts with: content, role, finish_reason (streaming)

        Raises:
            LLMClientError: If request fails after all retries and fallback is disabled
        """
        temperature = self.config.temperature if temperature is None else temperature
        max_tokens = self.config.max_tokens if max_tokens is None else max_tokens
        logger.info(
            "llm_request_start",
            model=self.model,
            temperature=temperature,
            max_tokens=max_tokens,
            messages=len(messages),
            stream=stream,
        )

        if stream:
            return self._chat_stream(messages, temperature, max_tokens, top_p, **kwargs)
        return await self._chat_non_stream(messages, temperature, max_tokens, top_p, **kwargs)

    async def generate(
        self,
        prompt: str,
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Single-completion capability used for planning and scoring.

        Raises:
            LLMClientError: If the backend produced no completion
        """
        messages: list[ChatMessage] = []
        if system:
            messages.append(ChatMessage(role="system", content=system))
        messages.append(ChatMessage(role="user", content=prompt))

        result = await self.chat(
            [m.model_dump() for m in messages],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if result["finish_reason"] == FALLBACK_FINISH_REASON:
            raise LLMClientError("LLM unavailable: circuit breaker returned fallback completion")
        return result["content"]

    async def generate_stream(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
        top_p: float = 1.0,
    ) -> AsyncIterator[str]:
        """Streaming capability used for answer generation; yields text chunks."""
        stream = await self.chat(
            messages,
            stream=True,
            temperature=temperature,
            max_tokens=max_tokens,
            top_p=top_p,
        )
        async for chunk in stream:
            if chunk["content"]:
                yield chunk["content"]

    async def _chat_non_stream(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int | None,
        top_p: float,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Execute non-streaming chat completion with retry logic and CB fallback."""

        async def _execute() -> dict[str, Any]:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=max_tokens,
                top_p=top_p,
                stream=False,
                **kwargs,
            )
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens if response.usage else 0,
                completion_tokens=response.usage.completion_tokens if response.usage else 0,
                total_tokens=response.usage.total_tokens if response.usage else 0,
            )
            result: dict[str, Any] = {
                "content": response.choices[0].message.content or "",
                "role": response.choices[0].message.role,
                "usage": usage.model_dump(),
                "model": response.model,
                "finish_reason": response.choices[0].finish_reason,
            }
            logger.info(
                "llm_response_success",
                model=self.model,
                total_tokens=usage.total_tokens,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
            )
            return result

        async def _op() -> dict[str, Any]:
            return await self._retry_with_backoff(_execute)

        def _fallback() -> dict[str, Any]:
            if not settings.ENABLE_LLM_FALLBACK:
                raise LLMClientError("LLM fallback disabled")
            return {
                "content": "",
                "role": "assistant",
                "usage": TokenUsage().model_dump(),
                "model": self.model,
                "finish_reason": FALLBACK_FINISH_REASON,
            }

        breaker = get_llm_circuit_breaker()
        result_dict: dict[str, Any] = await breaker.call_with_retries(
            _op,
            retries=1,
            backoff_base=0.5,
            backoff_factor=2.0,
            fallback=_fallback,
        )
        return result_dict

    async def _chat_stream(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int | None,
        top_p: float,
        **kwargs: Any,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Execute streaming chat completion with retry logic and CB fallback."""

        async def _execute() -> Any:
            return await self.client.chat.completions.create(
                model=self.model,
                messages=messages,  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=max_tokens,
                top_p=top_p,
                stream=True,
                **kwargs,
            )

        async def _empty_stream():
            if False:
                yield  # pragma: no cover

        async def _op() -> Any:
            return await self._retry_with_backoff(_execute)

        def _fallback_stream() -> Any:
            if not settings.ENABLE_LLM_FALLBACK:
                raise LLMClientError("LLM fallback disabled")
            return _empty_stream()

        breaker = get_llm_circuit_breaker()
        stream = await breaker.call_with_retries(
            _op,
            retries=1,
            backoff_base=0.5,
            backoff_factor=2.0,
            fallback=_fallback_stream,
        )

        async for chunk in stream:
            if chunk.choices:
                choice = chunk.choices[0]
                yield {
                    "content": choice.delta.content or "",
                    "role": choice.delta.role if choice.delta.role else None,
                    "finish_reason": choice.finish_reason,
                }

    async def _retry_with_backoff(self, fn: Any) -> Any:
        """Execute function with exponential backoff retry.

        Raises:
            LLMClientError: If all retries exhausted or non-retriable error
        """
        delay = 1.0
        last_error: Exception | None = None

        for attempt in range(self.max_retries + 1):
            try:
                return await fn()
            # RateLimitError and APITimeoutError are subclasses of APIError
            except RateLimitError as e:
                last_error = e
                logger.warning(
                    "llm_rate_limited", model=self.model, attempt=attempt + 1
                )
            except APITimeoutError as e:
                last_error = e
                logger.warning(
                    "llm_timeout", model=self.model, timeout=self.timeout, attempt=attempt + 1
                )
            except APIError as e:
                last_error = e
                if getattr(e, "status_code", None) == 400:
                    logger.error("llm_bad_request", model=self.model, error=str(e))
                    raise LLMClientError(f"Bad request: {e}") from e
                logger.warning(
                    "llm_api_error", model=self.model, attempt=attempt + 1, error=str(e)
                )

            if attempt < self.max_retries:
                await self._sleep_with_backoff(delay)
                delay = min(delay * self.exponential_base, self.max_delay)

        raise LLMClientError(
            f"Maximum number of retries ({self.max_retries}) exceeded. Last error: {last_error}"
        ) from last_error

    async def _sleep_with_backoff(self, delay: float) -> None:
        """Sleep with jitter: ``min(delay, max_delay) * (1 + random())``."""
        jitter = 1.0 + random.random()
        actual_delay = min(delay, self.max_delay) * jitter
        logger.debug("llm_backoff_sleep", delay=round(actual_delay, 2))
        await asyncio.sleep(actual_delay)
