"""LLM service client (OpenAI-compatible)."""

from .openai_client import OpenAIChatClient, get_llm_circuit_breaker
from .schemas import ChatMessage, LLMClientError, TokenUsage

__all__ = [
    "OpenAIChatClient",
    "get_llm_circuit_breaker",
    "ChatMessage",
    "LLMClientError",
    "TokenUsage",
]
