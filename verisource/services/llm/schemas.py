"""Schemas for LLM service.

Pydantic models for LLM requests and responses.
"""

from typing import Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """Single chat message."""

    role: Literal["system", "user", "assistant"] = Field(..., description="Message role")
    content: str = Field(..., description="Message content")


class TokenUsage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int = Field(0, description="Number of tokens in prompt")
    completion_tokens: int = Field(0, description="Number of tokens in completion")
    total_tokens: int = Field(0, description="Total number of tokens")


class LLMClientError(Exception):
    """Base exception for LLM client errors."""

    pass
