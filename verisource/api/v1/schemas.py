"""API request/response schemas for the verisource endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from verisource.models.source import Source

# ============================================================================
# Source Finding Schemas
# ============================================================================


class SourcesRequest(BaseModel):
    """Request model for /v1/sources.

    Attributes:
        query: User question (1-2000 chars)
        count: Maximum number of sources to return (1-20)
    """

    query: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="User question to find sources for",
        examples=["capital gains exemption 2024"],
    )
    count: int = Field(default=8, ge=1, le=20, description="Maximum number of sources")


class SourcesResponse(BaseModel):
    """Response model for /v1/sources."""

    query: str
    sources: list[Source] = Field(default_factory=list)
    count: int = Field(..., ge=0, description="Number of sources returned")


# ============================================================================
# Citation Validation Schemas
# ============================================================================


class CitationValidationRequest(BaseModel):
    """Request model for /v1/citations/validate."""

    text: str = Field(..., max_length=100_000, description="Generated answer text")
    sources: list[Source] = Field(default_factory=list, description="Sources the answer was given")
    min_citations: int = Field(default=2, ge=0, le=20)


# ============================================================================
# Chat Schemas
# ============================================================================


class ChatRequest(BaseModel):
    """Request model for /v1/chat."""

    message: str = Field(..., min_length=1, max_length=5000, description="User message")


class TitleRequest(BaseModel):
    """Request model for /v1/chat/title."""

    message: str = Field(..., min_length=1, max_length=5000)


class TitleResponse(BaseModel):
    title: str
