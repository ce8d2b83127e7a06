"""Citation models shared by the validator, the chat layer and the API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class CitationMatch(BaseModel):
    """An inline ``[Title](URL)`` marker located in answer text."""

    text: str = Field(..., description="Full matched marker")
    title: str = Field(..., description="Bracketed title, stripped")
    url: str = Field(..., description="Parenthesized URL, stripped")
    start_index: int = Field(..., ge=0)
    end_index: int = Field(..., ge=0)


class UrlModification(BaseModel):
    """Nearest available source for a cited URL that matched nothing."""

    is_likely_modified: bool
    closest_match: str | None = None
    similarity: float = Field(default=0.0, ge=0.0, le=1.0)


class CitationValidationResult(BaseModel):
    """Citation compliance report for one generated answer.

    Attributes:
        is_valid: No issues and enough citations for the available sources
        citation_count: Number of citation markers found
        source_count: Number of distinct URLs cited
        extracted_citations: Every marker found, in text order
        missing_sources_count: Available sources that were never cited
        issues: One human-readable message per failed check
    """

    is_valid: bool
    citation_count: int = Field(..., ge=0)
    source_count: int = Field(..., ge=0)
    extracted_citations: list[CitationMatch] = Field(default_factory=list)
    missing_sources_count: int = Field(..., ge=0)
    issues: list[str] = Field(default_factory=list)
