"""Source models flowing through the verification pipeline.

Each pipeline stage consumes the previous stage's immutable value and
produces a new one:

    CandidateResult -> VerifiedCandidate -> ScoredCandidate -> Source

``Source`` is the only shape that leaves the pipeline.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class VerificationStatus(str, Enum):
    """Terminal reachability classification of a URL.

    VERIFIED: 2xx on HEAD or on the ranged GET fallback
    PARTIAL: Host answered, but with a status that does not confirm the page
    FAILED: Malformed URL, network failure, timeout or non-2xx
    PENDING: Not checked yet
    """

    VERIFIED = "verified"
    PARTIAL = "partial"
    FAILED = "failed"
    PENDING = "pending"


class Source(BaseModel):
    """Minimal citation unit handed to consumers."""

    uri: str = Field(..., description="Normalized source URL")
    title: str = Field(..., description="Display title")

    model_config = {"frozen": True}


class CandidateResult(BaseModel):
    """Raw search-engine hit, already URL-normalized.

    Attributes:
        title: Cleaned result title
        url: Normalized result URL
        description: Search snippet
        domain: Lowercased hostname ("unknown" if unparsable)
        date: Optional publication date string reported by the engine
    """

    title: str
    url: str
    description: str = ""
    domain: str = "unknown"
    date: str | None = None

    model_config = {"frozen": True}

    def to_source(self) -> Source:
        return Source(uri=self.url, title=self.title)


class VerificationOutcome(BaseModel):
    """Result of a URL reachability check."""

    is_valid: bool
    final_url: str
    domain: str
    status: VerificationStatus = VerificationStatus.PENDING
    content_type: str | None = None
    title: str | None = None
    http_status: int | None = None

    model_config = {"frozen": True}


class ContentAnalysis(BaseModel):
    """Extracted page text and its quality assessment."""

    content: str = Field(default="", description="Cleaned text, truncated")
    word_count: int = Field(default=0, ge=0)
    is_specific: bool = False
    content_quality: float = Field(default=0.0, ge=0.0, le=100.0)

    model_config = {"frozen": True}


class VerifiedCandidate(BaseModel):
    """Candidate that passed reachability and content checks."""

    candidate: CandidateResult
    verification: VerificationOutcome
    analysis: ContentAnalysis

    model_config = {"frozen": True}

    @property
    def url(self) -> str:
        return self.verification.final_url

    @property
    def title(self) -> str:
        return self.candidate.title or self.verification.title or self.url

    @property
    def domain(self) -> str:
        return self.verification.domain


class ScoredCandidate(BaseModel):
    """Verified candidate with relevance, authority and composite scores.

    ``composite_score`` is only comparable within one aggregation run.
    """

    verified: VerifiedCandidate
    relevance: int = Field(..., ge=0, le=100)
    authority: int = Field(..., ge=0, le=100)
    composite_score: int = Field(..., ge=0, le=100)

    model_config = {"frozen": True}

    @property
    def uri(self) -> str:
        return self.verified.url

    @property
    def title(self) -> str:
        return self.verified.title

    def to_source(self) -> Source:
        return Source(uri=self.uri, title=self.title)
