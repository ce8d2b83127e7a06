"""Relevance and authority scoring."""

from .domain_authority import DOMAIN_TIERS, DomainTier, domain_authority_score
from .scorers import (
    NEUTRAL_SCORE,
    DomainAuthorityScorer,
    FallbackScorer,
    ModelAuthorityScorer,
    ModelRelevanceScorer,
    NeutralScorer,
    Scorer,
    ScoringError,
    build_authority_scorer,
    build_relevance_scorer,
    parse_score,
)

__all__ = [
    "DOMAIN_TIERS",
    "DomainTier",
    "domain_authority_score",
    "NEUTRAL_SCORE",
    "DomainAuthorityScorer",
    "FallbackScorer",
    "ModelAuthorityScorer",
    "ModelRelevanceScorer",
    "NeutralScorer",
    "Scorer",
    "ScoringError",
    "build_authority_scorer",
    "build_relevance_scorer",
    "parse_score",
]
