"""Deterministic domain-tier authority table.

Used when the authority model cannot be reached. Tiers, highest first:
government, legal, professional bodies and education, major advisory
firms, established publications, general.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ...utils.url_utils import extract_domain


@dataclass(frozen=True)
class DomainTier:
    """A band of domains sharing one authority score.

    Attributes:
        name: Tier label used in logs
        score: Authority score (0-100) for matching domains
        suffixes: Registered domains matched exactly or as a parent domain
        labels: Single hostname labels matched anywhere (e.g. "kpmg" in kpmg.ca or home.kpmg)
        markers: Label sequences such as "gov" or "ac" matched as whole labels
    """

    name: str
    score: int
    suffixes: tuple[str, ...] = ()
    labels: tuple[str, ...] = ()
    markers: tuple[str, ...] = field(default=())

    def matches(self, host: str) -> bool:
        parts = host.split(".")
        if any(host == s or host.endswith("." + s) for s in self.suffixes):
            return True
        if any(label in parts for label in self.labels):
            return True
        return any(marker in parts[1:] for marker in self.markers)


GENERAL_SCORE = 50

DOMAIN_TIERS: tuple[DomainTier, ...] = (
    DomainTier(
        name="government",
        score=80,
        suffixes=(
            "canada.ca",
            "gc.ca",
            "cra-arc.gc.ca",
            "ontario.ca",
            "gov.on.ca",
            "gov.bc.ca",
            "alberta.ca",
            "quebec.ca",
            "gov.uk",
            "irs.gov",
        ),
        markers=("gov",),
    ),
    DomainTier(
        name="legal",
        score=75,
        suffixes=("canlii.org", "courts.ca", "scc-csc.ca", "justice.gc.ca", "laws-lois.justice.gc.ca"),
    ),
    DomainTier(
        name="professional_education",
        score=70,
        suffixes=("cpacanada.ca", "cpaontario.ca", "cba.org", "ctf.ca", "step.org"),
        markers=("edu", "ac"),
    ),
    DomainTier(
        name="advisory_firm",
        score=65,
        labels=("kpmg", "pwc", "deloitte", "ey", "bdo", "grantthornton", "mnp"),
    ),
    DomainTier(
        name="publication",
        score=55,
        suffixes=("taxtips.ca", "taxplanningguide.ca", "advisor.ca", "investmentexecutive.com"),
        labels=("taxnet",),
    ),
    DomainTier(name="reference", score=45, suffixes=("wikipedia.org",)),
)


def domain_authority_score(url_or_domain: str) -> tuple[int, str]:
    """Score a URL (or bare domain) against the tier table.

    Returns:
        (score, tier name); ("general") when no tier matches
    """
    host = extract_domain(url_or_domain) if "://" in url_or_domain else url_or_domain.lower()
    if host.startswith("www."):
        host = host[4:]
    for tier in DOMAIN_TIERS:
        if tier.matches(host):
            return tier.score, tier.name
    return GENERAL_SCORE, "general"
