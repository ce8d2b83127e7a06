"""Source-finding and answer-generation agents."""

from verisource.agents.query_planner import QueryPlanner
from verisource.agents.research_chat import AnswerChunk, ResearchChat, classify_inquiry
from verisource.agents.source_aggregator import AggregationPolicy, SourceAggregator
from verisource.agents.source_finder import SearchTier, SourceFinder, build_source_finder

__all__ = [
    # Planning
    "QueryPlanner",
    # Aggregation
    "AggregationPolicy",
    "SourceAggregator",
    # Source finding
    "SearchTier",
    "SourceFinder",
    "build_source_finder",
    # Answer generation
    "AnswerChunk",
    "ResearchChat",
    "classify_inquiry",
]
