"""Web search clients."""

from .brave_client import (
    BraveSearchClient,
    SearchBackendError,
    contextualize_query,
    get_search_circuit_breaker,
)

__all__ = [
    "BraveSearchClient",
    "SearchBackendError",
    "contextualize_query",
    "get_search_circuit_breaker",
]
