"""URL verification and content extraction services."""

from .content_extractor import ContentExtractor, analyze_text, html_to_text
from .url_verifier import URLVerifier, extract_title

__all__ = [
    "ContentExtractor",
    "URLVerifier",
    "analyze_text",
    "extract_title",
    "html_to_text",
]
