"""URL utilities for cleaning, normalizing, and validating URLs.

Two normalizations exist on purpose:

- ``normalize_url`` produces the canonical ``Source.uri`` (tracking
  parameters, fragment and trailing slash removed). It is idempotent.
- ``normalize_url_for_comparison`` is a lossy key used only to decide
  whether a cited URL refers to an available source.
"""

from __future__ import annotations

from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

TRACKING_PARAMS = frozenset(
    {
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "gclid",
        "fbclid",
        "msclkid",
        "_ga",
        "mc_cid",
        "mc_eid",
        "ref",
        "referrer",
        "source",
        "campaign",
    }
)

HOMEPAGE_PATHS = ("/", "/index", "/home", "/default", "/main")
HOMEPAGE_EXTENSIONS = ("", ".html", ".htm", ".php", ".aspx")

ALLOWED_SCHEMES = ("http", "https")

# Characters left as-is when percent-encoding; whitespace and controls get encoded.
_PATH_SAFE = "/%:@!$&'()*+,;=~"
_QUERY_SAFE = _PATH_SAFE + "?"


def _canonical_netloc(parts) -> str:
    host = (parts.hostname or "").strip().lower()
    if ":" in host:
        host = f"[{host}]"
    netloc = host
    if parts.port is not None:
        netloc = f"{netloc}:{parts.port}"
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"
    return netloc


def _strip_trailing_slash(path: str) -> str:
    if not path:
        return "/"
    if len(path) > 1 and path.endswith("/"):
        return path.rstrip("/") or "/"
    return path


def normalize_url(url: str) -> str:
    """Normalize a URL by removing tracking parameters and fragments.

    Unparsable input is returned unchanged, so the function is total and
    ``normalize_url(normalize_url(u)) == normalize_url(u)`` holds for any
    string.

    Example:
        >>> normalize_url("https://Canada.ca/en/page/?utm_source=x#top")
        'https://canada.ca/en/page'
    """
    try:
        parts = urlsplit(url.strip())
        if not parts.scheme or not parts.netloc:
            return url
        netloc = _canonical_netloc(parts)
    except ValueError:
        return url

    query = parts.query
    if query:
        pairs = parse_qsl(query, keep_blank_values=True)
        kept = [(k, v) for k, v in pairs if k not in TRACKING_PARAMS]
        if len(kept) != len(pairs):
            query = urlencode(kept)

    path = _strip_trailing_slash(quote(parts.path, safe=_PATH_SAFE))
    query = quote(query, safe=_QUERY_SAFE)
    return urlunsplit((parts.scheme.lower(), netloc, path, query, ""))


def normalize_url_for_comparison(url: str) -> str:
    """Lossy comparison key: no ``www.``, sorted query, no trailing slash or fragment, lowercase."""
    try:
        parts = urlsplit(url.strip())
        if not parts.scheme or not parts.netloc:
            return url.strip().lower()
        netloc = _canonical_netloc(parts)
    except ValueError:
        return url.strip().lower()

    if netloc.startswith("www."):
        netloc = netloc[4:]
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))

    path = _strip_trailing_slash(quote(parts.path, safe=_PATH_SAFE))
    return urlunsplit((parts.scheme, netloc, path, query, "")).lower()


def is_valid_url_format(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    try:
        parts = urlsplit(url.strip())
        return parts.scheme.lower() in ALLOWED_SCHEMES and bool(parts.hostname)
    except ValueError:
        return False


def extract_domain(url: str) -> str:
    """Extract the lowercased hostname, or 'unknown' if extraction fails."""
    try:
        host = urlsplit(url.strip()).hostname
    except ValueError:
        return "unknown"
    return host.lower() if host else "unknown"


def is_homepage(url: str) -> bool:
    """Check if a URL looks like a site root rather than a specific content page."""
    try:
        path = urlsplit(url.strip()).path.lower() or "/"
    except ValueError:
        return False

    if path == "/":
        return True
    path = path.rstrip("/")
    return any(path == prefix + ext for prefix in HOMEPAGE_PATHS[1:] for ext in HOMEPAGE_EXTENSIONS)


def get_standard_headers() -> dict[str, str]:
    """Browser-like request headers that avoid automated-client blocking."""
    return {
        "User-Agent": (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
        "Accept-Encoding": "gzip, deflate",
        "DNT": "1",
        "Connection": "keep-alive",
    }
