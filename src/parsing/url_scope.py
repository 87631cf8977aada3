"""URL helpers for link scanning and same-host crawling.

Examples:
    >>> normalize_url("HTTPS://Example.com:443/docs#intro")
    'https://example.com/docs'
    >>> is_same_host("https://example.com/a", "https://example.com/b")
    True
    >>> is_same_host("https://shop.example.com/", "https://example.com/")
    False
"""

from __future__ import annotations

from typing import NamedTuple
from urllib.parse import urljoin, urlparse, urlunparse


class ParsedURL(NamedTuple):
    """Parsed URL components used for comparisons."""
    scheme: str
    host: str
    port: str
    path: str
    query: str
    fragment: str


def parse_url(url: str) -> ParsedURL:
    """Parse a URL into normalized components.

    Args:
        url: The URL to parse

    Returns:
        ParsedURL with lowercase scheme/host and a non-empty path
    """
    parsed = urlparse(url)

    host = parsed.netloc
    port = ""
    if "@" in host:
        host = host.rsplit("@", 1)[1]
    if ":" in host:
        if host.startswith("["):
            # IPv6: [::1]:8080
            bracket_end = host.find("]")
            if bracket_end != -1 and bracket_end + 1 < len(host) and host[bracket_end + 1] == ":":
                port = host[bracket_end + 2:]
                host = host[:bracket_end + 1]
        else:
            host, port = host.rsplit(":", 1)

    return ParsedURL(
        scheme=parsed.scheme.lower(),
        host=host.lower(),
        port=port,
        path=parsed.path or "/",
        query=parsed.query,
        fragment=parsed.fragment,
    )


def normalize_url(url: str, strip_fragment: bool = True, strip_query: bool = False) -> str:
    """Normalize a URL for consistent comparison.

    Lowercases scheme and host, removes default ports, optionally strips the
    fragment and query string, and guarantees a leading slash on the path.
    """
    parsed = parse_url(url)

    port = parsed.port
    if (parsed.scheme == "http" and port == "80") or (parsed.scheme == "https" and port == "443"):
        port = ""

    netloc = f"{parsed.host}:{port}" if port else parsed.host
    fragment = "" if strip_fragment else parsed.fragment
    query = "" if strip_query else parsed.query

    return urlunparse((parsed.scheme, netloc, parsed.path, "", query, fragment))


def resolve_url(base_url: str, relative_url: str) -> str | None:
    """Resolve ``relative_url`` against ``base_url``; None if it cannot be resolved."""
    try:
        return urljoin(base_url, relative_url.strip())
    except ValueError:
        return None


def is_valid_http_url(url: str) -> bool:
    """Check if a URL is an absolute HTTP/HTTPS URL."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def should_skip_href(href: str) -> bool:
    """True for hrefs that never point at another page: empty, fragment-only, ``javascript:``."""
    if not href or not href.strip():
        return True
    href = href.strip()
    return href.startswith("#") or href.lower().startswith("javascript:")


def get_hostname(url: str) -> str:
    """Return the lowercase hostname of ``url`` (no port)."""
    return parse_url(url).host


def is_same_host(url: str, base_url: str) -> bool:
    """True when both URLs share exactly the same hostname."""
    try:
        host = get_hostname(url)
    except ValueError:
        return False
    return bool(host) and host == get_hostname(base_url)
