"""XML sitemap resolution.

A ``<urlset>`` document yields one :class:`SitemapEntry` per ``<url>``. A
sitemap index (``<sitemapindex>`` with ``<sitemap><loc>`` children) yields the
concatenated entries of its children, never entries of its own. Nesting is
bounded by ``max_depth`` and each sitemap URL is fetched at most once per
resolution, so self-referencing indexes terminate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Protocol

from bs4 import BeautifulSoup

from .fetch import HtmlFetcher

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 0.5
DEFAULT_MAX_DEPTH = 3


class TextFetcher(Protocol):
    def fetch_text(self, url: str) -> str: ...


@dataclass(slots=True, frozen=True)
class SitemapEntry:
    """A single ``<url>`` record from a sitemap."""

    url: str
    lastmod: str | None = None
    changefreq: str | None = None
    priority: float = DEFAULT_PRIORITY


def parse_sitemap(
    url: str,
    *,
    fetcher: TextFetcher | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> List[SitemapEntry]:
    """Fetch and resolve the sitemap at ``url``.

    Args:
        url: Sitemap or sitemap index URL.
        fetcher: Object with ``fetch_text(url)``; a default
            :class:`HtmlFetcher` is used when omitted.
        max_depth: How many levels of nested indexes to follow below ``url``.

    Returns:
        Entries in document order. Empty if the sitemap cannot be fetched or
        parsed; this function does not raise.
    """
    return _resolve(url, fetcher or HtmlFetcher(), 0, max_depth, set())


def _resolve(
    url: str,
    fetcher: TextFetcher,
    depth: int,
    max_depth: int,
    visited: set[str],
) -> List[SitemapEntry]:
    if url in visited:
        logger.warning("Skipping already visited sitemap %s", url)
        return []
    visited.add(url)

    try:
        xml = fetcher.fetch_text(url)
        entries, nested = parse_sitemap_xml(xml)
    except Exception as exc:
        logger.warning("Sitemap parsing error for %s: %s", url, exc)
        return []

    if not nested:
        logger.debug("Sitemap %s: %d entries", url, len(entries))
        return entries

    if depth >= max_depth:
        logger.warning(
            "Sitemap index %s exceeds max depth %d, skipping %d nested sitemaps",
            url,
            max_depth,
            len(nested),
        )
        return []

    resolved: List[SitemapEntry] = []
    for child_url in nested:
        resolved.extend(_resolve(child_url, fetcher, depth + 1, max_depth, visited))
    return resolved


def parse_sitemap_xml(xml: str) -> tuple[List[SitemapEntry], List[str]]:
    """Parse sitemap markup without fetching anything.

    Returns:
        ``(entries, nested_sitemap_urls)``. ``nested_sitemap_urls`` is
        non-empty only for sitemap indexes.
    """
    soup = BeautifulSoup(xml, "xml")

    entries: List[SitemapEntry] = []
    for node in soup.find_all("url"):
        loc = _child_text(node, "loc")
        if not loc:
            continue
        entries.append(
            SitemapEntry(
                url=loc,
                lastmod=_child_text(node, "lastmod"),
                changefreq=_child_text(node, "changefreq"),
                priority=_parse_priority(_child_text(node, "priority")),
            )
        )

    nested: List[str] = []
    for node in soup.find_all("sitemap"):
        loc = _child_text(node, "loc")
        if loc:
            nested.append(loc)

    return entries, nested


def _child_text(node, name: str) -> str | None:
    child = node.find(name, recursive=False)
    if child is None:
        return None
    text = child.get_text(strip=True)
    return text or None


def _parse_priority(value: str | None) -> float:
    if value is None:
        return DEFAULT_PRIORITY
    try:
        return float(value)
    except ValueError:
        return DEFAULT_PRIORITY


__all__ = ["DEFAULT_PRIORITY", "SitemapEntry", "parse_sitemap", "parse_sitemap_xml"]
