"""Candidate URL discovery for knowledge sources.

``discover`` dispatches on the source type and applies the source's
include/exclude filters and page cap. ``discover_urls`` is the breadth-first,
same-host link follower used for sources configured with ``crawl``.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING, Callable, Iterable, List, Protocol, Sequence

from src.parsing.base import Document
from src.parsing.fetch import HtmlFetcher
from src.parsing.sitemap import DEFAULT_MAX_DEPTH, parse_sitemap
from src.parsing.url_scope import is_same_host, is_valid_http_url, normalize_url
from src.parsing.web import extract_content

from .storage import DEFAULT_MAX_PAGES, KnowledgeSource

if TYPE_CHECKING:
    from src.knowledge.pipeline.config import IngestConfig
    from src.knowledge.pipeline.scheduler import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_CRAWL_DEPTH = 2
MAX_VISITED = 100


class SourceConfigError(ValueError):
    """Raised for a source that cannot be discovered (bad type or missing URL)."""


class PageFetcher(Protocol):
    def fetch_html(self, url: str) -> str: ...

    def fetch_text(self, url: str) -> str: ...


ContentExtractor = Callable[[str, str], "Document | None"]


def discover(
    source: KnowledgeSource,
    *,
    fetcher: PageFetcher | None = None,
    config: "IngestConfig | None" = None,
    limiter: "RateLimiter | None" = None,
) -> List[str]:
    """Return the bounded, filtered list of URLs to ingest for ``source``.

    Raises:
        SourceConfigError: If the source type is unsupported or it has no URL.
    """
    fetcher = fetcher or HtmlFetcher()
    source_config = source.config
    if not source_config.url:
        raise SourceConfigError(f"Source {source.id} has no url configured")

    if source.type == "url":
        if source_config.crawl:
            max_depth = source_config.max_depth
            if max_depth is None:
                max_depth = config.crawl_max_depth if config else DEFAULT_CRAWL_DEPTH
            urls = discover_urls(
                source_config.url,
                max_depth,
                fetcher=fetcher,
                limiter=limiter,
                max_visited=config.crawl_max_visited if config else MAX_VISITED,
            )
        else:
            urls = [source_config.url]
    elif source.type == "sitemap":
        entries = parse_sitemap(
            source_config.url,
            fetcher=fetcher,
            max_depth=config.max_sitemap_depth if config else DEFAULT_MAX_DEPTH,
        )
        urls = [entry.url for entry in entries]
    elif source.type == "feed":
        # Feeds are not enumerated; the feed URL itself is the only page.
        urls = [source_config.url]
    else:
        raise SourceConfigError(f"Unsupported source type: {source.type}")

    max_pages = source_config.max_pages
    if not max_pages:
        max_pages = config.default_max_pages if config else DEFAULT_MAX_PAGES

    filtered = filter_urls(
        urls,
        include=source_config.include,
        exclude=source_config.exclude,
        max_pages=max_pages,
    )
    logger.info(
        "Discovered %d URLs for source %s (%d before filtering)",
        len(filtered),
        source.id,
        len(urls),
    )
    return filtered


def filter_urls(
    urls: Iterable[str],
    *,
    include: Sequence[str] = (),
    exclude: Sequence[str] = (),
    max_pages: int = DEFAULT_MAX_PAGES,
) -> List[str]:
    """Apply substring filters and the page cap, preserving order.

    A URL is kept when it contains at least one ``include`` pattern (if any
    are given) and none of the ``exclude`` patterns.
    """
    kept: List[str] = []
    for url in urls:
        if include and not any(pattern in url for pattern in include):
            continue
        if exclude and any(pattern in url for pattern in exclude):
            continue
        kept.append(url)
    return kept[:max_pages]


def discover_urls(
    base_url: str,
    max_depth: int = DEFAULT_CRAWL_DEPTH,
    *,
    fetcher: PageFetcher | None = None,
    extractor: ContentExtractor = extract_content,
    limiter: "RateLimiter | None" = None,
    max_visited: int = MAX_VISITED,
) -> List[str]:
    """Breadth-first crawl from ``base_url`` following same-host links.

    Links found on a page at depth ``d`` are recorded at depth ``d + 1``;
    pages deeper than ``max_depth`` are recorded but never fetched. The crawl
    stops after ``max_visited`` pages. A page that fails to fetch is logged
    and skipped.

    Returns:
        Every discovered URL in discovery order, starting with ``base_url``.
        Not capped by the source's page limit.
    """
    if not is_valid_http_url(base_url):
        raise SourceConfigError(f"Invalid crawl root: {base_url}")

    fetcher = fetcher or HtmlFetcher()
    discovered: List[str] = [base_url]
    seen = {normalize_url(base_url)}
    visited: set[str] = set()
    queue: deque[tuple[str, int]] = deque([(base_url, 0)])

    while queue and len(visited) < max_visited:
        url, depth = queue.popleft()
        if url in visited or depth > max_depth:
            continue
        visited.add(url)

        if limiter is not None:
            limiter.wait()
        try:
            html = fetcher.fetch_html(url)
            document = extractor(html, url)
        except Exception as exc:
            logger.warning("Failed to crawl %s: %s", url, exc)
            continue

        if document is None:
            continue

        for link in document.links:
            if not is_same_host(link, base_url):
                continue
            key = normalize_url(link)
            if key in seen:
                continue
            seen.add(key)
            discovered.append(key)
            queue.append((key, depth + 1))

    logger.info(
        "Crawl from %s discovered %d URLs (%d visited)",
        base_url,
        len(discovered),
        len(visited),
    )
    return discovered
