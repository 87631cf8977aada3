"""Auxiliary DOM scans: outbound links, images and ``<meta>`` pairs.

These scans run over the full page (not just the article body) and feed the
``links``, ``images`` and ``metadata`` fields of a :class:`Document`.
"""

from __future__ import annotations

from typing import List

from bs4 import BeautifulSoup

from src.parsing.url_scope import resolve_url, should_skip_href

MAX_LINKS = 100
MAX_IMAGES = 20


def make_soup(html: str) -> BeautifulSoup:
    """Parse HTML with the stdlib-backed parser used throughout the project."""
    return BeautifulSoup(html, "html.parser")


def _base_url(soup: BeautifulSoup, page_url: str) -> str:
    base = soup.find("base", href=True)
    if base is not None:
        resolved = resolve_url(page_url, base["href"])
        if resolved:
            return resolved
    return page_url


def extract_links(soup: BeautifulSoup, page_url: str, limit: int = MAX_LINKS) -> List[str]:
    """Return absolute URLs of ``<a href>`` links in document order.

    Fragment-only and ``javascript:`` links are dropped, duplicates are
    collapsed and at most ``limit`` URLs are returned.

    Example:
        >>> soup = make_soup('<a href="/about">About</a><a href="#top">Top</a>')
        >>> extract_links(soup, "https://example.com/")
        ['https://example.com/about']
    """
    base_url = _base_url(soup, page_url)
    links: List[str] = []
    seen: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        if len(links) >= limit:
            break
        href = anchor.get("href") or ""
        if should_skip_href(href):
            continue
        absolute = resolve_url(base_url, href)
        if not absolute or absolute in seen:
            continue
        seen.add(absolute)
        links.append(absolute)
    return links


def extract_images(soup: BeautifulSoup, page_url: str, limit: int = MAX_IMAGES) -> List[str]:
    """Return absolute ``<img src>`` URLs in document order, capped at ``limit``."""
    base_url = _base_url(soup, page_url)
    images: List[str] = []
    for img in soup.find_all("img", src=True):
        if len(images) >= limit:
            break
        src = (img.get("src") or "").strip()
        if not src:
            continue
        absolute = resolve_url(base_url, src)
        if absolute:
            images.append(absolute)
    return images


def extract_meta_pairs(soup: BeautifulSoup) -> List[tuple[str, str]]:
    """Return ``(name or property, content)`` for every ``<meta>`` carrying both."""
    pairs: List[tuple[str, str]] = []
    for meta in soup.find_all("meta"):
        name = meta.get("name") or meta.get("property")
        content = meta.get("content")
        if name and content:
            pairs.append((name.strip(), content.strip()))
    return pairs
